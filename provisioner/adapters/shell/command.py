"""
Shell command adapter — run external tools and capture their output.

This is the single place where provisioning commands reach
``subprocess.run``. Commands are argv lists, never shell strings;
anything that needs a shell asks for ``bash -c`` explicitly.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)

# Output kept on receipts; package managers can be very chatty
_OUTPUT_LIMIT = 4000


class ShellCommandAdapter(Adapter):
    """Execute commands and capture output.

    Action params:
        command (list[str]): argv to execute.
        input (str): Data written to stdin (e.g. an answer to a prompt).
        timeout (int): Timeout in seconds (default: 1800, package upgrades are slow).
        cwd (str): Working directory.
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        command = context.action.params.get("command")
        if not command or not isinstance(command, list):
            return False, "Missing required param: 'command' (argv list)"

        cwd = context.working_dir
        if cwd and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        command = [str(part) for part in context.action.params["command"]]
        stdin_data = context.action.params.get("input")
        timeout = context.action.params.get("timeout", 1800)
        cwd = context.working_dir

        logger.debug("Executing: %s (cwd=%s)", command, cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                command,
                cwd=cwd,
                input=stdin_data,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command not found: {command[0]}",
                metadata={"command": command, "missing_tool": True},
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command timed out after {timeout}s",
                metadata={"command": command, "timeout": timeout},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"command": command},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout.strip()[-_OUTPUT_LIMIT:]
        stderr = result.stderr.strip()[-_OUTPUT_LIMIT:]

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                return_code=0,
                duration_ms=elapsed_ms,
                metadata={"command": command, "stderr": stderr},
            )

        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=stderr or f"Command exited with code {result.returncode}",
            output=output,
            return_code=result.returncode,
            duration_ms=elapsed_ms,
            metadata={"command": command},
        )
