"""
Tool runner — the facade steps use to reach external tools.

Wraps the adapter registry: builds an Action per call, dispatches it,
applies the retry policy, and turns failed receipts into exceptions
the step runner understands.

    run()    mutating command; non-zero exit → ExternalToolFailure
    query()  read-only check; never raises on exit code, raises
             PreconditionCheckError when the binary is missing
    edit()   persisted-file operation through the filesystem adapter
"""

from __future__ import annotations

import itertools
import logging
import shlex
import shutil
import time
from dataclasses import dataclass
from typing import Any, Callable

import click

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.engine.errors import ExternalToolFailure, PreconditionCheckError
from provisioner.core.models.action import Action, Receipt
from provisioner.core.reliability.retry import NO_RETRY, RetryPolicy, call_with_retry
from provisioner.core.services.prompts import Prompter

logger = logging.getLogger(__name__)


class ToolRunner:
    """Dispatch commands and file edits, one Action per call."""

    def __init__(
        self,
        registry: AdapterRegistry,
        run_id: str = "run",
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self._registry = registry
        self._run_id = run_id
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._which = which
        self._seq = itertools.count(1)

    # ── Commands ─────────────────────────────────────────────────

    def run(
        self,
        command: list[str],
        *,
        retry: bool = False,
        as_user: str | None = None,
        cwd: str | None = None,
        input: str | None = None,
        timeout: int | None = None,
    ) -> Receipt:
        """Run a command that changes the system. Raises on failure."""
        receipt = self._dispatch_command(
            command, retry=retry, as_user=as_user, cwd=cwd, input=input, timeout=timeout
        )
        if receipt.failed:
            raise ExternalToolFailure(
                shlex.join(command),
                receipt.return_code,
                receipt.combined_output,
            )
        return receipt

    def query(
        self,
        command: list[str],
        *,
        as_user: str | None = None,
        timeout: int | None = 60,
    ) -> Receipt:
        """Run a read-only check and return its receipt whatever the exit code."""
        receipt = self._dispatch_command(command, as_user=as_user, timeout=timeout)
        if receipt.metadata.get("missing_tool"):
            raise PreconditionCheckError(f"cannot check state: {command[0]} is not installed")
        return receipt

    def succeeds(self, command: list[str], **kwargs: Any) -> bool:
        """Whether a read-only check exits 0."""
        return self.query(command, **kwargs).ok

    def which(self, binary: str) -> bool:
        """Whether ``binary`` is on PATH."""
        return self._which(binary) is not None

    # ── Files ────────────────────────────────────────────────────

    def edit(self, operation: str, path: str, **params: Any) -> Receipt:
        """Apply a filesystem-adapter operation. Raises on failure."""
        action = Action(
            id=self._next_id(),
            adapter="filesystem",
            params={"operation": operation, "path": str(path), **params},
        )
        receipt = self._registry.execute_action(action)
        if receipt.failed:
            raise ExternalToolFailure(action.label, None, receipt.error or "")
        return receipt

    # ── Internals ────────────────────────────────────────────────

    def _dispatch_command(
        self,
        command: list[str],
        *,
        retry: bool = False,
        as_user: str | None = None,
        cwd: str | None = None,
        input: str | None = None,
        timeout: int | None = None,
    ) -> Receipt:
        argv = [str(part) for part in command]
        params: dict[str, Any] = {}
        if as_user:
            script = shlex.join(argv)
            if cwd:
                script = f"cd {shlex.quote(cwd)} && {script}"
            argv = ["su", "-", as_user, "-c", script]
        elif cwd:
            params["cwd"] = cwd
        params["command"] = argv
        if input is not None:
            params["input"] = input
        if timeout is not None:
            params["timeout"] = timeout

        def attempt() -> Receipt:
            action = Action(id=self._next_id(), adapter="shell", params=params)
            return self._registry.execute_action(action)

        policy = self._retry_policy if retry else NO_RETRY
        return call_with_retry(attempt, policy, label=shlex.join(command), sleep=self._sleep)

    def _next_id(self) -> str:
        return f"{self._run_id}:{next(self._seq):04d}"


@dataclass
class Toolbox:
    """Collaborators handed to the step catalog at build time."""

    runner: ToolRunner
    prompter: Prompter
    echo: Callable[[str], None] = click.echo
