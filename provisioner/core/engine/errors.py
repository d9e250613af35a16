"""
Provisioning error taxonomy.

Everything a step can raise is caught at the step boundary by the
runner; the class decides whether the step counts as skipped or failed.
"""

from __future__ import annotations


class PrivilegeError(PermissionError):
    """The process is not running as root. Raised before any step runs."""


class PreconditionCheckError(Exception):
    """A step's skip/run decision could not be made (query tool missing).

    The runner logs a warning and runs the action anyway.
    """


class ExternalToolFailure(Exception):
    """An external command exited non-zero (or could not be started)."""

    def __init__(self, command: str, return_code: int | None, output: str = ""):
        self.command = command
        self.return_code = return_code
        self.output = output
        if return_code is None:
            message = f"`{command}` could not be run"
        else:
            message = f"`{command}` exited with code {return_code}"
        if output:
            message = f"{message}: {_tail(output)}"
        super().__init__(message)


class CredentialFileError(Exception):
    """Writing a secrets file failed. The owning mount is left unconfigured."""


class StepSkipped(Exception):
    """The step does not apply to this machine (e.g. root is not btrfs)."""


class DestructiveActionDeclined(StepSkipped):
    """The user declined an explicit confirmation for a destructive action."""


def _tail(output: str, lines: int = 5) -> str:
    """Last few lines of tool output, flattened for one log line."""
    kept = [line.strip() for line in output.strip().splitlines() if line.strip()]
    return " | ".join(kept[-lines:])
