"""
Mock adapter — test double for external tools.

Records every Action it receives and answers with a configured Receipt,
matched by exact command, by command prefix, or by a default. Tests use
it to assert that a satisfied step never reached its action, and that
re-running a step does not repeat an install.
"""

from __future__ import annotations

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success with empty output for everything.
    """

    def __init__(
        self,
        adapter_name: str = "shell",
        available: bool = True,
        default_output: str = "",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: list[tuple[tuple[str, ...], bool, Receipt]] = []
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        return len(self._call_log)

    @property
    def commands(self) -> list[list[str]]:
        """Argv of every shell action received, in order."""
        return [list(ctx.action.params.get("command", [])) for ctx in self._call_log]

    def ran(self, *prefix: str) -> bool:
        """Whether any received command starts with ``prefix``."""
        return any(tuple(cmd[: len(prefix)]) == prefix for cmd in self.commands)

    def is_available(self) -> bool:
        return self._available

    def set_response(self, command: list[str], receipt: Receipt, prefix: bool = False) -> None:
        """Answer ``command`` (or any command starting with it) with ``receipt``.

        Later registrations win over earlier ones.
        """
        self._responses.insert(0, (tuple(command), prefix, receipt))

    def set_result(
        self,
        command: list[str],
        return_code: int = 0,
        output: str = "",
        prefix: bool = False,
    ) -> None:
        """Shorthand for a receipt with a given exit code and stdout."""
        if return_code == 0:
            receipt = Receipt.success(
                adapter=self._name, action_id="mock", output=output, return_code=0
            )
        else:
            receipt = Receipt.failure(
                adapter=self._name,
                action_id="mock",
                error=f"Command exited with code {return_code}",
                output=output,
                return_code=return_code,
            )
        self.set_response(command, receipt, prefix=prefix)

    def set_failure(self, command: list[str], error: str = "Mock failure", prefix: bool = False) -> None:
        """Configure a command to fail with exit code 1."""
        self.set_response(
            command,
            Receipt.failure(adapter=self._name, action_id="mock", error=error, return_code=1),
            prefix=prefix,
        )

    def set_missing(self, command: list[str], prefix: bool = True) -> None:
        """Configure a command whose binary is not installed."""
        self.set_response(
            command,
            Receipt.failure(
                adapter=self._name,
                action_id="mock",
                error=f"Command not found: {command[0]}",
                metadata={"missing_tool": True},
            ),
            prefix=prefix,
        )

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        command = tuple(context.action.params.get("command", []))

        for expected, prefix, receipt in self._responses:
            matched = command[: len(expected)] == expected if prefix else command == expected
            if matched:
                return receipt.model_copy(update={"action_id": context.action.id}, deep=True)

        return Receipt.success(
            adapter=self._name,
            action_id=context.action.id,
            output=self._default_output,
            return_code=0,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
