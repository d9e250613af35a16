"""
Action and Receipt models — the external-tool contract.

Actions describe one invocation of an external tool (a command line or a
file edit). Receipts describe what happened. Steps hand Actions to the
adapter registry and get Receipts back. Adapters never raise.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A requested external operation.

    ``params`` is adapter-specific: the shell adapter reads ``command``
    (argv list), ``input``, ``cwd`` and ``timeout``; the filesystem adapter
    reads ``operation`` and ``path`` plus operation arguments.
    """

    id: str                         # unique action identifier
    adapter: str                    # which adapter handles this
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        """Short human-readable form used in logs and errors."""
        command = self.params.get("command")
        if isinstance(command, list):
            return " ".join(str(part) for part in command)
        operation = self.params.get("operation", "")
        path = self.params.get("path", "")
        return f"{self.adapter}:{operation} {path}".strip()


class Receipt(BaseModel):
    """Result of an adapter execution.

    Receipts capture the full outcome of an action. The adapter
    NEVER raises exceptions — failures are captured here.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    return_code: int | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the action succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the action failed."""
        return self.status == "failed"

    @property
    def changed(self) -> bool:
        """Whether a file operation modified anything on disk."""
        return bool(self.metadata.get("changed", False))

    @property
    def combined_output(self) -> str:
        """stdout and stderr joined, for error log entries."""
        parts = [self.output.strip(), (self.error or "").strip()]
        return "\n".join(p for p in parts if p)

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )
