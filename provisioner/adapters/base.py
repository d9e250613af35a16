"""
Adapter base — the protocol contract between steps and tools.

Steps never call subprocess or touch persisted files directly; they
go through an adapter, which returns a Receipt and never raises.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from provisioner.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def working_dir(self) -> str | None:
        """Working directory for the action (None = inherit)."""
        return self.params.get("cwd")


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (``shell``, ``filesystem``)."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
