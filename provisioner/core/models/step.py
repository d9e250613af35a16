"""
Step model — one named, independently idempotent unit of provisioning work.

A step pairs an ``action`` with a ``precondition`` that reports whether
the action's effect is already in place. The runner never invokes the
action of a satisfied step.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable, Literal

from pydantic import BaseModel, Field

from provisioner.core.models.context import RunContext

Precondition = Callable[[RunContext], bool]
StepAction = Callable[[RunContext], str | None]


def _never_satisfied(ctx: RunContext) -> bool:
    return False


@dataclass(frozen=True)
class Step:
    """A registered provisioning step.

    Attributes:
        name: Unique identifier (``aur-helper``, ``cifs-mounts``).
        description: One line shown by ``provision steps`` and the summary.
        action: Does the work. May return a short message for the log.
            Raises on failure; never called when ``precondition`` is True.
        precondition: True when the step's effect is already in place.
        continue_on_failure: False marks a bootstrap step the rest of the
            run depends on; its failure aborts the run.
        category: Optional toggle name from ``ProvisionConfig.categories``.
    """

    name: str
    description: str
    action: StepAction
    precondition: Precondition = _never_satisfied
    continue_on_failure: bool = True
    category: str | None = None

    @property
    def fatal(self) -> bool:
        return not self.continue_on_failure


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class StepResult(BaseModel):
    """Outcome of one step within a run."""

    step: str
    status: Literal["succeeded", "skipped", "failed"]
    detail: str = ""
    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status != "failed"
