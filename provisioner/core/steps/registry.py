"""
Step registry — the ordered list of provisioning steps.

Order is data: steps run in the order they were registered, and the
registry can be listed, filtered and tested without running anything.
"""

from __future__ import annotations

import logging
from typing import Iterator

from provisioner.core.models.step import Step

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised on duplicate step names or unknown names in a selection."""


class StepRegistry:
    """Ordered, name-unique collection of steps.

    Once ``freeze()`` is called no more steps can be registered.
    """

    def __init__(self) -> None:
        self._steps: list[Step] = []
        self._names: set[str] = set()
        self._frozen = False

    def register(self, step: Step) -> Step:
        """Append a step. Names must be unique."""
        if self._frozen:
            raise RegistryError(f"Registry is frozen; cannot register '{step.name}'")
        if step.name in self._names:
            raise RegistryError(f"Duplicate step name: '{step.name}'")
        self._steps.append(step)
        self._names.add(step.name)
        logger.debug("Registered step %d: %s", len(self._steps), step.name)
        return step

    def freeze(self) -> StepRegistry:
        self._frozen = True
        return self

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self._steps]

    def get(self, name: str) -> Step | None:
        for step in self._steps:
            if step.name == name:
                return step
        return None

    def select(
        self,
        only: list[str] | None = None,
        skip: list[str] | None = None,
    ) -> list[Step]:
        """Steps to run, still in registration order.

        Args:
            only: If given, keep just these steps.
            skip: Drop these steps.

        Raises:
            RegistryError: a name in ``only`` or ``skip`` is not registered.
        """
        requested = set(only or []) | set(skip or [])
        unknown = sorted(requested - self._names)
        if unknown:
            raise RegistryError(f"Unknown step(s): {', '.join(unknown)}")

        selected = self._steps
        if only:
            selected = [s for s in selected if s.name in set(only)]
        if skip:
            selected = [s for s in selected if s.name not in set(skip)]
        return list(selected)

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)
