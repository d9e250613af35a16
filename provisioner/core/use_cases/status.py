"""
Status use cases — the step catalog and past runs, without running anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import (
    ConfigError,
    build_context,
    find_config_file,
    load_config,
    state_dir_path,
)
from provisioner.core.persistence.audit import AuditWriter, RunRecord
from provisioner.core.steps.catalog import build_registry
from provisioner.core.use_cases.run import build_toolbox


@dataclass
class StepInfo:
    name: str
    description: str
    category: str | None
    fatal: bool
    enabled: bool

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "fatal": self.fatal,
            "enabled": self.enabled,
        }


@dataclass
class StepsResult:
    steps: list[StepInfo] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {"steps": [s.to_dict() for s in self.steps]}


@dataclass
class HistoryResult:
    records: list[RunRecord] = field(default_factory=list)
    history_file: Path | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "history_file": str(self.history_file) if self.history_file else None,
            "runs": [r.model_dump(mode="json") for r in self.records],
        }


def list_steps(config_path: Path | None = None) -> StepsResult:
    """Registered steps in run order, with their category toggle state.

    Building the catalog runs nothing: steps only touch the system when
    the runner calls their precondition or action.
    """
    result = StepsResult()
    try:
        if config_path is None:
            config_path = find_config_file()
        config = load_config(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    registry = build_registry(config, build_toolbox("list"))
    for step in registry:
        enabled = step.category is None or config.categories.get(step.category, True)
        result.steps.append(
            StepInfo(
                name=step.name,
                description=step.description,
                category=step.category,
                fatal=step.fatal,
                enabled=enabled,
            )
        )
    return result


def run_history(config_path: Path | None = None, n: int = 10) -> HistoryResult:
    """The most recent ``n`` runs from the history ledger, oldest first."""
    result = HistoryResult()
    try:
        if config_path is None:
            config_path = find_config_file()
        config = load_config(config_path)
        ctx = build_context(config, run_id="history")
    except ConfigError as e:
        result.error = str(e)
        return result

    writer = AuditWriter(state_dir=state_dir_path(config, ctx))
    result.history_file = writer.path
    result.records = writer.read_recent(n)
    return result
