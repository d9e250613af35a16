"""
RunContext — run-wide parameters resolved once at start.

Built by the run use case from ProvisionConfig before any step runs,
then handed read-only to every precondition and action.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class RunContext(BaseModel):
    """Immutable view of who and what a run provisions."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    user: str
    home: Path
    hostname: str = "ArchFox"
    categories: dict[str, bool] = Field(default_factory=dict)
    dry_run: bool = False

    def enabled(self, category: str | None) -> bool:
        """Whether steps in ``category`` should run (uncategorised always run)."""
        if category is None:
            return True
        return self.categories.get(category, True)

    def home_path(self, relative: str) -> Path:
        """Resolve a path under the target user's home directory."""
        return self.home / relative
