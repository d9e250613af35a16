"""
Run history — append-only ledger of provisioning runs.

Every run writes one entry to an NDJSON (newline-delimited JSON) file,
so ``provision history`` can answer "when did this machine last
converge, and what failed?" long after the console scrolled away.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from provisioner.core.services.ownership import chown_to, make_dirs

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_FILE = "runs.ndjson"


class RunRecord(BaseModel):
    """A single run-history entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""

    # Results
    status: str = ""               # ok, partial, failed, aborted
    steps_total: int = 0
    steps_succeeded: int = 0
    steps_skipped: int = 0
    steps_failed: int = 0

    aborted_by: str | None = None
    interrupted: bool = False
    dry_run: bool = False

    # step name → failure detail
    failures: dict[str, str] = Field(default_factory=dict)


class AuditWriter:
    """Append-only run-history writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist, owned by ``owner`` when one
    is given, along with any directories created for it.
    """

    def __init__(
        self,
        path: Path | None = None,
        state_dir: Path | None = None,
        owner: str | None = None,
    ):
        self._owner = owner
        if path is not None:
            self._path = path
        elif state_dir is not None:
            self._path = state_dir / DEFAULT_HISTORY_FILE
        else:
            self._path = Path(DEFAULT_HISTORY_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: RunRecord) -> None:
        """Append a record to the ledger. Write errors are logged, not raised."""
        data = record.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        try:
            created = not self._path.exists()
            if created:
                make_dirs(self._path.parent, self._owner)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            if created:
                chown_to(self._path, self._owner)
            logger.debug("Run record written: %s", record.run_id)
        except (OSError, KeyError) as e:
            logger.error("Failed to write run history: %s", e)

    def read_all(self) -> list[RunRecord]:
        """Read all records from the ledger, oldest first."""
        if not self._path.is_file():
            return []

        records = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(RunRecord.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt run record at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read run history: %s", e)

        return records

    def read_recent(self, n: int = 10) -> list[RunRecord]:
        """Read the most recent N records."""
        return self.read_all()[-n:]
