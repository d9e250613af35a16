"""
Run log — the user-facing, durable record of a provisioning run.

Every event becomes one line ``<ISO-8601 timestamp> - <message>``,
appended to a log file that accumulates across runs and echoed to
stdout. This is separate from Python ``logging`` (diagnostics, stderr):
the run log is what the user reads after a reboot to see what happened.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Literal

import click
from pydantic import BaseModel

from provisioner.core.services.ownership import chown_to, make_dirs

logger = logging.getLogger(__name__)

Level = Literal["INFO", "WARNING", "ERROR"]


class LogEntry(BaseModel):
    """One run-log event. Never modified after it is written."""

    timestamp: str
    level: Level = "INFO"
    step: str | None = None
    message: str

    def render(self) -> str:
        prefix = "" if self.level == "INFO" else f"{self.level}: "
        return f"{self.timestamp} - {prefix}{self.message}"


def _now() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


class RunLog:
    """Append-only run log mirrored to the console.

    Args:
        path: Log file. Created (with parents) on first write, never truncated.
        owner: User to hand the file and any directories created for it to.
        echo: Console sink; ``None`` disables mirroring.
        clock: Timestamp source, ISO-8601 strings.
    """

    def __init__(
        self,
        path: Path | None,
        echo: Callable[[str], None] | None = click.echo,
        clock: Callable[[], str] = _now,
        owner: str | None = None,
    ):
        self._path = path
        self._owner = owner
        self._echo = echo
        self._clock = clock
        self._entries: list[LogEntry] = []
        self._file_warned = False

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def log(self, level: Level, message: str, step: str | None = None) -> LogEntry:
        entry = LogEntry(timestamp=self._clock(), level=level, step=step, message=message)
        self._entries.append(entry)
        line = entry.render()

        if self._echo is not None:
            self._echo(line)
        self._append(line)
        return entry

    def info(self, message: str, step: str | None = None) -> LogEntry:
        return self.log("INFO", message, step)

    def warning(self, message: str, step: str | None = None) -> LogEntry:
        return self.log("WARNING", message, step)

    def error(self, message: str, step: str | None = None) -> LogEntry:
        return self.log("ERROR", message, step)

    def messages(self, level: Level | None = None) -> list[str]:
        """Logged messages, optionally filtered by level."""
        return [e.message for e in self._entries if level is None or e.level == level]

    def _append(self, line: str) -> None:
        if self._path is None:
            return
        try:
            created = not self._path.exists()
            if created:
                make_dirs(self._path.parent, self._owner)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
            if created:
                chown_to(self._path, self._owner)
        except (OSError, KeyError) as e:
            # The run goes on; say so once rather than on every line
            if not self._file_warned:
                logger.warning("Cannot write run log %s: %s", self._path, e)
                self._file_warned = True
