"""
File ownership — hand paths created as root back to the target user.

The run executes as root, but the log file, the history ledger, the
shell rc file and the nvim config live in the user's home. Anything
created there must end up owned by the user, parent directories
included, or their own programs cannot write beside it later.
"""

from __future__ import annotations

import os
import pwd
from pathlib import Path


def chown_to(path: Path, owner: str | None) -> None:
    """Hand ``path`` to ``owner`` and their primary group (no-op for None)."""
    if owner:
        entry = pwd.getpwnam(owner)
        os.chown(path, entry.pw_uid, entry.pw_gid)


def make_dirs(path: Path, owner: str | None = None) -> list[Path]:
    """``mkdir -p`` that chowns every directory it creates to ``owner``.

    Directories that already exist keep their ownership. Returns the
    directories created, outermost first.
    """
    missing = []
    current = path
    while not current.exists():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent

    created = []
    for directory in reversed(missing):
        directory.mkdir(exist_ok=True)
        chown_to(directory, owner)
        created.append(directory)
    if not path.is_dir():
        raise NotADirectoryError(f"Not a directory: {path}")
    return created
