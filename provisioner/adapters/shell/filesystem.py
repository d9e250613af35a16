"""
Filesystem adapter — idempotent edits of persisted files.

Provides a receipt-returning interface for the handful of file mutations
provisioning needs: mount-table lines, shell-rc blocks, pacman.conf
directives, the CIFS secrets file, backups and directory housekeeping.
Every mutating receipt carries ``metadata["changed"]``.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt
from provisioner.core.services import config_text
from provisioner.core.services.ownership import chown_to, make_dirs

logger = logging.getLogger(__name__)

_REQUIRED_PARAMS: dict[str, tuple[str, ...]] = {
    "ensure_line": ("key", "line"),
    "ensure_block": ("name", "body"),
    "set_directive": ("key",),
    "write_secret": ("content",),
    "mkdir": (),
    "backup": (),
    "move_aside": (),
    "clear_dir": (),
    "remove": (),
}


class FilesystemAdapter(Adapter):
    """File and directory operations with receipts.

    Action params:
        operation (str): One of the keys of ``_REQUIRED_PARAMS``.
        path (str): Absolute target path.
        owner (str): Optional user to chown created/edited files to.
        ... plus the per-operation params listed in ``_REQUIRED_PARAMS``.
    """

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True  # filesystem is always available

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.action.params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"

        if operation not in _REQUIRED_PARAMS:
            valid = ", ".join(sorted(_REQUIRED_PARAMS))
            return False, f"Unknown operation '{operation}'. Valid: {valid}"

        path = context.action.params.get("path", "")
        if not path:
            return False, "Missing required param: 'path'"
        if not Path(path).is_absolute():
            return False, f"Path must be absolute: {path}"

        for param in _REQUIRED_PARAMS[operation]:
            if param not in context.action.params:
                return False, f"Missing required param: '{param}' for {operation} operation"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        operation = params["operation"]
        target = Path(params["path"])

        try:
            if operation == "ensure_line":
                return self._edit(
                    context, target,
                    lambda text: config_text.ensure_keyed_line(text, params["key"], params["line"]),
                )
            if operation == "ensure_block":
                return self._edit(
                    context, target,
                    lambda text: config_text.ensure_block(text, params["name"], params["body"]),
                )
            if operation == "set_directive":
                return self._edit(
                    context, target,
                    lambda text: config_text.set_directive(
                        text,
                        params["key"],
                        params.get("value"),
                        section=params.get("section", "options"),
                    ),
                )
            if operation == "write_secret":
                return self._write_secret(context, target)
            if operation == "mkdir":
                return self._mkdir(context, target)
            if operation == "backup":
                return self._backup(context, target)
            if operation == "move_aside":
                return self._move_aside(context, target)
            if operation == "clear_dir":
                return self._clear_dir(context, target)
            return self._remove(context, target)
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "path": str(target)},
            )

    # ── Operations ───────────────────────────────────────────────

    def _edit(self, ctx: ExecutionContext, target: Path, transform) -> Receipt:
        existed = target.is_file()
        text = target.read_text(encoding="utf-8") if existed else ""
        new_text, changed = transform(text)

        if changed:
            _atomic_write(target, new_text, mode=None if existed else 0o644, like=target if existed else None)
            chown_to(target, ctx.params.get("owner"))
            logger.debug("Edited %s (%s)", target, ctx.params["operation"])

        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"{'Updated' if changed else 'Unchanged'}: {target}",
            metadata={"changed": changed, "path": str(target)},
        )

    def _write_secret(self, ctx: ExecutionContext, target: Path) -> Receipt:
        content = ctx.params["content"]
        _atomic_write(target, content, mode=0o600)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Secret written to {target}",
            metadata={"changed": True, "path": str(target)},
        )

    def _mkdir(self, ctx: ExecutionContext, target: Path) -> Receipt:
        changed = bool(make_dirs(target, ctx.params.get("owner")))
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Directory ready: {target}",
            metadata={"changed": changed, "path": str(target)},
        )

    def _backup(self, ctx: ExecutionContext, target: Path) -> Receipt:
        """Copy ``target`` to ``target.bak`` once; later runs keep the first copy."""
        backup = target.with_name(f"{target.name}.bak")
        if backup.exists() or not target.exists():
            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                output=f"Backup not needed: {target}",
                metadata={"changed": False, "path": str(backup)},
            )
        shutil.copy2(target, backup)
        logger.info("Backed up %s → %s", target, backup)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Backed up {target} → {backup}",
            metadata={"changed": True, "path": str(backup)},
        )

    def _move_aside(self, ctx: ExecutionContext, target: Path) -> Receipt:
        """Rename ``target`` to ``target.backup.YYYYmmddHHMMSS`` if it exists."""
        if not target.exists():
            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                output=f"Nothing to move: {target}",
                metadata={"changed": False, "path": str(target)},
            )
        stamp = ctx.params.get("stamp") or time.strftime("%Y%m%d%H%M%S")
        dest = target.with_name(f"{target.name}.backup.{stamp}")
        target.rename(dest)
        logger.info("Moved %s → %s", target, dest)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Moved {target} → {dest}",
            metadata={"changed": True, "path": str(dest)},
        )

    def _clear_dir(self, ctx: ExecutionContext, target: Path) -> Receipt:
        """Delete everything inside ``target`` (the directory itself stays)."""
        if not target.is_dir():
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Not a directory: {target}",
            )
        removed = 0
        for entry in target.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Removed {removed} entries from {target}",
            metadata={"changed": removed > 0, "path": str(target), "count": removed},
        )

    def _remove(self, ctx: ExecutionContext, target: Path) -> Receipt:
        """Delete a file or directory tree if it exists."""
        changed = target.exists() or target.is_symlink()
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif changed:
            target.unlink()
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"{'Removed' if changed else 'Already absent'}: {target}",
            metadata={"changed": changed, "path": str(target)},
        )


def _atomic_write(target: Path, content: str, mode: int | None = None, like: Path | None = None) -> None:
    """Write via a temp file in the same directory, then rename over ``target``.

    A symlinked ``target`` is written through: the link stays and the file
    it points to gets the new content.
    """
    if target.is_symlink():
        target = target.resolve()
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        if like is not None:
            shutil.copymode(like, tmp)
        elif mode is not None:
            tmp.chmod(mode)
        tmp.replace(target)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise

