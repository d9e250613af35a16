"""
Storage steps — btrfs snapshots with snapper, CIFS network shares.

Both steps ask before anything destructive or secret: the snapshot step
confirms an unusual subvolume layout and any wipe of a stale snapshot
directory, the CIFS step prompts for share credentials only when the
credentials file does not exist yet.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from provisioner.core.engine.errors import (
    DestructiveActionDeclined,
    ExternalToolFailure,
    StepSkipped,
)
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.context import RunContext
from provisioner.core.models.step import Step
from provisioner.core.services import mounts, snapshots
from provisioner.core.services.packages import install_packages
from provisioner.core.services.system import enable_now
from provisioner.core.services.tools import Toolbox

logger = logging.getLogger(__name__)

# config name → subvolume it snapshots
SNAPPER_CONFIGS = {"root": "/", "home": "/home"}


def snapshots_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner, prompter = tools.runner, tools.prompter
    snapshot_dir = Path(config.snapshot_dir)

    def satisfied(ctx: RunContext) -> bool:
        existing = snapshots.snapper_configs(runner)
        return all(name in existing for name in SNAPPER_CONFIGS)

    def check_layout() -> None:
        fstype = snapshots.root_fstype(runner)
        if fstype != "btrfs":
            raise StepSkipped(f"root filesystem is {fstype or 'unknown'}, not btrfs")

        paths = snapshots.subvolume_paths(runner)
        loose = [f"/var/{name}" for name in ("log", "cache") if not snapshots.is_subvolume(paths, name)]
        if loose and not prompter.confirm(
            f"{' and '.join(loose)} are not separate subvolumes, so snapshots will "
            "include logs and package cache. Continue with snapper setup?"
        ):
            raise DestructiveActionDeclined(f"snapper setup declined ({', '.join(loose)} not subvolumes)")

    def check_stale_dir(existing: list[str]) -> bool:
        """Ask before wiping a snapshot dir snapper would refuse. True → wipe."""
        if "root" in existing or not snapshot_dir.is_dir():
            return False
        if not any(snapshot_dir.iterdir()):
            return False
        if not prompter.confirm(
            f"{snapshot_dir} already has contents but no snapper root config. "
            "Delete everything in it?"
        ):
            raise DestructiveActionDeclined(f"left {snapshot_dir} untouched")
        return True

    def setup(ctx: RunContext) -> str:
        # All questions first, so a "no" leaves the system as it was
        check_layout()
        existing = snapshots.snapper_configs(runner)
        wipe = check_stale_dir(existing)

        install_packages(runner, ["snapper"])
        enable_now(runner, snapshots.SNAPPER_TIMERS)

        if wipe:
            runner.edit("clear_dir", str(snapshot_dir))

        created = []
        for name, subvolume in SNAPPER_CONFIGS.items():
            if name not in existing:
                snapshots.create_config(runner, name, subvolume)
                created.append(name)

        date = datetime.now().strftime("%Y-%m-%d")
        for name in created:
            snapshots.create_snapshot(runner, name, f"{date}_{name.capitalize()}")

        if not created:
            return "snapper configs already present"
        return f"created snapper configs: {', '.join(created)}"

    return Step(
        name="snapshots",
        description="Configure snapper for / and /home with timeline snapshots",
        action=setup,
        precondition=satisfied,
    )


def cifs_mounts_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner, prompter = tools.runner, tools.prompter
    credentials = config.credentials_file
    shares = config.shares

    def satisfied(ctx: RunContext) -> bool:
        if not shares:
            return True
        if not Path(credentials).is_file():
            return False
        fstab = Path(config.fstab)
        text = fstab.read_text(encoding="utf-8") if fstab.is_file() else ""
        return mounts.shares_in_fstab(text, shares) and all(
            mounts.is_mounted(runner, s.mount_point) for s in shares
        )

    def setup(ctx: RunContext) -> str:
        install_packages(runner, config.package_set("cifs").pacman)

        if Path(credentials).is_file():
            logger.info("Reusing credentials file %s", credentials)
        else:
            username = prompter.read_text("Enter CIFS username")
            password = prompter.read_secret("Enter CIFS password")
            mounts.write_credentials(runner, credentials, username, password)

        failures = []
        for share in shares:
            try:
                runner.edit("mkdir", share.mount_point)
                mounts.ensure_fstab_entry(runner, config.fstab, share, credentials, ctx.user)
                if not mounts.is_mounted(runner, share.mount_point):
                    mounts.mount_share(runner, share, credentials, ctx.user)
            except ExternalToolFailure as e:
                logger.debug("Share %s failed: %s", share.source, e)
                failures.append((share.source, e))

        if len(failures) == 1:
            raise failures[0][1]
        if failures:
            detail = "\n".join(f"{source}: {e}" for source, e in failures)
            raise ExternalToolFailure("mount cifs shares", None, detail)
        return f"{len(shares)} shares mounted"

    return Step(
        name="cifs-mounts",
        description="Mount CIFS network shares through /etc/fstab",
        action=setup,
        precondition=satisfied,
        category="filesharing",
    )

