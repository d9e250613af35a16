"""
Bootstrap steps — what every later step depends on, plus base system state.

    aur-helper       yay, built from the AUR as the target user   (fatal)
    flatpak          flatpak + the Flathub remote                  (fatal)
    system-upgrade   pacman -Syu
    hostname         hostnamectl set-hostname
    pacman-config    Color + ParallelDownloads in pacman.conf
    firmware         fwupd refresh + update
"""

from __future__ import annotations

import logging
from pathlib import Path

from provisioner.core.engine.errors import ExternalToolFailure, PreconditionCheckError
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.context import RunContext
from provisioner.core.models.step import Step
from provisioner.core.services import config_text
from provisioner.core.services.packages import FLATHUB, install_packages
from provisioner.core.services.system import static_hostname
from provisioner.core.services.tools import Toolbox

logger = logging.getLogger(__name__)

# checkupdates and fwupdmgr both exit 2 when there is nothing to do
NOTHING_TO_DO = 2


def aur_helper_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner
    build_dir = config.aur_build_dir

    def satisfied(ctx: RunContext) -> bool:
        return runner.which("yay")

    def install(ctx: RunContext) -> str:
        install_packages(runner, ["git", "base-devel"])
        # A clone left behind by an interrupted run would make git refuse
        runner.edit("remove", build_dir)
        try:
            runner.run(
                ["git", "clone", config.aur_helper_repo, build_dir],
                as_user=ctx.user,
                retry=True,
            )
            runner.run(["makepkg", "-si", "--noconfirm"], as_user=ctx.user, cwd=build_dir)
        finally:
            try:
                runner.edit("remove", build_dir)
            except ExternalToolFailure as e:
                logger.warning("Could not remove %s: %s", build_dir, e)
        return "yay installed"

    return Step(
        name="aur-helper",
        description="Build and install the yay AUR helper",
        action=install,
        precondition=satisfied,
        continue_on_failure=False,
    )


def flatpak_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner

    def satisfied(ctx: RunContext) -> bool:
        if not runner.which("flatpak"):
            return False
        receipt = runner.query(["flatpak", "remotes", "--columns=name"])
        return receipt.ok and FLATHUB in receipt.output.split()

    def setup(ctx: RunContext) -> str:
        install_packages(runner, ["flatpak"])
        runner.run(
            ["flatpak", "remote-add", "--if-not-exists", FLATHUB, config.flathub_url],
            retry=True,
        )
        runner.run(["flatpak", "update", "-y", "--noninteractive"], retry=True)
        return f"{FLATHUB} remote ready"

    return Step(
        name="flatpak",
        description="Install Flatpak and add the Flathub remote",
        action=setup,
        precondition=satisfied,
        continue_on_failure=False,
    )


def system_upgrade_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner

    def satisfied(ctx: RunContext) -> bool:
        receipt = runner.query(["checkupdates"], timeout=300)
        if receipt.return_code == NOTHING_TO_DO:
            return True
        if receipt.ok:
            pending = len(receipt.output.splitlines())
            logger.info("%d package updates pending", pending)
            return False
        raise PreconditionCheckError(f"checkupdates failed: {receipt.combined_output.strip()}")

    def upgrade(ctx: RunContext) -> None:
        runner.run(["pacman", "-Syu", "--noconfirm"], retry=True)

    return Step(
        name="system-upgrade",
        description="Full system upgrade with pacman -Syu",
        action=upgrade,
        precondition=satisfied,
    )


def hostname_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner

    def satisfied(ctx: RunContext) -> bool:
        return static_hostname(runner) == ctx.hostname

    def set_hostname(ctx: RunContext) -> str:
        runner.run(["hostnamectl", "set-hostname", ctx.hostname])
        return f"hostname set to {ctx.hostname}"

    return Step(
        name="hostname",
        description="Set the static hostname",
        action=set_hostname,
        precondition=satisfied,
    )


def pacman_config_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner
    conf = Path(config.pacman_conf)
    downloads = str(config.parallel_downloads)

    def satisfied(ctx: RunContext) -> bool:
        if not conf.is_file():
            return False
        text = conf.read_text(encoding="utf-8")
        return (
            config_text.directive_value(text, "Color") is not None
            and config_text.directive_value(text, "ParallelDownloads") == downloads
        )

    def configure(ctx: RunContext) -> str:
        runner.edit("backup", str(conf))
        runner.edit("set_directive", str(conf), key="Color")
        runner.edit("set_directive", str(conf), key="ParallelDownloads", value=downloads)
        return f"Color on, ParallelDownloads = {downloads}"

    return Step(
        name="pacman-config",
        description="Enable colour output and parallel downloads in pacman.conf",
        action=configure,
        precondition=satisfied,
    )


def firmware_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner

    def satisfied(ctx: RunContext) -> bool:
        if not runner.which("fwupdmgr"):
            return False
        receipt = runner.query(["fwupdmgr", "get-updates", "--no-unreported-check"], timeout=300)
        return receipt.return_code == NOTHING_TO_DO

    def update(ctx: RunContext) -> str:
        install_packages(runner, ["fwupd"])
        runner.run(["fwupdmgr", "refresh", "--force"], retry=True)
        pending = runner.query(["fwupdmgr", "get-updates", "--no-unreported-check"], timeout=300)
        if pending.return_code == NOTHING_TO_DO:
            return "no firmware updates available"
        runner.run(["fwupdmgr", "update", "-y", "--no-reboot-check"])
        return "firmware updated; a reboot may be required"

    return Step(
        name="firmware",
        description="Refresh and apply firmware updates with fwupd",
        action=update,
        precondition=satisfied,
    )
