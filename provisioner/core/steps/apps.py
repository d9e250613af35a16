"""
Application steps — package groups, developer tooling, virtualization.

Most of these are a package set from the config installed through
pacman, yay and flatpak; ``package_step`` builds those. The rest need
a little more: a git clone, a remote installer script, a service and
a group membership.
"""

from __future__ import annotations

import logging
import time

from provisioner.core.engine.errors import StepSkipped
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.context import RunContext
from provisioner.core.models.step import Step
from provisioner.core.services.packages import install_package_set, package_set_satisfied
from provisioner.core.services.remote_script import run_remote_script
from provisioner.core.services.system import enable_now, ensure_user_in_group, user_groups, units_running
from provisioner.core.services.tools import Toolbox

logger = logging.getLogger(__name__)

NVIM_CONFIG = ".config/nvim"
# Left over from a previous config, these break a fresh kickstart install
NVIM_DATA_DIRS = (".local/share/nvim", ".local/state/nvim", ".cache/nvim")

LIBVIRT_GROUP = "libvirt"


def package_step(
    config: ProvisionConfig,
    tools: Toolbox,
    name: str,
    description: str,
    category: str,
    package_set: str | None = None,
) -> Step:
    """A step that installs one configured package set."""
    runner = tools.runner
    packages = config.package_set(package_set or name)

    def satisfied(ctx: RunContext) -> bool:
        return package_set_satisfied(runner, packages)

    def install(ctx: RunContext) -> str:
        return install_package_set(runner, ctx.user, packages)

    return Step(
        name=name,
        description=description,
        action=install,
        precondition=satisfied,
        category=category,
    )


def kickstart_nvim_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner
    packages = config.package_set("neovim")

    def is_kickstart_clone(ctx: RunContext) -> bool:
        nvim_dir = ctx.home_path(NVIM_CONFIG)
        if not (nvim_dir / ".git").is_dir():
            return False
        receipt = runner.query(
            ["git", "-C", str(nvim_dir), "remote", "get-url", "origin"],
            as_user=ctx.user,
        )
        return receipt.ok and "kickstart.nvim" in receipt.output

    def satisfied(ctx: RunContext) -> bool:
        return is_kickstart_clone(ctx) and package_set_satisfied(runner, packages)

    def install(ctx: RunContext) -> str:
        install_package_set(runner, ctx.user, packages)
        if is_kickstart_clone(ctx):
            return "kickstart.nvim already cloned"

        stamp = time.strftime("%Y%m%d%H%M%S")
        moved = []
        for relative in (NVIM_CONFIG, *NVIM_DATA_DIRS):
            receipt = runner.edit("move_aside", str(ctx.home_path(relative)), stamp=stamp)
            if receipt.changed:
                moved.append(receipt.metadata["path"])
        for path in moved:
            logger.info("Moved old nvim files to %s", path)

        runner.edit("mkdir", str(ctx.home_path(".config")), owner=ctx.user)
        runner.run(
            ["git", "clone", config.kickstart_repo, str(ctx.home_path(NVIM_CONFIG))],
            as_user=ctx.user,
            retry=True,
        )
        suffix = f", {len(moved)} old dirs moved aside" if moved else ""
        return f"kickstart.nvim cloned{suffix}"

    return Step(
        name="kickstart-nvim",
        description="Install Neovim with the kickstart.nvim configuration",
        action=install,
        precondition=satisfied,
        category="coding",
    )


def virtualization_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner
    packages = config.package_set("virtualization")

    def satisfied(ctx: RunContext) -> bool:
        return (
            package_set_satisfied(runner, packages)
            and units_running(runner, ["libvirtd"])
            and LIBVIRT_GROUP in user_groups(runner, ctx.user)
        )

    def setup(ctx: RunContext) -> str:
        message = install_package_set(runner, ctx.user, packages)
        enable_now(runner, ["libvirtd"])
        if ensure_user_in_group(runner, ctx.user, LIBVIRT_GROUP):
            message += f"; {ctx.user} added to {LIBVIRT_GROUP} (log in again to apply)"
        return message

    return Step(
        name="virtualization",
        description="QEMU/libvirt with virt-manager",
        action=setup,
        precondition=satisfied,
        category="systemtools",
    )


def rclone_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner

    def satisfied(ctx: RunContext) -> bool:
        return runner.which("rclone")

    def install(ctx: RunContext) -> str:
        installer = config.remote_installers.get("rclone")
        if installer is None:
            raise StepSkipped("no rclone installer configured")
        run_remote_script(runner, installer)
        return "rclone installed"

    return Step(
        name="rclone",
        description="Install rclone with its official install script",
        action=install,
        precondition=satisfied,
        category="essentials",
    )


def rust_toolchain_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner

    def satisfied(ctx: RunContext) -> bool:
        return ctx.home_path(".cargo/bin/rustup").exists()

    def install(ctx: RunContext) -> str:
        installer = config.remote_installers.get("rustup")
        if installer is None:
            raise StepSkipped("no rustup installer configured")
        run_remote_script(runner, installer, as_user=ctx.user)
        return f"rustup installed for {ctx.user}"

    return Step(
        name="rust-toolchain",
        description="Install the Rust toolchain with rustup for the target user",
        action=install,
        precondition=satisfied,
        category="coding",
    )
