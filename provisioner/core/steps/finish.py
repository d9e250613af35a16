"""
Final steps — shell customisation, cache cleanup, run summary.
"""

from __future__ import annotations

import logging
from datetime import datetime

from provisioner.core.engine.errors import PreconditionCheckError
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.context import RunContext
from provisioner.core.models.step import Step
from provisioner.core.services import config_text
from provisioner.core.services.system import static_hostname
from provisioner.core.services.tools import Toolbox

logger = logging.getLogger(__name__)


def shell_config_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner
    blocks = config.shell_blocks

    def satisfied(ctx: RunContext) -> bool:
        rc = ctx.home_path(config.shell_rc)
        if not rc.is_file():
            return not blocks
        text = rc.read_text(encoding="utf-8")
        return all(
            config_text.find_block(text, name) == body.rstrip()
            for name, body in blocks.items()
        )

    def configure(ctx: RunContext) -> str:
        rc = str(ctx.home_path(config.shell_rc))
        changed = [
            name
            for name, body in blocks.items()
            if runner.edit("ensure_block", rc, name=name, body=body, owner=ctx.user).changed
        ]
        if not changed:
            return f"{config.shell_rc} already up to date"
        return f"updated {config.shell_rc} blocks: {', '.join(changed)}"

    return Step(
        name="shell-config",
        description="Add PATH and alias blocks to the shell rc file",
        action=configure,
        precondition=satisfied,
        category="customization",
    )


def cleanup_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner

    def clean(ctx: RunContext) -> None:
        runner.run(["pacman", "-Sc", "--noconfirm"])
        if runner.which("flatpak"):
            runner.run(["flatpak", "uninstall", "--unused", "-y", "--noninteractive"])

    return Step(
        name="cleanup",
        description="Clear the pacman cache and unused Flatpak runtimes",
        action=clean,
    )


def summary_step(config: ProvisionConfig, tools: Toolbox) -> Step:
    runner = tools.runner

    def summarize(ctx: RunContext) -> str:
        try:
            hostname = static_hostname(runner) or ctx.hostname
        except PreconditionCheckError as e:
            logger.debug("Static hostname unavailable: %s", e)
            hostname = ctx.hostname
        finished = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        if runner.which("fastfetch"):
            receipt = runner.query(["fastfetch"])
            if receipt.ok and receipt.output:
                tools.echo(receipt.output.rstrip())
        return f"{hostname} provisioned, finished at {finished}"

    return Step(
        name="summary",
        description="Show the hostname, completion time and a fastfetch overview",
        action=summarize,
    )
