"""
Run use case — provision the machine.

This is the top-level orchestrator: it loads config, resolves the run
context, checks privileges, builds the step catalog, runs it, and
records the outcome. The full vertical slice from ``provision run`` to
an audited result.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import click

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.config.loader import (
    ConfigError,
    build_context,
    find_config_file,
    load_config,
    log_file_path,
    state_dir_path,
)
from provisioner.core.engine.errors import PrivilegeError
from provisioner.core.engine.executor import (
    RunReport,
    generate_run_id,
    run_steps,
    write_audit_entry,
)
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.context import RunContext
from provisioner.core.observability.run_log import RunLog
from provisioner.core.persistence.audit import AuditWriter
from provisioner.core.security.privilege import check_privilege
from provisioner.core.services.prompts import Prompter
from provisioner.core.services.tools import ToolRunner, Toolbox
from provisioner.core.steps.catalog import build_registry
from provisioner.core.steps.registry import RegistryError, StepRegistry

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130

Catalog = Callable[[ProvisionConfig, Toolbox], StepRegistry]


@dataclass
class RunResult:
    """Result of a provisioning run."""

    report: RunReport | None = None
    config_path: Path | None = None
    log_file: Path | None = None
    history_file: Path | None = None
    dry_run: bool = False
    error: str | None = None
    exit_code: int = EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {"exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            return result

        result["config_path"] = str(self.config_path) if self.config_path else None
        result["log_file"] = str(self.log_file) if self.log_file else None
        result["dry_run"] = self.dry_run
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def default_adapters() -> AdapterRegistry:
    """Adapter registry backed by the real system."""
    from provisioner.adapters.shell.command import ShellCommandAdapter
    from provisioner.adapters.shell.filesystem import FilesystemAdapter

    registry = AdapterRegistry()
    registry.register(ShellCommandAdapter())
    registry.register(FilesystemAdapter())
    return registry


def build_toolbox(
    run_id: str,
    adapters: AdapterRegistry | None = None,
    prompter: Prompter | None = None,
    echo: Callable[[str], None] | None = click.echo,
    sleep: Callable[[float], None] = time.sleep,
    which: Callable[[str], str | None] = shutil.which,
) -> Toolbox:
    runner = ToolRunner(
        adapters if adapters is not None else default_adapters(),
        run_id=run_id,
        sleep=sleep,
        which=which,
    )
    return Toolbox(
        runner=runner,
        prompter=prompter or Prompter(),
        echo=echo if echo is not None else _discard,
    )


def run_provisioning(
    config_path: Path | None = None,
    dry_run: bool = False,
    only: list[str] | None = None,
    skip: list[str] | None = None,
    adapters: AdapterRegistry | None = None,
    prompter: Prompter | None = None,
    catalog: Catalog = build_registry,
    geteuid: Callable[[], int] = os.geteuid,
    echo: Callable[[str], None] | None = click.echo,
    sleep: Callable[[float], None] = time.sleep,
    which: Callable[[str], str | None] = shutil.which,
) -> RunResult:
    """Run the provisioning steps in order.

    Args:
        config_path: Optional explicit path to provision.yml. None searches
            upward from the CWD, then falls back to built-in defaults.
        dry_run: Evaluate preconditions only; report what would run.
        only: Run just these steps.
        skip: Leave out these steps.
        adapters: Optional pre-configured adapter registry (tests pass
            one holding a MockAdapter).
        prompter: Optional prompt source.
        catalog: Builds the step registry from config and tools.
        geteuid: Effective-uid source for the privilege gate.
        echo: Console sink for the run log; None keeps it quiet.
        sleep: Used between retry attempts.
        which: PATH lookup used by preconditions.

    Returns:
        RunResult with the report and the process exit code.
    """
    result = RunResult(dry_run=dry_run)

    # ── Load config ──────────────────────────────────────────────
    try:
        if config_path is None:
            config_path = find_config_file()
        config = load_config(config_path)
        result.config_path = config_path

        run_id = generate_run_id()
        ctx = build_context(config, run_id, dry_run=dry_run)
    except ConfigError as e:
        return _fail(result, str(e))

    # ── Privilege gate ───────────────────────────────────────────
    try:
        check_privilege(geteuid)
    except PrivilegeError as e:
        return _fail(result, str(e))

    # ── Build the catalog ────────────────────────────────────────
    tools = build_toolbox(run_id, adapters, prompter, echo=echo, sleep=sleep, which=which)
    registry = catalog(config, tools)
    try:
        steps = registry.select(only, skip)
    except RegistryError as e:
        return _fail(result, str(e))

    result.log_file = log_file_path(config, ctx)
    run_log = RunLog(result.log_file, echo=echo, owner=home_owner(result.log_file, ctx))

    # ── Execute ──────────────────────────────────────────────────
    mode = " (dry run)" if dry_run else ""
    run_log.info(f"Provisioning started for {ctx.user}{mode}: {len(steps)} steps, run {run_id}")
    logger.info("Running %d of %d steps", len(steps), len(registry))

    report = RunReport(run_id=run_id)
    result.report = report
    try:
        run_steps(steps, ctx, run_log, report)
    except KeyboardInterrupt:
        report.interrupted = True
        done = {r.step for r in report.results}
        report.not_run = [s.name for s in steps if s.name not in done]
        run_log.error("Interrupted by user; completed steps are kept")

    if report.interrupted:
        result.exit_code = EXIT_INTERRUPTED
    elif report.aborted:
        run_log.error(
            f"Provisioning aborted by {report.aborted_by}; "
            f"{len(report.not_run)} steps not run"
        )
        result.exit_code = EXIT_FAILED
    else:
        run_log.info(
            f"Provisioning finished: {report.succeeded} succeeded, "
            f"{report.skipped} skipped, {report.failed} failed"
        )

    # ── Write run history ────────────────────────────────────────
    state_dir = state_dir_path(config, ctx)
    audit_writer = AuditWriter(state_dir=state_dir, owner=home_owner(state_dir, ctx))
    result.history_file = audit_writer.path
    write_audit_entry(report, audit_writer, dry_run=dry_run)

    return result


def home_owner(path: Path, ctx: RunContext) -> str | None:
    """The user to hand ``path`` to: ``ctx.user`` inside their home, else nobody."""
    return ctx.user if path.is_relative_to(ctx.home) else None


def _fail(result: RunResult, error: str) -> RunResult:
    logger.debug("Run not started: %s", error)
    result.error = error
    result.exit_code = EXIT_FAILED
    return result


def _discard(line: str) -> None:
    pass
