"""
ArchFox provisioner — CLI entrypoint.

Usage:
    sudo provision run
    sudo provision run --dry-run
    provision steps
    provision history
    provision config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from provisioner import __version__
from provisioner.core.observability.logging_config import (
    FILE_ENV,
    FILE_LEVEL_ENV,
    resolve_level,
    setup_logging,
)

_STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red", "aborted": "red"}


@click.group()
@click.version_option(version=__version__, prog_name="provision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect, else built-in defaults).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provision a fresh Arch Linux install, idempotently."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(FILE_ENV),
        log_file_level=os.environ.get(FILE_LEVEL_ENV),
    )


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Check preconditions only; change nothing.")
@click.option("--only", "only", multiple=True, metavar="STEP", help="Run just this step (repeatable).")
@click.option("--skip", "skip", multiple=True, metavar="STEP", help="Leave out this step (repeatable).")
@click.pass_context
def run(
    ctx: click.Context,
    as_json: bool,
    dry_run: bool,
    only: tuple[str, ...],
    skip: tuple[str, ...],
) -> None:
    """Run the provisioning steps in order.

    Must run as root. Steps whose effect is already in place are skipped,
    so running it again is safe.

    Examples:

        sudo provision run

        sudo provision run --only cifs-mounts --only shell-config

        sudo provision run --dry-run --skip gaming
    """
    from provisioner.core.use_cases.run import run_provisioning

    result = run_provisioning(
        config_path=ctx.obj.get("config_path"),
        dry_run=dry_run,
        only=list(only) or None,
        skip=list(skip) or None,
        echo=None if as_json else click.echo,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    report = result.report
    assert report is not None

    if not ctx.obj.get("quiet"):
        mode_label = "[dry-run] " if dry_run else ""
        click.echo()
        click.secho(f"⚡ {mode_label}{report.run_id}", fg="cyan", bold=True)
        for step_result in report.results:
            timing = f" ({step_result.duration_ms}ms)" if step_result.duration_ms else ""
            if step_result.status == "succeeded":
                click.secho(f"   ✓ {step_result.step}", fg="green", nl=False)
            elif step_result.status == "skipped":
                click.secho(f"   ⊘ {step_result.step}", fg="yellow", nl=False)
            else:
                click.secho(f"   ✗ {step_result.step}", fg="red", nl=False)
            click.echo(timing)
            if step_result.detail and (step_result.status == "failed" or ctx.obj.get("verbose")):
                click.echo(f"     │ {step_result.detail}")
        for name in report.not_run:
            click.secho(f"   · {name} (not run)", dim=True)

    click.echo()
    click.secho(
        f"   Result: {report.status} | {report.succeeded} succeeded, "
        f"{report.skipped} skipped, {report.failed} failed",
        fg=_STATUS_COLORS.get(report.status, "white"),
        bold=True,
    )
    if result.log_file:
        click.echo(f"   Log: {result.log_file}")
    click.echo()
    sys.exit(result.exit_code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def steps(ctx: click.Context, as_json: bool) -> None:
    """List the provisioning steps in run order."""
    from provisioner.core.use_cases.status import list_steps

    result = list_steps(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    for index, step in enumerate(result.steps, start=1):
        tags = []
        if step.category:
            tags.append(step.category)
        if step.fatal:
            tags.append("fatal")
        label = f" [{', '.join(tags)}]" if tags else ""
        line = f"{index:>3}. {step.name}{label}  {step.description}"
        if step.enabled:
            click.echo(line)
        else:
            click.secho(f"{line} (disabled)", dim=True)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("-n", "count", default=10, show_default=True, type=click.IntRange(min=1), help="Number of runs.")
@click.pass_context
def history(ctx: click.Context, as_json: bool, count: int) -> None:
    """Show recent provisioning runs."""
    from provisioner.core.use_cases.status import run_history

    result = run_history(config_path=ctx.obj.get("config_path"), n=count)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    if not result.records:
        click.echo("No runs recorded yet.")
        return

    for record in result.records:
        mode = " [dry-run]" if record.dry_run else ""
        click.secho(f"{record.timestamp}  {record.run_id}{mode}  ", nl=False)
        click.secho(record.status, fg=_STATUS_COLORS.get(record.status, "white"), bold=True)
        click.echo(
            f"   {record.steps_succeeded} succeeded, {record.steps_skipped} skipped, "
            f"{record.steps_failed} failed of {record.steps_total}"
        )
        for step_name, detail in record.failures.items():
            click.echo(f"     ✗ {step_name}: {detail}")


# ── Config ───────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Provisioning configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate provision.yml configuration."""
    from provisioner.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        source = result.config_path or "built-in defaults"
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Source: {source}")
        click.echo(f"   Hostname: {result.config.hostname}")
        click.echo(f"   Shares: {len(result.config.shares)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


if __name__ == "__main__":
    cli()
