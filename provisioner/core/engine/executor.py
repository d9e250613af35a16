"""
Step runner — the central provisioning loop.

Takes the ordered steps of a registry and executes them one at a time:
log the start, honour category toggles, ask the precondition, run the
action, record a StepResult. Every exception a step raises is caught
here, at the step boundary, and becomes exactly one log entry.

Flow:
    for step in order → category? → precondition? → action → StepResult
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Sequence

from provisioner.core.engine.errors import (
    CredentialFileError,
    ExternalToolFailure,
    PreconditionCheckError,
    StepSkipped,
)
from provisioner.core.models.context import RunContext
from provisioner.core.models.step import Step, StepResult
from provisioner.core.observability.run_log import RunLog
from provisioner.core.persistence.audit import AuditWriter, RunRecord

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Outcome of one run, in execution order."""

    run_id: str = ""
    results: list[StepResult] = field(default_factory=list)
    not_run: list[str] = field(default_factory=list)
    aborted_by: str | None = None
    interrupted: bool = False

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.status == "succeeded")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "failed")

    @property
    def aborted(self) -> bool:
        return self.aborted_by is not None

    @property
    def status(self) -> str:
        if self.aborted or self.interrupted:
            return "aborted"
        if self.failed == 0:
            return "ok"
        if self.succeeded + self.skipped > 0:
            return "partial"
        return "failed"

    def get(self, step_name: str) -> StepResult | None:
        for result in self.results:
            if result.step == step_name:
                return result
        return None

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "aborted_by": self.aborted_by,
            "interrupted": self.interrupted,
            "not_run": self.not_run,
            "results": [r.model_dump(mode="json") for r in self.results],
        }


def run_steps(
    steps: Sequence[Step],
    ctx: RunContext,
    run_log: RunLog,
    report: RunReport | None = None,
) -> RunReport:
    """Execute steps strictly in order and report per-step outcomes.

    Args:
        steps: Registered steps, in registration order.
        ctx: Run-wide parameters, passed to every precondition and action.
        run_log: Durable run log.
        report: Optional report to fill in place. The run use case passes
            its own so a Ctrl-C leaves it holding the steps done so far.

    Returns:
        The filled RunReport. A failing fatal step stops the loop; the
        steps after it are listed in ``not_run``.
    """
    if report is None:
        report = RunReport(run_id=ctx.run_id)

    for index, step in enumerate(steps):
        result = _run_one(step, ctx, run_log)
        report.results.append(result)

        if result.status == "failed" and step.fatal:
            report.aborted_by = step.name
            report.not_run = [s.name for s in steps[index + 1:]]
            break

    return report


def _run_one(step: Step, ctx: RunContext, run_log: RunLog) -> StepResult:
    run_log.info(f"Starting {step.name}", step=step.name)
    start = time.monotonic()

    def finish(status: str, detail: str = "") -> StepResult:
        return StepResult(
            step=step.name,
            status=status,
            detail=detail,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    if not ctx.enabled(step.category):
        detail = f"category '{step.category}' disabled"
        run_log.info(f"{step.name} skipped: {detail}", step=step.name)
        return finish("skipped", detail)

    try:
        satisfied = step.precondition(ctx)
    except PreconditionCheckError as e:
        run_log.warning(f"{step.name}: {e}; running it anyway", step=step.name)
        satisfied = False
    except Exception as e:
        logger.debug("Precondition of %s raised", step.name, exc_info=True)
        run_log.warning(f"{step.name}: precondition check failed ({e}); running it anyway", step=step.name)
        satisfied = False

    if satisfied:
        run_log.info(f"{step.name} skipped: already satisfied", step=step.name)
        return finish("skipped", "already satisfied")

    if ctx.dry_run:
        run_log.info(f"{step.name} skipped: [dry-run] would run", step=step.name)
        return finish("skipped", "[dry-run] would run")

    try:
        message = step.action(ctx)
    except StepSkipped as e:
        run_log.info(f"{step.name} skipped: {e}", step=step.name)
        return finish("skipped", str(e))
    except (ExternalToolFailure, CredentialFileError) as e:
        return _failed(step, run_log, finish, str(e))
    except Exception as e:
        logger.debug("Step %s raised", step.name, exc_info=True)
        return _failed(step, run_log, finish, f"{e.__class__.__name__}: {e}")

    detail = message or ""
    suffix = f" ({detail})" if detail else ""
    run_log.info(f"{step.name} completed successfully{suffix}", step=step.name)
    return finish("succeeded", detail)


def _failed(step: Step, run_log: RunLog, finish, detail: str) -> StepResult:
    if step.fatal:
        run_log.error(f"{step.name} failed, aborting run: {detail}", step=step.name)
    else:
        run_log.error(f"{step.name} failed: {detail}", step=step.name)
    return finish("failed", detail)


def write_audit_entry(report: RunReport, audit_writer: AuditWriter, dry_run: bool = False) -> None:
    """Write the run summary to the run-history ledger."""
    record = RunRecord(
        run_id=report.run_id,
        status=report.status,
        steps_total=report.total,
        steps_succeeded=report.succeeded,
        steps_skipped=report.skipped,
        steps_failed=report.failed,
        aborted_by=report.aborted_by,
        interrupted=report.interrupted,
        dry_run=dry_run,
        failures={r.step: r.detail for r in report.results if r.status == "failed"},
    )
    audit_writer.write(record)


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
