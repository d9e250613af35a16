"""
Tests for the step runner — ordering, skips, failures, abort, audit.
"""

from pathlib import Path

import pytest

from provisioner.core.engine.errors import (
    CredentialFileError,
    DestructiveActionDeclined,
    ExternalToolFailure,
    PreconditionCheckError,
    PrivilegeError,
    StepSkipped,
)
from provisioner.core.engine.executor import (
    RunReport,
    generate_run_id,
    run_steps,
    write_audit_entry,
)
from provisioner.core.models.context import RunContext
from provisioner.core.models.step import Step, StepResult
from provisioner.core.persistence.audit import AuditWriter
from provisioner.core.security.privilege import check_privilege


class Recorder:
    """Builds steps whose actions record that they ran."""

    def __init__(self):
        self.calls: list[str] = []

    def step(self, name, *, satisfied=False, raises=None, result=None, **kwargs) -> Step:
        def action(ctx):
            self.calls.append(name)
            if raises is not None:
                raise raises
            return result

        def precondition(ctx):
            if isinstance(satisfied, Exception):
                raise satisfied
            return satisfied

        return Step(name=name, description=name, action=action, precondition=precondition, **kwargs)


@pytest.fixture
def rec() -> Recorder:
    return Recorder()


# ── Ordering and skips ───────────────────────────────────────────────


class TestRunSteps:
    def test_runs_in_order(self, rec, ctx, run_log):
        steps = [rec.step("a"), rec.step("b"), rec.step("c")]
        report = run_steps(steps, ctx, run_log)
        assert rec.calls == ["a", "b", "c"]
        assert [r.step for r in report.results] == ["a", "b", "c"]
        assert report.status == "ok"

    def test_each_step_logs_starting(self, rec, ctx, run_log):
        run_steps([rec.step("a"), rec.step("b")], ctx, run_log)
        starts = [m for m in run_log.messages() if m.startswith("Starting")]
        assert starts == ["Starting a", "Starting b"]

    def test_satisfied_precondition_never_runs_action(self, rec, ctx, run_log):
        report = run_steps([rec.step("a", satisfied=True)], ctx, run_log)
        assert rec.calls == []
        assert report.get("a").status == "skipped"
        assert report.get("a").detail == "already satisfied"
        assert "a skipped: already satisfied" in run_log.messages()

    def test_success_message_logged(self, rec, ctx, run_log):
        run_steps([rec.step("a", result="3 shares mounted")], ctx, run_log)
        assert "a completed successfully (3 shares mounted)" in run_log.messages()

    def test_disabled_category_skipped(self, rec, user, home, run_log):
        ctx = RunContext(run_id="t", user=user, home=home, categories={"gaming": False})
        report = run_steps([rec.step("gaming", category="gaming")], ctx, run_log)
        assert rec.calls == []
        assert report.get("gaming").detail == "category 'gaming' disabled"

    def test_precondition_error_warns_and_runs(self, rec, ctx, run_log):
        step = rec.step("upgrade", satisfied=PreconditionCheckError("checkupdates is not installed"))
        report = run_steps([step], ctx, run_log)
        assert rec.calls == ["upgrade"]
        assert report.get("upgrade").status == "succeeded"
        warnings = run_log.messages("WARNING")
        assert len(warnings) == 1
        assert "checkupdates is not installed" in warnings[0]

    def test_unexpected_precondition_error_also_runs(self, rec, ctx, run_log):
        report = run_steps([rec.step("a", satisfied=OSError("permission denied"))], ctx, run_log)
        assert rec.calls == ["a"]
        assert report.get("a").ok

    def test_dry_run_evaluates_preconditions_only(self, rec, user, home, run_log):
        ctx = RunContext(run_id="t", user=user, home=home, dry_run=True)
        report = run_steps([rec.step("a"), rec.step("b", satisfied=True)], ctx, run_log)
        assert rec.calls == []
        assert report.get("a").detail == "[dry-run] would run"
        assert report.get("b").detail == "already satisfied"

    def test_step_skipped_exception(self, rec, ctx, run_log):
        report = run_steps([rec.step("snapshots", raises=StepSkipped("root is ext4, not btrfs"))], ctx, run_log)
        assert report.get("snapshots").status == "skipped"
        assert run_log.messages("ERROR") == []

    def test_declined_counts_as_skipped(self, rec, ctx, run_log):
        report = run_steps([rec.step("snapshots", raises=DestructiveActionDeclined("left untouched"))], ctx, run_log)
        assert report.get("snapshots").status == "skipped"
        assert report.status == "ok"


# ── Failures ─────────────────────────────────────────────────────────


class TestFailures:
    def test_continue_on_failure_does_not_stop_later_steps(self, rec, ctx, run_log):
        failing = rec.step("firmware", raises=ExternalToolFailure("fwupdmgr update", 1, "no network"))
        report = run_steps([rec.step("a"), failing, rec.step("c")], ctx, run_log)
        assert rec.calls == ["a", "firmware", "c"]
        assert report.get("firmware").status == "failed"
        assert report.get("c").status == "succeeded"
        assert report.status == "partial"
        assert not report.aborted

    def test_exactly_one_error_entry_per_failure(self, rec, ctx, run_log):
        failing = rec.step("firmware", raises=ExternalToolFailure("fwupdmgr update", 1, "no network"))
        run_steps([failing], ctx, run_log)
        errors = run_log.messages("ERROR")
        assert len(errors) == 1
        assert errors[0].startswith("firmware failed: `fwupdmgr update` exited with code 1")
        assert "no network" in errors[0]

    def test_fatal_failure_aborts(self, rec, ctx, run_log):
        fatal = rec.step("aur-helper", raises=ExternalToolFailure("makepkg -si", 1), continue_on_failure=False)
        report = run_steps([fatal, rec.step("flatpak"), rec.step("summary")], ctx, run_log)
        assert rec.calls == ["aur-helper"]
        assert report.aborted_by == "aur-helper"
        assert report.not_run == ["flatpak", "summary"]
        assert report.status == "aborted"
        assert run_log.messages("ERROR")[0].startswith("aur-helper failed, aborting run")

    def test_fatal_step_that_succeeds_does_not_abort(self, rec, ctx, run_log):
        report = run_steps([rec.step("aur-helper", continue_on_failure=False), rec.step("b")], ctx, run_log)
        assert rec.calls == ["aur-helper", "b"]
        assert not report.aborted

    def test_credential_error_fails_step(self, rec, ctx, run_log):
        step = rec.step("cifs-mounts", raises=CredentialFileError("cannot write /etc/cifs-credentials"))
        report = run_steps([step, rec.step("next")], ctx, run_log)
        assert report.get("cifs-mounts").status == "failed"
        assert report.get("next").ok

    def test_unexpected_exception_fails_step(self, rec, ctx, run_log):
        report = run_steps([rec.step("a", raises=ValueError("bad"))], ctx, run_log)
        assert report.get("a").detail == "ValueError: bad"
        assert report.status == "failed"

    def test_keyboard_interrupt_propagates(self, rec, ctx, run_log):
        report = RunReport(run_id="t")
        with pytest.raises(KeyboardInterrupt):
            run_steps([rec.step("a"), rec.step("b", raises=KeyboardInterrupt())], ctx, run_log, report)
        assert [r.step for r in report.results] == ["a"]


# ── Report and audit ─────────────────────────────────────────────────


class TestRunReport:
    def test_counts(self):
        report = RunReport(
            run_id="r",
            results=[
                StepResult(step="a", status="succeeded"),
                StepResult(step="b", status="skipped"),
                StepResult(step="c", status="failed", detail="boom"),
            ],
        )
        assert (report.total, report.succeeded, report.skipped, report.failed) == (3, 1, 1, 1)
        data = report.to_dict()
        assert data["status"] == "partial"
        assert data["results"][2]["detail"] == "boom"

    def test_all_failed(self):
        report = RunReport(results=[StepResult(step="a", status="failed")])
        assert report.status == "failed"

    def test_interrupted(self):
        assert RunReport(interrupted=True).status == "aborted"

    def test_write_audit_entry(self, tmp_path: Path):
        report = RunReport(
            run_id="run-1",
            results=[StepResult(step="a", status="succeeded"), StepResult(step="b", status="failed", detail="x")],
        )
        writer = AuditWriter(tmp_path / "runs.ndjson")
        write_audit_entry(report, writer, dry_run=True)
        record = writer.read_all()[0]
        assert record.run_id == "run-1"
        assert record.status == "partial"
        assert record.failures == {"b": "x"}
        assert record.dry_run is True

    def test_generate_run_id(self):
        first, second = generate_run_id(), generate_run_id()
        assert first.startswith("run-")
        assert first != second


# ── Privilege gate ───────────────────────────────────────────────────


class TestPrivilege:
    def test_root_passes(self):
        check_privilege(lambda: 0)

    def test_non_root_refused(self):
        with pytest.raises(PrivilegeError, match="effective uid is 1000"):
            check_privilege(lambda: 1000)

    def test_is_permission_error(self):
        with pytest.raises(PermissionError):
            check_privilege(lambda: 1000)
