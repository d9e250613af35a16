"""
Tests for persistence — the run-history ledger.
"""

import json
from pathlib import Path

from provisioner.core.persistence.audit import AuditWriter, RunRecord


class TestAuditWriter:
    def test_write_and_read(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "runs.ndjson")
        writer.write(RunRecord(run_id="run-1", status="ok", steps_total=20, steps_skipped=18, steps_succeeded=2))
        records = writer.read_all()
        assert len(records) == 1
        assert records[0].run_id == "run-1"
        assert records[0].steps_total == 20

    def test_one_json_line_per_run(self, tmp_path: Path):
        path = tmp_path / "runs.ndjson"
        writer = AuditWriter(path)
        writer.write(RunRecord(run_id="run-1"))
        writer.write(RunRecord(run_id="run-2", status="aborted", aborted_by="aur-helper"))
        lines = path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["aborted_by"] == "aur-helper"

    def test_state_dir(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path / "state")
        assert writer.path == tmp_path / "state" / "runs.ndjson"
        writer.write(RunRecord(run_id="run-1"))
        assert writer.path.is_file()

    def test_read_missing_file(self, tmp_path: Path):
        assert AuditWriter(tmp_path / "absent.ndjson").read_all() == []

    def test_corrupt_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "runs.ndjson"
        writer = AuditWriter(path)
        writer.write(RunRecord(run_id="run-1"))
        with path.open("a") as f:
            f.write("{not json\n\n")
        writer.write(RunRecord(run_id="run-2"))
        assert [r.run_id for r in writer.read_all()] == ["run-1", "run-2"]

    def test_read_recent(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "runs.ndjson")
        for i in range(5):
            writer.write(RunRecord(run_id=f"run-{i}"))
        assert [r.run_id for r in writer.read_recent(2)] == ["run-3", "run-4"]

    def test_write_error_is_not_raised(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        writer = AuditWriter(blocker / "runs.ndjson")
        writer.write(RunRecord(run_id="run-1"))
        assert writer.read_all() == []

    def test_new_ledger_handed_to_owner(self, tmp_path: Path, chowns):
        home = tmp_path / "home"
        home.mkdir()
        state = home / ".local" / "state" / "provisioner"
        writer = AuditWriter(state_dir=state, owner="alice")
        writer.write(RunRecord(run_id="run-1"))
        assert [path for path, _, _ in chowns] == [
            home / ".local",
            home / ".local" / "state",
            state,
            state / "runs.ndjson",
        ]
        assert {(uid, gid) for _, uid, gid in chowns} == {(1000, 1000)}

    def test_existing_ledger_keeps_ownership(self, tmp_path: Path, chowns):
        writer = AuditWriter(tmp_path / "runs.ndjson", owner="alice")
        writer.write(RunRecord(run_id="run-1"))
        chowns.clear()
        writer.write(RunRecord(run_id="run-2"))
        assert chowns == []
        assert len(writer.read_all()) == 2

    def test_no_owner_no_chown(self, tmp_path: Path, chowns):
        AuditWriter(state_dir=tmp_path / "state").write(RunRecord(run_id="run-1"))
        assert chowns == []
