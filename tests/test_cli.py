"""Smoke tests for the command-line interface."""

import json
from datetime import date

import pytest

from clinicroster.cli import create_sample_clinic, main
from clinicroster.domain.models import BatchStatus
from clinicroster.storage.loader import dump_clinic


@pytest.fixture
def data_file(tmp_path):
    """The sample clinic for March 2026 written to disk."""
    store, _ = create_sample_clinic(2026, 3)
    path = tmp_path / "clinic.json"
    path.write_text(json.dumps(dump_clinic(store, "default")))
    return path


class TestSampleClinic:
    """Tests for the demo data builder."""

    def test_sample_clinic_shape(self):
        store, batch_id = create_sample_clinic(2026, 3)
        assert batch_id == "2026-03-nursing"
        assert len(store.get_staff("default", "Nursing")) == 16
        rosters = store.get_rosters("default", date(2026, 3, 1), date(2026, 4, 4))
        assert all(r.roster_date.weekday() != 6 for r in rosters)
        assert any(r.has_night_shift for r in rosters)


class TestCommands:
    """End-to-end command tests."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_demo(self, capsys):
        assert main(["demo", "--year", "2026", "--month", "3"]) == 0
        out = capsys.readouterr().out
        assert "Week 2026-W10: completed" in out
        assert "Fairness after deploy" in out

    def test_run_week_writes_output(self, data_file, tmp_path, capsys):
        output = tmp_path / "out.json"
        code = main([
            "run-week", "-d", str(data_file), "-b", "2026-03-nursing",
            "-w", "2026-W10", "-o", str(output), "--json",
        ])
        assert code == 0
        printed = capsys.readouterr().out
        result = json.loads(printed[: printed.rindex("}") + 1])
        assert result["success"] is True
        assert result["week"] == "2026-W10"
        saved = json.loads(output.read_text())
        assert saved["assignments"]["2026-03-nursing"]

    def test_check_leave(self, data_file, capsys):
        assert main(["check-leave", "-d", str(data_file), "-s", "S01", "2026-03-11"]) == 0
        assert '"allowed": true' in capsys.readouterr().out

    def test_check_leave_denied_exit_code(self, data_file):
        # Sundays have no roster, so the category slot is held
        assert main(["check-leave", "-d", str(data_file), "-s", "S01", "2026-03-15"]) == 3

    def test_submit_and_review(self, data_file, tmp_path, capsys):
        submitted = tmp_path / "submitted.json"
        assert main([
            "check-leave", "-d", str(data_file), "-s", "S01", "2026-03-11",
            "--submit", "-o", str(submitted),
        ]) == 0
        reviewed = tmp_path / "reviewed.json"
        assert main([
            "review", "-d", str(submitted), "--start", "2026-03-01", "--end", "2026-03-31",
            "-o", str(reviewed),
        ]) == 0
        leaves = json.loads(reviewed.read_text())["leaves"]
        assert [lv["status"] for lv in leaves] == ["confirmed"]

    def test_slots(self, data_file, capsys):
        assert main(["slots", "-d", str(data_file), "2026-03-11"]) == 0
        out = capsys.readouterr().out
        assert "Lead" in out and "Senior" in out

    def test_deploy_and_fairness(self, data_file, tmp_path, capsys):
        output = tmp_path / "deployed.json"
        assert main(["deploy", "-d", str(data_file), "-b", "2026-03-nursing", "-o", str(output)]) == 0
        saved = json.loads(output.read_text())
        assert saved["batches"][0]["status"] == BatchStatus.DEPLOYED.value
        assert len(saved["profiles"]) == 16
        assert main(["fairness", "-d", str(output), "-b", "2026-03-nursing"]) == 0

    def test_errors_reported(self, data_file, capsys):
        assert main(["run-week", "-d", str(data_file), "-b", "missing", "-w", "2026-W10"]) == 2
        assert "error" in capsys.readouterr().err
