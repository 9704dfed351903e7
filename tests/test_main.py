"""
Tests for the command-line interface.
"""

import json
import os

import pytest

import main as cli

REPO_ROOT = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..")


@pytest.fixture(autouse=True)
def run_from_repo_root(monkeypatch):
    monkeypatch.chdir(REPO_ROOT)


class TestCli:
    """Test cases for main()."""

    def test_default_run(self, capsys):
        assert cli.main(["--ticks", "5", "--seed", "1"]) == 0
        out = capsys.readouterr().out
        assert "Loaded 8 jobs and 3 technicians" in out
        assert "TECHNICIAN SCHEDULES" in out
        assert "Optimizer assigned" in out

    def test_list_datasets(self, capsys):
        assert cli.main(["--list-datasets"]) == 0
        assert "nyc" in capsys.readouterr().out

    def test_unknown_dataset(self, capsys):
        assert cli.main(["--dataset", "atlantis"]) == 1
        assert "Unknown dataset" in capsys.readouterr().out

    def test_unknown_technician(self, capsys):
        assert cli.main(["--off", "T999", "--ticks", "0"]) == 1

    def test_off_duty_master_leaves_master_jobs(self, capsys):
        assert cli.main(["--off", "T001", "--ticks", "0"]) == 0
        # J101 was In Progress with T001 and goes back on the board
        assert "Still unassigned: J101, J105" in capsys.readouterr().out

    def test_dump(self, tmp_path):
        path = tmp_path / "jobs.json"
        assert cli.main(["--ticks", "0", "--dump", str(path)]) == 0

        records = json.loads(path.read_text())
        assert len(records) == 8
        assert all(r["status"] != "Pending" for r in records)
