"""Integration tests for the lockgraph command line with real trace files."""

import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path

import pytest

from lockgraph.cli import format_analysis_report, main
from lockgraph.session import LockGraphAnalyzer
from tests.test_utils import TestData


class TestLockGraphIntegration(unittest.TestCase):
    """Integration tests for LockGraph analyzer."""

    @classmethod
    def setUpClass(cls):
        """Set up test fixtures for the test case."""
        cls.test_dir = tempfile.mkdtemp(prefix="lockgraph_test_")
        cls.analyzer = LockGraphAnalyzer()

        cls.deadlock_file = os.path.join(cls.test_dir, "basic_deadlock.json")
        with open(cls.deadlock_file, "w", encoding="utf-8") as f:
            json.dump(TestData.get_basic_deadlock(), f)

        cls.ordered_file = os.path.join(cls.test_dir, "ordered.json")
        with open(cls.ordered_file, "w", encoding="utf-8") as f:
            json.dump(TestData.get_ordered_locking(), f)

    @classmethod
    def tearDownClass(cls):
        """Clean up test fixtures."""
        shutil.rmtree(cls.test_dir, ignore_errors=True)

    def test_report_for_deadlock(self):
        """Test the full text report of a deadlocked trace."""
        result = self.analyzer.analyze_file(Path(self.deadlock_file))
        report = format_analysis_report(result, self.deadlock_file)

        self.assertIn("LockGraph Deadlock Analysis Report", report)
        self.assertIn("1 DEADLOCK CYCLE(S) DETECTED", report)
        self.assertIn("Deadlock cycle 1:", report)
        self.assertIn("REMEDIATION", report)
        self.assertIn("Hold Edges: 4", report)

    def test_report_for_clean_trace(self):
        """Test the full text report of a clean trace."""
        result = self.analyzer.analyze_file(Path(self.ordered_file))
        report = format_analysis_report(result, self.ordered_file)

        self.assertIn("NO DEADLOCK CYCLES DETECTED", report)
        self.assertNotIn("REMEDIATION", report)

    def test_report_for_failed_analysis(self):
        """Test the full text report when the file is missing."""
        missing = os.path.join(self.test_dir, "missing.json")
        result = self.analyzer.analyze_file(Path(missing))
        report = format_analysis_report(result, missing)

        self.assertIn("ANALYSIS FAILED", report)
        self.assertIn("File does not exist", report)


class TestCommandLine:
    """Tests for the lockgraph entry point."""

    @pytest.fixture
    def traces(self, tmp_path):
        deadlock = tmp_path / "deadlock.json"
        deadlock.write_text(json.dumps(TestData.get_basic_deadlock()), encoding="utf-8")
        ordered = tmp_path / "ordered.json"
        ordered.write_text(json.dumps(TestData.get_ordered_locking()), encoding="utf-8")
        return deadlock, ordered

    def test_prints_report(self, traces, capsys):
        """Test plain report output."""
        deadlock, _ = traces

        main([str(deadlock)])

        out = capsys.readouterr().out
        assert f"Analyzing {deadlock}..." in out
        assert "Deadlock detected!" in out

    def test_ci_mode_fails_on_deadlock(self, traces):
        """Test the CI exit code when a deadlock is found."""
        deadlock, _ = traces

        with pytest.raises(SystemExit) as excinfo:
            main(["--ci-mode", "--quiet", str(deadlock)])

        assert excinfo.value.code == 2

    def test_ci_mode_allows_configured_maximum(self, traces):
        """Test the --max-deadlocks threshold."""
        deadlock, ordered = traces

        with pytest.raises(SystemExit) as excinfo:
            main(["--ci-mode", "-q", "--max-deadlocks", "1", str(deadlock), str(ordered)])

        assert excinfo.value.code == 0

    def test_ci_mode_missing_file(self, tmp_path):
        """Test the CI exit code for a missing file."""
        with pytest.raises(SystemExit) as excinfo:
            main(["--ci-mode", str(tmp_path / "missing.json")])

        assert excinfo.value.code == 3

    def test_ci_mode_broken_trace(self, tmp_path):
        """Test the CI exit code for an unusable trace."""
        broken = tmp_path / "broken.json"
        broken.write_text("[", encoding="utf-8")

        with pytest.raises(SystemExit) as excinfo:
            main(["--ci-mode", "-q", str(broken)])

        assert excinfo.value.code == 3

    def test_no_files_prints_help(self, capsys):
        """Test running without arguments."""
        with pytest.raises(SystemExit) as excinfo:
            main([])

        assert excinfo.value.code == 1
        assert "usage: lockgraph" in capsys.readouterr().out

    def test_output_and_json_files(self, traces, tmp_path):
        """Test writing the text report and the JSON summary."""
        deadlock, ordered = traces
        report_path = tmp_path / "report.txt"
        json_path = tmp_path / "summary.json"

        main(
            [
                "-q",
                "--output",
                str(report_path),
                "--json",
                str(json_path),
                str(deadlock),
                str(ordered),
            ]
        )

        assert "Deadlock cycle 1:" in report_path.read_text(encoding="utf-8")
        summary = json.loads(json_path.read_text(encoding="utf-8"))
        assert summary["analysis_summary"]["total_files"] == 2
        assert summary["analysis_summary"]["files_with_deadlocks"] == 1
        assert summary["analysis_summary"]["total_cycles"] == 1
        first = summary["files"][0]
        assert first["has_deadlock"] is True
        assert len(first["graph"]["nodes"]) == 4
        assert first["metrics"]["edges"] == 6


if __name__ == "__main__":
    unittest.main()
