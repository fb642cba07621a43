"""
Tests for the command-line interface
"""

import pytest
from click.testing import CliRunner

from regression_toolkit.cli import main
from regression_toolkit.storage.database import get_database
from regression_toolkit.storage.run_store import SqlRunStore
from regression_toolkit.visual_testing.ledger import RegressionLedger


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_suite(tmp_path, make_png):
    """Suite in the configured database with baseline and current runs on disk"""
    base = tmp_path / "base.png"
    cur = tmp_path / "cur.png"
    base.write_bytes(make_png(20, 20))
    cur.write_bytes(make_png(20, 20, rect=(0, 0, 4, 4)))

    store = SqlRunStore(get_database())
    suite = store.create_suite("CLI suite")
    baseline_run = store.create_run(suite["id"])
    current_run = store.create_run(suite["id"])
    store.add_result(baseline_run["id"], "login", "desktop", [str(base)])
    store.add_result(current_run["id"], "login", "desktop", [str(cur)])
    return {
        "id": suite["id"],
        "baseline_run_id": baseline_run["id"],
        "current_run_id": current_run["id"],
    }


class TestCompareCommand:
    """Test `compare`"""

    def test_compare_files(self, runner, tmp_path, make_png):
        """Test two files are compared and the summary printed."""
        base = tmp_path / "a.png"
        cur = tmp_path / "b.png"
        base.write_bytes(make_png(20, 20))
        cur.write_bytes(make_png(20, 20, rect=(0, 0, 4, 4)))
        diff = tmp_path / "out" / "diff.png"

        result = runner.invoke(main, ["compare", str(base), str(cur), "-t", "0.01", "-o", str(diff)])

        assert result.exit_code == 0, result.output
        assert "4.00%" in result.output
        assert diff.read_bytes().startswith(b"\x89PNG")

    def test_compare_with_ignore_region(self, runner, tmp_path, make_png):
        """Test --ignore masks a rectangle."""
        base = tmp_path / "a.png"
        cur = tmp_path / "b.png"
        base.write_bytes(make_png(20, 20))
        cur.write_bytes(make_png(20, 20, rect=(0, 0, 4, 4)))

        result = runner.invoke(main, ["compare", str(base), str(cur), "-i", "0,0,4,4"])

        assert result.exit_code == 0, result.output
        assert "0.00%" in result.output

    def test_bad_region(self, runner, tmp_path, make_png):
        """Test malformed --ignore values are rejected."""
        base = tmp_path / "a.png"
        base.write_bytes(make_png())

        result = runner.invoke(main, ["compare", str(base), str(base), "-i", "0,0,4"])

        assert result.exit_code != 0

    def test_dimension_mismatch(self, runner, tmp_path, make_png):
        """Test a size mismatch exits with an error."""
        base = tmp_path / "a.png"
        cur = tmp_path / "b.png"
        base.write_bytes(make_png(20, 20))
        cur.write_bytes(make_png(10, 20))

        result = runner.invoke(main, ["compare", str(base), str(cur)])

        assert result.exit_code == 1
        assert "dimensions differ" in result.output


class TestRunCommands:
    """Test baseline, analyze, list, review, stats and trends"""

    def test_analyze_without_baseline(self, runner, cli_suite):
        """Test analysis of a suite without baseline exits 1."""
        result = runner.invoke(main, ["analyze", cli_suite["current_run_id"]])

        assert result.exit_code == 1
        assert "No baseline set" in result.output

    def test_full_review_flow(self, runner, cli_suite):
        """Test setting a baseline, analyzing, listing and reviewing."""
        result = runner.invoke(main, ["baseline", "set", cli_suite["id"], cli_suite["baseline_run_id"]])
        assert result.exit_code == 0, result.output

        result = runner.invoke(main, ["baseline", "show", cli_suite["id"]])
        assert cli_suite["baseline_run_id"] in result.output

        result = runner.invoke(main, ["analyze", cli_suite["current_run_id"]])
        assert result.exit_code == 0, result.output
        assert "Compared: 1" in result.output

        regression = RegressionLedger(get_database()).list_regressions(cli_suite["current_run_id"])[0]

        result = runner.invoke(main, ["review", regression.id, "approved", "--by", "kim"])
        assert result.exit_code == 0, result.output
        assert "approved" in result.output

        result = runner.invoke(main, ["stats", cli_suite["current_run_id"]])
        assert result.exit_code == 0, result.output
        assert "Approved" in result.output

        result = runner.invoke(main, ["trends", cli_suite["id"], "--days", "3"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(main, ["list", cli_suite["current_run_id"]])
        assert result.exit_code == 0, result.output
        assert "login" in result.output

    def test_review_invalid_status(self, runner):
        """Test an invalid status exits 1 before looking up the regression."""
        result = runner.invoke(main, ["review", "some-id", "rejected"])

        assert result.exit_code == 1
        assert "Invalid regression status" in result.output

    def test_baseline_clear(self, runner, cli_suite):
        """Test clearing a baseline."""
        runner.invoke(main, ["baseline", "set", cli_suite["id"], cli_suite["baseline_run_id"]])

        result = runner.invoke(main, ["baseline", "clear", cli_suite["id"]])
        assert result.exit_code == 0, result.output

        result = runner.invoke(main, ["baseline", "show", cli_suite["id"]])
        assert "No baseline set" in result.output

    def test_baseline_unknown_suite(self, runner):
        """Test unknown suites exit 1."""
        result = runner.invoke(main, ["baseline", "show", "missing"])

        assert result.exit_code == 1
