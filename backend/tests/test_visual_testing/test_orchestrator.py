"""
Tests for the batch regression orchestrator

Screenshots are served from memory by a fake fetcher; everything else
(run store, registry, ledger, comparison config) is the real SQLite-backed
implementation.
"""

import asyncio
from pathlib import Path

import pytest

from regression_toolkit.core.exceptions import FetchFailureError, PersistenceFailureError
from regression_toolkit.visual_testing.ledger import RegressionLedger
from regression_toolkit.visual_testing.orchestrator import (
    ProgressTracker,
    RegressionOrchestrator,
    match_screenshots,
)
from regression_toolkit.visual_testing.regions import IgnoreRegion


class FakeFetcher:
    """Serves screenshot bytes from a dict; references in `slow` hang"""

    def __init__(self, blobs, slow=()):
        self.blobs = blobs
        self.slow = set(slow)
        self.calls = []

    async def fetch(self, reference):
        self.calls.append(reference)
        if reference in self.slow:
            await asyncio.sleep(30)
        if reference not in self.blobs:
            raise FetchFailureError(reference, "not found")
        return self.blobs[reference]


class FailingLedger(RegressionLedger):
    """Ledger whose writes always fail"""

    def append(self, new):
        raise PersistenceFailureError("disk full")


@pytest.fixture
def analysis(run_store, registry, suite, make_png):
    """
    Baseline and current runs with five comparable pairs and two unmatched
    current screenshots (checkout/confirm and search)
    """
    baseline_run = suite["baseline_run_id"]
    current_run = suite["current_run_id"]

    run_store.add_result(baseline_run, "cart", "desktop", ["base/cart.png"])
    run_store.add_result(baseline_run, "cart", "mobile", ["base/cart-m.png"])
    run_store.add_result(
        baseline_run,
        "checkout",
        "desktop",
        [
            {"url": "base/co-open.png", "stepName": "open"},
            {"url": "base/co-pay.png", "stepName": "pay"},
        ],
    )

    run_store.add_result(current_run, "login", "desktop", ["cur/login.png"])
    run_store.add_result(current_run, "cart", "desktop", ["cur/cart.png"])
    run_store.add_result(current_run, "cart", "mobile", ["cur/cart-m.png"])
    run_store.add_result(
        current_run,
        "checkout",
        "desktop",
        [
            {"url": "cur/co-open.png", "stepName": "open"},
            {"url": "cur/co-pay.png", "stepName": "pay"},
            {"url": "cur/co-confirm.png", "stepName": "confirm"},
        ],
    )
    run_store.add_result(current_run, "search", "desktop", ["cur/search.png"])

    registry.set(suite["id"], baseline_run, "Release 1.0")

    plain = make_png(20, 20)
    blobs = {
        "baseline/login.png": plain,
        "cur/login.png": make_png(20, 20, rect=(0, 0, 4, 4)),
        "base/cart.png": plain,
        "cur/cart.png": plain,
        "base/cart-m.png": plain,
        "cur/cart-m.png": b"corrupt",
        "base/co-open.png": plain,
        "cur/co-open.png": plain,
        "base/co-pay.png": plain,
        "cur/co-pay.png": make_png(20, 20, rect=(0, 0, 10, 10)),
    }
    return {**suite, "blobs": blobs}


@pytest.fixture
def build_orchestrator(isolated_settings, run_store, registry, ledger, config_store, tmp_path):
    def _build(fetcher, ledger_override=None):
        return RegressionOrchestrator(
            run_store=run_store,
            registry=registry,
            ledger=ledger_override or ledger,
            config=config_store,
            fetcher=fetcher,
            settings=isolated_settings,
            diffs_dir=tmp_path / "diffs",
        )

    return _build


class TestBatchAnalysis:
    """Test a full analysis run"""

    def test_corrupt_pair_does_not_abort_batch(self, analysis, build_orchestrator, ledger):
        """Test one undecodable screenshot is reported while the rest complete."""
        orchestrator = build_orchestrator(FakeFetcher(analysis["blobs"]))

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        assert report.success is True
        assert report.total_comparisons == 4
        assert report.regressions_found == 4
        assert report.skipped == 2
        assert len(report.failures) == 1
        failure = report.failures[0]
        assert (failure.test_name, failure.viewport, failure.stage) == ("cart", "mobile", "decode")
        assert "1 pair(s) could not be compared" in report.message
        assert len(ledger.list_regressions(analysis["current_run_id"])) == 4

    def test_details_sorted_and_summarized(self, analysis, build_orchestrator):
        """Test details are ordered by test, viewport and step with batch totals."""
        orchestrator = build_orchestrator(FakeFetcher(analysis["blobs"]))

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        keys = [(d.test_name, d.viewport, d.step_name) for d in report.details]
        assert keys == [
            ("cart", "desktop", None),
            ("checkout", "desktop", "open"),
            ("checkout", "desktop", "pay"),
            ("login", "desktop", None),
        ]
        by_key = {(d.test_name, d.step_name): d.comparison for d in report.details}
        assert by_key[("login", None)].pixels_different == 16
        assert by_key[("checkout", "pay")].is_significant is True
        assert report.significant_regressions == 1
        assert report.average_difference == pytest.approx((0 + 0 + 25 + 4) / 4, abs=0.01)
        assert report.cancelled is False

    def test_regressions_recorded_with_baseline(self, analysis, build_orchestrator, ledger):
        """Test each comparison lands in the ledger as pending with its references."""
        orchestrator = build_orchestrator(FakeFetcher(analysis["blobs"]))

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        login = next(d for d in report.details if d.test_name == "login")
        regression = ledger.get(login.regression_id)
        assert regression.baseline_run_id == analysis["baseline_run_id"]
        assert regression.baseline_screenshot_url == "baseline/login.png"
        assert regression.current_screenshot_url == "cur/login.png"
        assert regression.status.value == "pending"

    def test_diff_images_written(self, analysis, build_orchestrator, ledger, tmp_path):
        """Test diff PNGs are written per run and linked from the regression."""
        orchestrator = build_orchestrator(FakeFetcher(analysis["blobs"]))

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        pay = next(d for d in report.details if d.step_name == "pay")
        diff_path = Path(ledger.get(pay.regression_id).diff_screenshot_url)
        assert diff_path.parent == tmp_path / "diffs" / analysis["current_run_id"]
        assert diff_path.name.startswith("checkout_desktop_pay_")
        assert diff_path.suffix == ".png"
        assert diff_path.read_bytes().startswith(b"\x89PNG")

    def test_names_that_sanitise_alike_keep_separate_diffs(
        self, run_store, registry, suite, build_orchestrator, ledger, make_png
    ):
        """Test "a/b" and "a-b" write and link their own diff images."""
        for name, slug in (("a-b", "dash"), ("a/b", "slash")):
            run_store.add_result(suite["baseline_run_id"], name, "desktop", [f"base/{slug}.png"])
            run_store.add_result(suite["current_run_id"], name, "desktop", [f"cur/{slug}.png"])
        registry.set(suite["id"], suite["baseline_run_id"])
        plain = make_png(20, 20)
        fetcher = FakeFetcher(
            {
                "base/dash.png": plain,
                "base/slash.png": plain,
                "cur/dash.png": make_png(20, 20, rect=(0, 0, 15, 15)),
                "cur/slash.png": make_png(20, 20, rect=(0, 0, 2, 2)),
            }
        )
        orchestrator = build_orchestrator(fetcher)

        report = asyncio.run(orchestrator.run_regression_analysis(suite["current_run_id"]))

        paths = {
            d.test_name: Path(ledger.get(d.regression_id).diff_screenshot_url)
            for d in report.details
        }
        assert paths["a-b"] != paths["a/b"]
        assert paths["a-b"].read_bytes() != paths["a/b"].read_bytes()

    def test_duplicate_steps_recorded_once(
        self, run_store, registry, suite, build_orchestrator, ledger, make_png
    ):
        """Test a step captured twice in one run is compared and recorded once."""
        run_store.add_result(
            suite["baseline_run_id"], "wizard", "desktop", [{"url": "base/s.png", "stepName": "s"}]
        )
        run_store.add_result(
            suite["current_run_id"],
            "wizard",
            "desktop",
            [
                {"url": "cur/s1.png", "stepName": "s"},
                {"url": "cur/s2.png", "stepName": "s"},
            ],
        )
        registry.set(suite["id"], suite["baseline_run_id"])
        plain = make_png(20, 20)
        fetcher = FakeFetcher({"base/s.png": plain, "cur/s1.png": plain, "cur/s2.png": plain})
        orchestrator = build_orchestrator(fetcher)

        report = asyncio.run(orchestrator.run_regression_analysis(suite["current_run_id"]))

        assert report.total_comparisons == 1
        assert report.skipped == 1
        assert "cur/s2.png" not in fetcher.calls
        assert len(ledger.list_regressions(suite["current_run_id"])) == 1

    def test_rerun_replaces_regressions(self, analysis, build_orchestrator, ledger):
        """Test analyzing the same run twice does not duplicate ledger rows."""
        orchestrator = build_orchestrator(FakeFetcher(analysis["blobs"]))

        first = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))
        second = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        assert {d.regression_id for d in first.details} == {d.regression_id for d in second.details}
        assert len(ledger.list_regressions(analysis["current_run_id"])) == 4

    def test_suite_threshold_applied(self, analysis, build_orchestrator, config_store):
        """Test per-viewport thresholds decide significance."""
        config_store.set_threshold(analysis["id"], "desktop", 0.01)
        orchestrator = build_orchestrator(FakeFetcher(analysis["blobs"]))

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        login = next(d for d in report.details if d.test_name == "login")
        assert login.comparison.threshold == 0.01
        assert login.comparison.is_significant is True
        assert report.significant_regressions == 2

    def test_ignore_regions_applied(self, analysis, build_orchestrator, config_store):
        """Test stored ignore regions mask changes for their test."""
        config_store.save_ignore_region(
            analysis["id"], IgnoreRegion(0, 0, 4, 4, "avatar"), test_name="login"
        )
        orchestrator = build_orchestrator(FakeFetcher(analysis["blobs"]))

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        login = next(d for d in report.details if d.test_name == "login")
        pay = next(d for d in report.details if d.step_name == "pay")
        assert login.comparison.pixels_different == 0
        assert pay.comparison.pixels_different == 100

    def test_dimension_mismatch_is_pair_failure(self, analysis, build_orchestrator, make_png):
        """Test a size mismatch fails only its pair, at the compare stage."""
        blobs = {**analysis["blobs"], "cur/login.png": make_png(30, 20)}
        orchestrator = build_orchestrator(FakeFetcher(blobs))

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        stages = {(f.test_name, f.stage) for f in report.failures}
        assert ("login", "compare") in stages
        assert report.total_comparisons == 3

    def test_fetch_failure_is_pair_failure(self, analysis, build_orchestrator):
        """Test a missing screenshot fails only its pair, at the fetch stage."""
        blobs = dict(analysis["blobs"])
        del blobs["base/cart.png"]
        orchestrator = build_orchestrator(FakeFetcher(blobs))

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        stages = {(f.test_name, f.viewport, f.stage) for f in report.failures}
        assert ("cart", "desktop", "fetch") in stages
        assert report.total_comparisons == 3

    def test_save_failures_reported(self, analysis, build_orchestrator, database):
        """Test ledger write failures are reported per pair."""
        orchestrator = build_orchestrator(
            FakeFetcher(analysis["blobs"]), ledger_override=FailingLedger(database)
        )

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        assert report.success is True
        assert report.total_comparisons == 0
        assert sorted(f.stage for f in report.failures) == ["decode"] + ["persist"] * 4
        assert "save failed for 4 pair(s)" in report.message


class TestAnalysisPreconditions:
    """Test runs that cannot be analyzed"""

    def test_no_baseline(self, analysis, build_orchestrator, registry, ledger):
        """Test a suite without baseline yields an unsuccessful report and no writes."""
        registry.clear(analysis["id"])
        fetcher = FakeFetcher(analysis["blobs"])
        orchestrator = build_orchestrator(fetcher)

        report = asyncio.run(orchestrator.run_regression_analysis(analysis["current_run_id"]))

        assert report.success is False
        assert report.message == "No baseline set for this suite"
        assert fetcher.calls == []
        assert ledger.list_regressions(analysis["current_run_id"]) == []
        assert orchestrator.has_baseline(analysis["id"]) is False

    def test_unknown_run(self, build_orchestrator):
        """Test an unknown run yields an unsuccessful report."""
        orchestrator = build_orchestrator(FakeFetcher({}))

        report = asyncio.run(orchestrator.run_regression_analysis("no-such-run"))

        assert report.success is False
        assert report.message == "Test run not found"

    def test_no_matching_screenshots(self, run_store, registry, suite, build_orchestrator):
        """Test a run with nothing in common with the baseline succeeds with zero comparisons."""
        run_store.add_result(suite["current_run_id"], "profile", "desktop", ["cur/profile.png"])
        registry.set(suite["id"], suite["baseline_run_id"])
        orchestrator = build_orchestrator(FakeFetcher({}))

        report = asyncio.run(orchestrator.run_regression_analysis(suite["current_run_id"]))

        assert report.success is True
        assert report.total_comparisons == 0
        assert report.skipped == 1
        assert "No matching screenshots" in report.message


class TestCancellation:
    """Test timeouts"""

    def test_timeout_keeps_completed_work(self, analysis, build_orchestrator, ledger):
        """Test outstanding pairs are cancelled and finished ones are kept."""
        fetcher = FakeFetcher(analysis["blobs"], slow={"cur/login.png"})
        orchestrator = build_orchestrator(fetcher)

        report = asyncio.run(
            orchestrator.run_regression_analysis(analysis["current_run_id"], timeout=2.0)
        )

        assert report.success is True
        assert report.cancelled is True
        assert "Analysis cancelled" in report.message
        assert "login" not in {d.test_name for d in report.details}
        assert report.total_comparisons == 3
        assert len(ledger.list_regressions(analysis["current_run_id"])) == 3

    def test_task_cancellation_propagates(self, analysis, build_orchestrator, ledger):
        """Test cancelling the calling task stops the batch and still cancels the task."""
        fetcher = FakeFetcher(analysis["blobs"], slow={"cur/login.png"})
        orchestrator = build_orchestrator(fetcher)

        async def cancel_midway():
            task = asyncio.create_task(
                orchestrator.run_regression_analysis(analysis["current_run_id"])
            )
            await asyncio.sleep(2.0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return task

        task = asyncio.run(cancel_midway())

        assert task.cancelled()
        assert len(ledger.list_regressions(analysis["current_run_id"])) == 3


class TestProgress:
    """Test progress tracking"""

    def test_progress_reaches_total(self, analysis, build_orchestrator):
        """Test the tracker is told about every finished pair."""
        tracker = ProgressTracker()
        seen = []
        tracker.on_progress(seen.append)
        orchestrator = build_orchestrator(FakeFetcher(analysis["blobs"]))

        asyncio.run(
            orchestrator.run_regression_analysis(analysis["current_run_id"], progress=tracker)
        )

        assert seen[0] == {"completed": 0, "total": 5, "percentage": 0}
        assert seen[-1] == {"completed": 5, "total": 5, "percentage": 100}
        assert tracker.get_progress()["completed"] == 5

    def test_failing_callback_is_ignored(self, analysis, build_orchestrator):
        """Test a broken listener does not break the analysis."""
        tracker = ProgressTracker()
        tracker.on_progress(lambda progress: 1 / 0)
        orchestrator = build_orchestrator(FakeFetcher(analysis["blobs"]))

        report = asyncio.run(
            orchestrator.run_regression_analysis(analysis["current_run_id"], progress=tracker)
        )

        assert report.total_comparisons == 4

    def test_tracker_percentage(self):
        """Test percentages are rounded to whole numbers."""
        tracker = ProgressTracker()
        tracker.set_total(3)
        tracker.increment()

        assert tracker.get_progress() == {"completed": 1, "total": 3, "percentage": 33}
        assert ProgressTracker().get_progress()["percentage"] == 0


class TestMatchScreenshots:
    """Test pairing current screenshots with the baseline"""

    def test_first_screenshot_compared_without_steps(self):
        """Test results without step names compare their first screenshots."""
        current = [{"test_name": "home", "viewport": "desktop", "screenshots": ["c1.png", "c2.png"]}]
        baseline = [{"test_name": "home", "viewport": "desktop", "screenshots": ["b1.png"]}]

        pairs, skipped = match_screenshots(current, baseline)

        assert [(p.baseline_ref, p.current_ref, p.step_name) for p in pairs] == [
            ("b1.png", "c1.png", None)
        ]
        assert skipped == 0

    def test_steps_matched_by_name(self):
        """Test step screenshots match by name, not position."""
        current = [
            {
                "test_name": "home",
                "viewport": "desktop",
                "screenshots": [
                    {"url": "c-b.png", "stepName": "b"},
                    {"url": "c-a.png", "stepName": "a"},
                ],
            }
        ]
        baseline = [
            {
                "test_name": "home",
                "viewport": "desktop",
                "screenshots": [
                    {"url": "b-a.png", "stepName": "a"},
                    {"url": "b-b.png", "stepName": "b"},
                ],
            }
        ]

        pairs, skipped = match_screenshots(current, baseline)

        assert {(p.step_name, p.baseline_ref, p.current_ref) for p in pairs} == {
            ("a", "b-a.png", "c-a.png"),
            ("b", "b-b.png", "c-b.png"),
        }
        assert skipped == 0

    def test_viewport_must_match(self):
        """Test a result at another viewport is not a counterpart."""
        current = [{"test_name": "home", "viewport": "mobile", "screenshots": ["c.png"]}]
        baseline = [{"test_name": "home", "viewport": "desktop", "screenshots": ["b.png"]}]

        pairs, skipped = match_screenshots(current, baseline)

        assert pairs == []
        assert skipped == 1

    def test_results_without_screenshots_ignored(self):
        """Test results with no screenshots are neither paired nor skipped."""
        current = [{"test_name": "home", "viewport": "desktop", "screenshots": []}]
        baseline = [{"test_name": "home", "viewport": "desktop", "screenshots": ["b.png"]}]

        assert match_screenshots(current, baseline) == ([], 0)

    def test_repeated_result_paired_once(self):
        """Test a (test, viewport) reported twice in the current run is paired once."""
        current = [
            {"test_name": "home", "viewport": "desktop", "screenshots": ["c1.png"]},
            {"test_name": "home", "viewport": "desktop", "screenshots": ["c2.png"]},
        ]
        baseline = [{"test_name": "home", "viewport": "desktop", "screenshots": ["b.png"]}]

        pairs, skipped = match_screenshots(current, baseline)

        assert [p.current_ref for p in pairs] == ["c1.png"]
        assert skipped == 1
