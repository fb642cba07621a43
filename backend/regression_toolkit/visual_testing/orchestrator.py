"""
Batch Regression Orchestrator

Compares every screenshot of a test run against the suite's baseline run,
records each outcome in the ledger and summarizes the batch. A failure on
one screenshot pair never aborts the batch: it is recorded as a per-pair
failure and the remaining pairs continue.
"""

import asyncio
import hashlib
import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

from regression_toolkit.core.config import Settings, get_settings
from regression_toolkit.core.exceptions import BaselineMissingError, ToolkitError
from regression_toolkit.core.interfaces import IComparisonConfig, IRunStore, IScreenshotFetcher
from regression_toolkit.visual_testing.baseline_registry import BaselineRegistry
from regression_toolkit.visual_testing.comparison import ComparisonOptions, ScreenshotComparator
from regression_toolkit.visual_testing.image import decode_image
from regression_toolkit.visual_testing.ledger import RegressionLedger
from regression_toolkit.visual_testing.models import (
    ComparisonDetail,
    NewRegression,
    PairFailure,
    PairOutcome,
    RegressionReport,
    ScreenshotPair,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[dict[str, Any]], None]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


# ============================================================
# Screenshot matching
# ============================================================


def _reference(entry: Any) -> str | None:
    if isinstance(entry, str):
        return entry or None
    if isinstance(entry, dict):
        return entry.get("url") or None
    return None


def _step_name(entry: Any) -> str | None:
    if isinstance(entry, dict):
        return entry.get("stepName") or entry.get("step_name") or None
    return None


def match_screenshots(
    current: list[dict[str, Any]],
    baseline: list[dict[str, Any]],
) -> tuple[list[ScreenshotPair], int]:
    """
    Pair current screenshots with their baseline counterparts

    Results match on (test_name, viewport). When the current result's
    screenshots carry step names, each step is matched by name; otherwise the
    first screenshot of each side is compared. A (test, viewport, step) triple
    is paired once; later duplicates in the current run are skipped.

    Returns:
        (pairs, skipped) where skipped counts current screenshots with no
        baseline counterpart
    """
    baseline_by_key: dict[tuple[str, str], dict[str, Any]] = {}
    for result in baseline:
        baseline_by_key.setdefault((result["test_name"], result["viewport"]), result)

    pairs: list[ScreenshotPair] = []
    skipped = 0
    seen: set[tuple[str, str, str | None]] = set()

    def add(pair: ScreenshotPair) -> None:
        nonlocal skipped
        key = (pair.test_name, pair.viewport, pair.step_name)
        if key in seen:
            logger.warning(f"Duplicate screenshot for {pair.label}, keeping the first")
            skipped += 1
            return
        seen.add(key)
        pairs.append(pair)

    for result in current:
        test_name = result["test_name"]
        viewport = result["viewport"]
        current_shots = result.get("screenshots") or []
        if not current_shots:
            continue

        base_result = baseline_by_key.get((test_name, viewport))
        base_shots = (base_result or {}).get("screenshots") or []

        if _step_name(current_shots[0]):
            base_steps: dict[str, str] = {}
            for entry in base_shots:
                step = _step_name(entry)
                ref = _reference(entry)
                if step and ref:
                    base_steps.setdefault(step, ref)

            for entry in current_shots:
                step = _step_name(entry)
                current_ref = _reference(entry)
                baseline_ref = base_steps.get(step) if step else None
                if not (current_ref and baseline_ref):
                    logger.debug(f"No baseline screenshot for {test_name} ({viewport}) / {step}")
                    skipped += 1
                    continue
                add(ScreenshotPair(test_name, viewport, step, baseline_ref, current_ref))
        else:
            current_ref = _reference(current_shots[0])
            baseline_ref = _reference(base_shots[0]) if base_shots else None
            if not (current_ref and baseline_ref):
                logger.debug(f"No baseline screenshot for {test_name} ({viewport})")
                skipped += 1
                continue
            add(ScreenshotPair(test_name, viewport, None, baseline_ref, current_ref))

    return pairs, skipped


async def _cancel_outstanding(tasks: list[asyncio.Future]) -> None:
    """Cancel unfinished tasks and wait until they have all stopped"""
    for task in tasks:
        if not task.done():
            task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


# ============================================================
# Progress tracking
# ============================================================


class ProgressTracker:
    """
    Tracks completed comparisons and notifies listeners

    Example:
        tracker = ProgressTracker()
        tracker.on_progress(lambda p: print(f"{p['percentage']}%"))
    """

    def __init__(self):
        self.total = 0
        self.completed = 0
        self._callbacks: list[ProgressCallback] = []

    def on_progress(self, callback: ProgressCallback) -> None:
        self._callbacks.append(callback)

    def set_total(self, total: int) -> None:
        self.total = total
        self.completed = 0
        self._notify()

    def increment(self) -> None:
        self.completed += 1
        self._notify()

    def get_progress(self) -> dict[str, Any]:
        percentage = round(self.completed / self.total * 100) if self.total else 0
        return {"completed": self.completed, "total": self.total, "percentage": percentage}

    def _notify(self) -> None:
        progress = self.get_progress()
        for callback in self._callbacks:
            try:
                callback(progress)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")


# ============================================================
# Orchestrator
# ============================================================


class RegressionOrchestrator:
    """
    Runs regression analysis for a test run against its suite's baseline.

    Pairs are processed concurrently, bounded by max_workers; decoding and
    pixel comparison run in worker threads.

    Example:
        report = await orchestrator.run_regression_analysis(run_id, timeout=120)
        print(f"{report.significant_regressions} significant regressions")
    """

    def __init__(
        self,
        run_store: IRunStore,
        registry: BaselineRegistry,
        ledger: RegressionLedger,
        config: IComparisonConfig,
        fetcher: IScreenshotFetcher,
        comparator: ScreenshotComparator | None = None,
        settings: Settings | None = None,
        diffs_dir: Path | None = None,
    ):
        """
        Initialize orchestrator

        Args:
            run_store: Source of runs and their screenshot references
            registry: Baseline registry
            ledger: Regression ledger
            config: Thresholds and ignore regions
            fetcher: Screenshot fetcher
            comparator: Pixel comparator (default: ScreenshotComparator)
            settings: Settings (default: get_settings())
            diffs_dir: Where diff PNGs are written (default: settings.diffs_dir)
        """
        self.settings = settings or get_settings()
        self.run_store = run_store
        self.registry = registry
        self.ledger = ledger
        self.config = config
        self.fetcher = fetcher
        self.comparator = comparator or ScreenshotComparator()
        self.diffs_dir = Path(diffs_dir) if diffs_dir is not None else self.settings.diffs_dir
        self.max_workers = self.settings.max_workers

    def has_baseline(self, suite_id: str) -> bool:
        """Quick check whether a suite has a baseline"""
        return self.registry.has_baseline(suite_id)

    async def run_regression_analysis(
        self,
        test_run_id: str,
        timeout: float | None = None,
        progress: ProgressTracker | None = None,
    ) -> RegressionReport:
        """
        Compare a run's screenshots against the suite baseline

        Args:
            test_run_id: Run to analyze
            timeout: Seconds after which outstanding comparisons are cancelled
            progress: Optional tracker updated as pairs complete

        Returns:
            RegressionReport. success=False only when the analysis could not
            start (unknown run, no baseline); on timeout, completed work is
            kept and reported with cancelled=True.

        Raises:
            asyncio.CancelledError: If the calling task is cancelled. Outstanding
                comparisons are stopped first; regressions already recorded stay.
        """
        run = self.run_store.get_run(test_run_id)
        if run is None:
            logger.warning(f"Regression analysis requested for unknown run {test_run_id}")
            return RegressionReport(success=False, message="Test run not found")

        suite_id = run["suite_id"]
        try:
            baseline_run_id = self.registry.require_run_id(suite_id)
        except BaselineMissingError:
            logger.info(f"Suite {suite_id} has no baseline, skipping analysis of {test_run_id}")
            return RegressionReport(success=False, message="No baseline set for this suite")

        pairs, skipped = match_screenshots(
            self.run_store.get_results(test_run_id),
            self.run_store.get_results(baseline_run_id),
        )

        if not pairs:
            return RegressionReport(
                success=True,
                message="No matching screenshots found between baseline and current run",
                skipped=skipped,
            )

        logger.info(
            f"Analyzing run {test_run_id} against baseline {baseline_run_id}: "
            f"{len(pairs)} pair(s), {skipped} skipped"
        )

        if progress is not None:
            progress.set_total(len(pairs))

        semaphore = asyncio.Semaphore(self.max_workers)

        async def _run_one(pair: ScreenshotPair) -> PairOutcome:
            async with semaphore:
                try:
                    return await self._process_pair(pair, suite_id, test_run_id, baseline_run_id)
                finally:
                    if progress is not None:
                        progress.increment()

        tasks = [asyncio.ensure_future(_run_one(pair)) for pair in pairs]

        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
        except asyncio.CancelledError:
            logger.warning(
                f"Regression analysis of {test_run_id} cancelled, stopping outstanding comparisons"
            )
            await _cancel_outstanding(tasks)
            raise

        cancelled = bool(pending)
        if cancelled:
            logger.warning(
                f"Regression analysis of {test_run_id} timed out after {timeout}s, "
                f"cancelling {len(pending)} comparison(s)"
            )
            await _cancel_outstanding(tasks)

        outcomes = [
            task.result() for task in tasks if task.done() and not task.cancelled()
        ]
        report = self._build_report(outcomes, skipped, len(pairs), cancelled)

        logger.info(
            f"Regression analysis of {test_run_id} complete: "
            f"{report.total_comparisons} compared, {report.significant_regressions} significant, "
            f"{len(report.failures)} failed"
        )
        return report

    async def _process_pair(
        self,
        pair: ScreenshotPair,
        suite_id: str,
        test_run_id: str,
        baseline_run_id: str,
    ) -> PairOutcome:
        stage = "fetch"
        try:
            baseline_bytes, current_bytes = await asyncio.gather(
                self.fetcher.fetch(pair.baseline_ref),
                self.fetcher.fetch(pair.current_ref),
            )

            stage = "decode"
            baseline_image = await asyncio.to_thread(decode_image, baseline_bytes, pair.baseline_ref)
            current_image = await asyncio.to_thread(decode_image, current_bytes, pair.current_ref)

            stage = "compare"
            options = ComparisonOptions(
                threshold=self.config.get_threshold(suite_id, pair.viewport),
                include_antialiasing=self.settings.include_antialiasing,
                ignore_regions=self.config.get_ignore_regions(
                    suite_id, pair.test_name, pair.viewport
                ),
                pixel_threshold=self.settings.pixel_threshold,
                diff_alpha=self.settings.diff_alpha,
            )
            result = await asyncio.to_thread(
                self.comparator.compare, baseline_image, current_image, options
            )

            diff_url = await asyncio.to_thread(self._write_diff, test_run_id, pair, result.diff_png)

            stage = "persist"
            regression_id = await asyncio.to_thread(
                self.ledger.append,
                NewRegression(
                    test_run_id=test_run_id,
                    baseline_run_id=baseline_run_id,
                    test_name=pair.test_name,
                    viewport=pair.viewport,
                    step_name=pair.step_name,
                    comparison=result,
                    baseline_screenshot_url=pair.baseline_ref,
                    current_screenshot_url=pair.current_ref,
                    diff_screenshot_url=diff_url,
                ),
            )
        except ToolkitError as e:
            logger.error(f"Comparison of {pair.label} failed at {stage}: {e.message}")
            return self._failure(pair, stage, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error comparing {pair.label} at {stage}: {e}")
            return self._failure(pair, stage, str(e))

        return PairOutcome(
            pair=pair,
            detail=ComparisonDetail(
                test_name=pair.test_name,
                viewport=pair.viewport,
                step_name=pair.step_name,
                comparison=result,
                regression_id=regression_id,
            ),
        )

    @staticmethod
    def _failure(pair: ScreenshotPair, stage: str, error: str) -> PairOutcome:
        return PairOutcome(
            pair=pair,
            failure=PairFailure(
                test_name=pair.test_name,
                viewport=pair.viewport,
                step_name=pair.step_name,
                stage=stage,
                error=error,
            ),
        )

    def _write_diff(
        self, test_run_id: str, pair: ScreenshotPair, encode: Callable[[], bytes]
    ) -> str | None:
        """Write the diff PNG; returns its path, or None if it could not be written"""
        parts = [pair.test_name, pair.viewport]
        if pair.step_name:
            parts.append(pair.step_name)
        # Sanitised names can collide; the digest is of the raw triple
        digest = hashlib.sha1("\x1f".join(parts).encode()).hexdigest()[:8]
        filename = "_".join(_UNSAFE_CHARS.sub("-", part) for part in parts) + f"_{digest}.png"
        path = self.diffs_dir / _UNSAFE_CHARS.sub("-", test_run_id) / filename

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(encode())
        except OSError as e:
            logger.warning(f"Could not write diff image for {pair.label}: {e}")
            return None
        return str(path)

    @staticmethod
    def _build_report(
        outcomes: list[PairOutcome], skipped: int, total_pairs: int, cancelled: bool
    ) -> RegressionReport:
        details = sorted(
            (outcome.detail for outcome in outcomes if outcome.detail is not None),
            key=lambda d: (d.test_name, d.viewport, d.step_name or ""),
        )
        failures = sorted(
            (outcome.failure for outcome in outcomes if outcome.failure is not None),
            key=lambda f: (f.test_name, f.viewport, f.step_name or ""),
        )

        total = len(details)
        significant = sum(1 for d in details if d.comparison.is_significant)
        average = (
            sum(d.comparison.percentage_different for d in details) / total if total else 0.0
        )

        messages = []
        if cancelled:
            messages.append(f"Analysis cancelled after {total + len(failures)} of {total_pairs} pair(s)")
        save_failures = sum(1 for f in failures if f.stage == "persist")
        if save_failures:
            messages.append(f"Comparison succeeded but save failed for {save_failures} pair(s)")
        if len(failures) > save_failures:
            messages.append(f"{len(failures) - save_failures} pair(s) could not be compared")

        return RegressionReport(
            success=True,
            total_comparisons=total,
            regressions_found=total,
            significant_regressions=significant,
            average_difference=round(average, 2),
            message="; ".join(messages) or None,
            details=details,
            failures=failures,
            skipped=skipped,
            cancelled=cancelled,
        )
