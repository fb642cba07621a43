"""
Shared fixtures for the toolkit tests

Every test gets its own settings, database file and diffs directory under
tmp_path, so nothing touches the user's data directory.
"""

import io

import pytest
from PIL import Image

from regression_toolkit.core.config import get_settings, reset_settings
from regression_toolkit.startup.health import reset_health_state
from regression_toolkit.storage.config_store import ComparisonConfigStore
from regression_toolkit.storage.database import Database, reset_database
from regression_toolkit.storage.run_store import SqlRunStore
from regression_toolkit.visual_testing.baseline_registry import BaselineRegistry
from regression_toolkit.visual_testing.comparison import ComparisonResult
from regression_toolkit.visual_testing.image import RasterImage
from regression_toolkit.visual_testing.ledger import RegressionLedger
from regression_toolkit.visual_testing.models import NewRegression

WHITE = (255, 255, 255, 255)
RED = (255, 0, 0, 255)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at tmp_path and drop cached singletons around each test"""
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "data" / "regressions.db"))
    monkeypatch.setenv("DIFFS_DIR", str(tmp_path / "diffs"))
    monkeypatch.setenv("FETCH_RETRIES", "2")
    monkeypatch.setenv("FETCH_BACKOFF", "0")
    monkeypatch.setenv("MAX_WORKERS", "4")
    reset_settings()
    reset_database()
    reset_health_state()

    yield get_settings()

    reset_database()
    reset_settings()
    reset_health_state()


@pytest.fixture
def database(isolated_settings):
    db = Database(isolated_settings.database_path)
    yield db
    db.dispose()


@pytest.fixture
def run_store(database):
    return SqlRunStore(database)


@pytest.fixture
def registry(database):
    return BaselineRegistry(database)


@pytest.fixture
def ledger(database):
    return RegressionLedger(database)


@pytest.fixture
def config_store(database):
    return ComparisonConfigStore(database)


@pytest.fixture
def suite(run_store):
    """A suite with a completed baseline run and a current run (no baseline set)"""
    created = run_store.create_suite("Checkout flow")
    baseline_run = run_store.create_run(created["id"], name="baseline")
    current_run = run_store.create_run(created["id"], name="current")
    run_store.add_result(baseline_run["id"], "login", "desktop", ["baseline/login.png"])
    return {
        "id": created["id"],
        "baseline_run_id": baseline_run["id"],
        "current_run_id": current_run["id"],
    }


@pytest.fixture
def make_png():
    """Factory: encode a solid image (optionally with a filled rectangle) as PNG"""

    def _make(width=20, height=20, color=WHITE, rect=None, rect_color=RED):
        image = Image.new("RGBA", (width, height), color)
        if rect is not None:
            x, y, w, h = rect
            image.paste(Image.new("RGBA", (w, h), rect_color), (x, y))
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    return _make


@pytest.fixture
def make_comparison():
    """Factory: a ComparisonResult for a 10x10 image with the given pixel count"""

    def _make(pixels_different=5, threshold=0.10):
        percentage = pixels_different / 100 * 100
        return ComparisonResult(
            pixels_different=pixels_different,
            percentage_different=percentage,
            width=10,
            height=10,
            diff_image=RasterImage.solid(10, 10, WHITE),
            threshold=threshold,
            is_significant=percentage > threshold * 100,
        )

    return _make


@pytest.fixture
def record_regression(ledger, make_comparison):
    """Factory: append a regression to the ledger and return its id"""

    def _record(test_run_id, test_name="login", viewport="desktop", step_name=None, pixels=5):
        return ledger.append(
            NewRegression(
                test_run_id=test_run_id,
                baseline_run_id=None,
                test_name=test_name,
                viewport=viewport,
                step_name=step_name,
                comparison=make_comparison(pixels),
            )
        )

    return _record
