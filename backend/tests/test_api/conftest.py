"""
Fixtures for API tests

The app is built with create_app() and entered as a context manager so the
real lifespan (environment checks, database, services) runs against the
per-test settings.
"""

import pytest
from fastapi.testclient import TestClient

from regression_toolkit.api.app import create_app


@pytest.fixture
def client(isolated_settings):
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def services(client):
    return client.app.state.services


@pytest.fixture
def api_suite(services, tmp_path, make_png):
    """
    Suite with a baseline run and a current run whose screenshots live on disk

    login/desktop changed (16 of 400 pixels), cart/desktop unchanged.
    """
    shots = tmp_path / "shots"
    shots.mkdir()
    plain = make_png(20, 20)
    (shots / "base-login.png").write_bytes(plain)
    (shots / "base-cart.png").write_bytes(plain)
    (shots / "cur-login.png").write_bytes(make_png(20, 20, rect=(0, 0, 4, 4)))
    (shots / "cur-cart.png").write_bytes(plain)

    store = services.run_store
    suite = store.create_suite("Storefront")
    baseline_run = store.create_run(suite["id"], name="baseline")
    current_run = store.create_run(suite["id"], name="current")
    store.add_result(baseline_run["id"], "login", "desktop", [str(shots / "base-login.png")])
    store.add_result(baseline_run["id"], "cart", "desktop", [str(shots / "base-cart.png")])
    store.add_result(current_run["id"], "login", "desktop", [str(shots / "cur-login.png")])
    store.add_result(current_run["id"], "cart", "desktop", [str(shots / "cur-cart.png")])

    return {
        "id": suite["id"],
        "baseline_run_id": baseline_run["id"],
        "current_run_id": current_run["id"],
    }


@pytest.fixture
def analyzed_suite(client, api_suite):
    """api_suite with its baseline set and the current run analyzed"""
    response = client.post(
        "/api/diff/baselines",
        json={"suite_id": api_suite["id"], "run_id": api_suite["baseline_run_id"]},
    )
    assert response.status_code == 200

    response = client.post(
        "/api/diff/batch-compare", json={"test_run_id": api_suite["current_run_id"]}
    )
    assert response.status_code == 200

    report = response.json()
    regression_ids = {d["test_name"]: d["regression_id"] for d in report["details"]}
    return {**api_suite, "report": report, "regression_ids": regression_ids}
