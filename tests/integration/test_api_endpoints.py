import time

from fastapi.testclient import TestClient
import pytest

from zoning.api.http_app import build_app
from zoning.roles import validate_role
from zoning.services.bootstrap import RuntimeContainer, build_runtime_container
from zoning.workers.runner import SweeperRuntimeSettings


def _container(monkeypatch: pytest.MonkeyPatch, role_name: str = "api") -> RuntimeContainer:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("CLASSIFIER_URL", raising=False)
    monkeypatch.setenv("CLASSIFIER_PER_ITEM_DELAY_MS", "1")
    return build_runtime_container(validate_role(role_name))


def _api_client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    container = _container(monkeypatch)
    app = build_app(role="api", run_id="integration-api", api_deps=container.api_deps)
    return TestClient(app)


@pytest.mark.integration
def test_system_endpoints_report_in_memory_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    with _api_client(monkeypatch) as client:
        health = client.get("/health")
        ready = client.get("/ready")

    assert health.json() == {"status": "ok", "role": "api", "mode": "in-memory"}
    payload = ready.json()
    assert payload["sweeper_loop_enabled"] is False
    assert payload["sweeper_loop_ready"] is True
    assert payload["sweeper_metrics"]["sweeps_total"] == 0


@pytest.mark.integration
def test_create_and_fetch_record(monkeypatch: pytest.MonkeyPatch) -> None:
    with _api_client(monkeypatch) as client:
        created = client.post(
            "/records",
            json={
                "name": "Lunch",
                "items": [{"name": "Kale", "organic": True}, {"name": "quinoa"}],
                "pending_item": "sugar",
            },
        )
        assert created.status_code == 201
        body = created.json()
        record_id = body["record"]["id"]

        fetched = client.get(f"/records/{record_id}")

    assert body["warnings"] == ["Could only classify 2 of 3 items."]
    assert body["record"]["status"] == "processed"
    record = fetched.json()
    assert fetched.status_code == 200
    assert [item["name"] for item in record["items"]] == ["kale", "quinoa", "sugar"]
    assert record["items"][0]["organic"] is True
    assert record["zone_counts"] == {"green": 1, "yellow": 0, "red": 1, "unzoned": 1, "total": 3}
    assert record["status_message"] == "1 item need zoning"
    assert record["retry_count"] == 0


@pytest.mark.integration
def test_submission_without_valid_items_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    with _api_client(monkeypatch) as client:
        response = client.post("/records", json={"name": "x", "items": [{"name": "<>"}]})

    assert response.status_code == 422
    assert response.json()["detail"] == {
        "message": "Please add at least one valid item.",
        "code": "NO_VALID_ITEMS",
        "type": "validation",
    }


@pytest.mark.integration
def test_unknown_and_malformed_record_ids(monkeypatch: pytest.MonkeyPatch) -> None:
    with _api_client(monkeypatch) as client:
        missing = client.get("/records/rec_01J0000000000000000000000Z")
        malformed = client.get("/records/not-a-record")
        retry_missing = client.post("/records/rec_01J0000000000000000000000Z/retry")

    assert missing.status_code == 404
    assert malformed.status_code == 422
    assert retry_missing.status_code == 404


@pytest.mark.integration
def test_deferred_record_is_swept_retried_and_monitored(monkeypatch: pytest.MonkeyPatch) -> None:
    with _api_client(monkeypatch) as client:
        created = client.post(
            "/records",
            json={"name": "Dinner", "items": [{"name": "kale"}, {"name": "quinoa"}], "defer_unclassified": True},
        )
        record_id = created.json()["record"]["id"]
        assert created.json()["record"]["status"] == "analyzing"
        assert created.json()["record"]["status_message"] == "Analyzing items..."

        sweep = client.post("/internal/sweeps")
        manual = client.post(f"/records/{record_id}/retry")
        monitoring = client.get("/monitoring/retries")
        record = client.get(f"/records/{record_id}").json()

    assert sweep.status_code == 200
    assert sweep.json()["selected"] == 1
    assert sweep.json()["analyzing"] == 1
    assert sweep.json()["monitoring"]["total_analyzing"] == 1

    assert manual.status_code == 200
    assert manual.json()["status"] == "retried"
    assert manual.json()["outcome"]["kind"] == "analyzing"
    assert manual.json()["outcome"]["retry_count"] == 2

    assert monitoring.json()["total_analyzing"] == 1
    assert monitoring.json()["near_exhausted"] == 1
    assert monitoring.json()["warnings"] == ["1 records approaching max retry limit"]
    assert record["retry_count"] == 2
    assert record["last_retry_at"] is not None


@pytest.mark.integration
def test_manual_retry_of_fully_zoned_record_conflicts(monkeypatch: pytest.MonkeyPatch) -> None:
    with _api_client(monkeypatch) as client:
        created = client.post("/records", json={"name": "Snack", "items": [{"name": "blueberries"}]})
        response = client.post(f"/records/{created.json()['record']['id']}/retry")

    assert response.status_code == 409


@pytest.mark.integration
def test_endpoints_without_dependencies_are_unavailable() -> None:
    app = build_app(role="api", run_id="integration-skeleton")

    with TestClient(app) as client:
        health = client.get("/health")
        response = client.post("/internal/sweeps")

    assert health.json()["mode"] == "skeleton"
    assert response.status_code == 503


@pytest.mark.integration
def test_sweeper_role_runs_background_loop(monkeypatch: pytest.MonkeyPatch) -> None:
    container = _container(monkeypatch, "worker-sweeper")
    app = build_app(
        role="worker-sweeper",
        run_id="integration-sweeper",
        sweeper=container.sweeper,
        sweeper_runtime_settings=SweeperRuntimeSettings(interval_ms=5, error_backoff_ms=5),
        api_deps=container.api_deps,
    )

    with TestClient(app) as client:
        client.post(
            "/records",
            json={"name": "Dinner", "items": [{"name": "quinoa"}], "defer_unclassified": True},
        )
        time.sleep(0.1)
        response = client.get("/ready")

    payload = response.json()
    assert payload["sweeper_loop_enabled"] is True
    assert payload["sweeper_loop_ready"] is True
    assert payload["sweeper_metrics"]["started"] is True
    assert payload["sweeper_metrics"]["sweeps_total"] >= 2
    assert payload["sweeper_metrics"]["records_retried_total"] >= 1
