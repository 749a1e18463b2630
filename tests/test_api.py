import httpx
import pytest
from fastapi.testclient import TestClient

from cropwise.main import create_app
from cropwise.workflow import create_workflow


@pytest.fixture
def api(backend, settings):
    http = httpx.AsyncClient(transport=httpx.MockTransport(backend.handler))
    workflow = create_workflow(settings, http)
    with TestClient(create_app(settings=settings, workflow=workflow)) as client:
        yield client


def fill_form(api, **overrides):
    form = {"N": 90, "P": 42, "K": 43, "ph": 6.5, "soil_type": "Clay"}
    form.update(overrides)
    return api.patch("/api/workflow/fields", json=form)


def test_startup_loads_history(api):
    assert api.get("/healthz").json() == {"status": "ok", "state": "idle"}
    assert api.get("/api/workflow").json()["history_count"] == 3


def test_full_prediction_cycle(api):
    started = api.post("/api/workflow/start", json={}).json()
    assert started["state"] == "awaiting_input"
    assert started["fields"]["temperature"] == 27.5

    assert fill_form(api).status_code == 200
    resp = api.post("/api/workflow/submit")
    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "ready"
    assert [c["name"] for c in body["candidates"]] == ["Rice", "Maize", "Cotton"]
    assert body["active_index"] == 0

    selected = api.post("/api/workflow/select", json={"index": 1}).json()
    assert selected["active_index"] == 1
    assert api.post("/api/workflow/select", json={"index": 5}).status_code == 404

    assert api.post("/api/workflow/new_cycle").json()["state"] == "awaiting_input"
    trace = api.get("/api/workflow/trace").json()["trace"]
    assert trace[-1]["to"] == "awaiting_input"


def test_submit_validation_error_lists_missing_fields(api):
    api.post("/api/workflow/start", json={"location": {"lat": 12.9, "lng": 77.6}})
    fill_form(api, N="", soil_type=None)
    resp = api.post("/api/workflow/submit")
    assert resp.status_code == 422
    assert resp.json()["detail"]["missing"] == ["N", "soil_type"]
    assert api.get("/api/workflow").json()["state"] == "awaiting_input"


def test_submit_before_start_conflicts(api):
    assert api.post("/api/workflow/submit").status_code == 409


def test_prediction_failure_is_reported(api, backend):
    backend.predict_status = 500
    backend.predict_error = "Invalid input format"
    api.post("/api/workflow/start", json={})
    fill_form(api)
    resp = api.post("/api/workflow/submit")
    assert resp.status_code == 502
    assert resp.json()["detail"] == "Invalid input format"
    snap = api.get("/api/workflow").json()
    assert snap["state"] == "awaiting_input"
    assert snap["failure"] == {"stage": "submitting", "message": "Invalid input format"}
    assert snap["fields"]["N"] == 90


def test_history_table_and_analytics(api):
    page = api.get("/api/history", params={"q": "rice", "sort": "id", "order": "asc"}).json()
    assert [r["id"] for r in page["items"]] == [1, 2]
    assert page["has_next"] is False

    default = api.get("/api/history").json()
    assert [r["id"] for r in default["items"]] == [3, 2, 1]

    assert api.get("/api/history", params={"sort": "soil"}).status_code == 400
    assert api.get("/api/history", params={"page": 0}).status_code == 422

    view = api.get("/api/history/analytics").json()
    assert view["crop_counts"] == {"Rice": 2, "Maize": 1}
    assert view["summary"]["ph_advice"] == "Soil pH is optimal."


def test_delete_history(api, backend):
    backend.delete_refusals.add(2)
    refused = api.delete("/api/history/2")
    assert refused.status_code == 502
    assert api.get("/api/workflow").json()["history_count"] == 3

    deleted = api.delete("/api/history/1")
    assert deleted.json() == {"success": True, "count": 2}


def test_refresh_failure_is_reported(api, backend):
    backend.history_status = 503
    assert api.post("/api/history/refresh").status_code == 502
    assert api.get("/api/workflow").json()["history_count"] == 3
