import json
import re
import httpx
import pytest
from fastapi.testclient import TestClient
from power_brain.airtable import AirtableClient
from power_brain.config import Settings, get_settings
from power_brain.main import app, get_airtable_client


client = TestClient(app)

SECRET = {"x-brain-secret": "s3cret"}

HOT_LEAD = {
    "owns": "yes",
    "Avg monthly bill": "300",
    "Roof age (years)": "5",
    "Sun exposure": "full sun",
    "HOA?": "no",
    "Property type": "single family",
    "opt_in_sms": True,
    "phone": "(661) 555-0100",
}


def use_settings(**values) -> Settings:
    values.setdefault("BRAIN_SECRET", "s3cret")
    settings = Settings(_env_file=None, **values)
    app.dependency_overrides[get_settings] = lambda: settings
    return settings


def use_airtable(handler, settings: Settings) -> None:
    at = AirtableClient(settings, transport=httpx.MockTransport(handler), sleep=lambda s: None)
    app.dependency_overrides[get_airtable_client] = lambda: at


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    app.dependency_overrides.clear()


def test_health_and_root():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    r = client.get("/")
    assert r.json()["service"] == "renew-power-brain"
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", r.json()["time"])
    assert r.headers.get("X-Request-ID")


def test_score_requires_secret():
    use_settings()
    r = client.post("/score", json=HOT_LEAD)
    assert r.status_code == 401
    assert r.json() == {"ok": False, "error": "Unauthorized"}
    r = client.post("/score", json=HOT_LEAD, headers={"x-brain-secret": "nope"})
    assert r.status_code == 401


def test_missing_secret_open_in_development():
    use_settings(BRAIN_SECRET=None)
    r = client.post("/score", json=HOT_LEAD)
    assert r.status_code == 200


def test_missing_secret_fails_closed_in_production():
    use_settings(BRAIN_SECRET=None, ENV="production")
    r = client.post("/score", json=HOT_LEAD)
    assert r.status_code == 500
    assert r.json()["error"] == "Server misconfigured (missing BRAIN_SECRET)"


def test_score_endpoint():
    use_settings()
    r = client.post("/score", json={"lead": HOT_LEAD}, headers={**SECRET, "X-Request-ID": "trace-1"})
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["trace_id"] == "trace-1"
    assert data["scored"]["score"] == 98
    assert data["scored"]["tier"] == "Qualified – Send to Marshall"
    assert data["scored"]["marshall_eligible"] is True
    assert data["consent"] == {"opt_in_email": False, "opt_in_sms": True}
    assert data["routing"] == {
        "route_to_marshall": True,
        "allow_sms": True,
        "allow_email": False,
        "outreach_allowed": True,
        "do_not_contact": False,
    }


def test_score_applies_gates_from_settings():
    use_settings(GATE_KERN_COUNTY_ONLY=True)
    r = client.post("/score", json={**HOT_LEAD, "County": "Los Angeles"}, headers=SECRET)
    scored = r.json()["scored"]
    assert scored["score"] == 0
    assert scored["reject_reasons"] == ["Outside Kern County"]


def test_score_empty_body():
    use_settings()
    r = client.post("/score", headers=SECRET)
    assert r.status_code == 200
    assert r.json()["scored"]["reject_reasons"] == ["Not homeowner"]


def test_ingest_creates_record():
    settings = use_settings(AIRTABLE_API_KEY="k", AIRTABLE_BASE_ID="appX")
    seen = []

    def handler(request):
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json={"records": []})
        return httpx.Response(200, json={"id": "rec1"})

    use_airtable(handler, settings)
    body = {"lead": HOT_LEAD, "meta": {"source_name": "Tally form"}}
    r = client.post("/ingest", json=body, headers=SECRET)
    assert r.status_code == 200
    data = r.json()
    assert data["airtable"] == {"action": "created", "record_id": "rec1"}
    assert data["scored"]["score"] == 98
    assert data["routing"]["route_to_marshall"] is True
    assert json.loads(seen[-1].content)["fields"]["Lead source"] == "Tally form"


def test_ingest_failure_reports_detail():
    settings = use_settings(AIRTABLE_API_KEY="k", AIRTABLE_BASE_ID="appX")
    use_airtable(lambda request: httpx.Response(403, json={"error": {"message": "Invalid permissions"}}), settings)
    r = client.post("/ingest", json=HOT_LEAD, headers={**SECRET, "X-Request-ID": "trace-9"})
    assert r.status_code == 500
    data = r.json()
    assert data["ok"] is False
    assert data["trace_id"] == "trace-9"
    assert data["error"] == "Ingest failed"
    assert "Invalid permissions" in data["detail"]


def test_ingest_failure_hides_detail_in_production():
    use_settings(ENV="production")
    r = client.post("/ingest", json=HOT_LEAD, headers=SECRET)
    assert r.status_code == 500
    assert "detail" not in r.json()


def test_airtable_map_json_and_csv():
    use_settings()
    r = client.post("/airtable/map", json=HOT_LEAD, headers=SECRET)
    assert r.status_code == 200
    row = r.json()
    assert {"Score", "Tier", "AI tier", "Lead temperature", "Score reasons", "Reject reasons"}.issubset(row)
    assert row["Score"] == 98
    r = client.post("/airtable/map?format=csv", json=HOT_LEAD, headers=SECRET)
    assert r.status_code == 200
    assert r.headers.get("content-type").startswith("text/csv")
    assert r.text.splitlines()[0].startswith("Lead name,Phone,Email")


def test_secret_must_match_exactly():
    use_settings()
    for wrong in ["s3cre", "s3creT", "s3cret-longer"]:
        r = client.post("/score", json=HOT_LEAD, headers={"x-brain-secret": wrong})
        assert r.status_code == 401
    r = client.post("/score", json=HOT_LEAD, headers=SECRET)
    assert r.status_code == 200
