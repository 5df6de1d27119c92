import pytest
from fastapi.testclient import TestClient

import main as app_module
from cleancity.core.cache import LeaderboardCache
from cleancity.core.database import get_db
from cleancity.services.notifications import StatusEventPublisher

DEVICE_HEADERS = {"X-Device-Id": "citizen-api"}
ADMIN_HEADERS = {"X-Admin-Id": "admin-api"}


@pytest.fixture
def client(session_factory, clock):
    # Override Database Dependency
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app = app_module.app
    app.dependency_overrides[get_db] = override_get_db
    saved = (app.state.clock, app.state.leaderboard_cache, app.state.status_events)
    app.state.clock = clock
    app.state.leaderboard_cache = LeaderboardCache(300)
    app.state.status_events = StatusEventPublisher()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.clock, app.state.leaderboard_cache, app.state.status_events = saved


def _submit(client, lat, lng, headers=DEVICE_HEADERS, **extra):
    payload = {"latitude": lat, "longitude": lng, "accuracy": 6.5}
    payload.update(extra)
    return client.post("/reports/", json=payload, headers=headers)


def test_full_report_flow_over_http(client, clock, origin, north_of):
    lat, lng = origin

    # --- Citizen files a report ---
    resp = _submit(client, lat, lng, description="Dumped sofa", severity="high")
    assert resp.status_code == 201, resp.text
    report_id = resp.json()["report_id"]
    assert resp.json()["status"] == "open"

    mine = client.get("/reports/mine", headers=DEVICE_HEADERS)
    assert [r["id"] for r in mine.json()] == [report_id]

    # --- Admin registers a worker and assigns the report ---
    resp = client.post("/admin/workers/", json={"name": "Asha", "zones": ["Indiranagar"]}, headers=ADMIN_HEADERS)
    assert resp.status_code == 201, resp.text
    worker_id = resp.json()["id"]
    worker_headers = {"X-Worker-Id": worker_id}

    resp = client.post(f"/admin/reports/{report_id}/assign", json={"worker_id": worker_id}, headers=ADMIN_HEADERS)
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "assigned"

    tasks = client.get("/worker/tasks", headers=worker_headers)
    assert [t["id"] for t in tasks.json()] == [report_id]

    # --- Worker is too far away, then on site ---
    start_body = {"worker_lat": north_of(lat, 120), "worker_lng": lng, "before_photo_url": "https://img/b.jpg"}
    resp = client.post(f"/worker/tasks/{report_id}/start", json=start_body, headers=worker_headers)
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "PROXIMITY_ERROR"

    start_body["worker_lat"] = north_of(lat, 20)
    resp = client.post(f"/worker/tasks/{report_id}/start", json=start_body, headers=worker_headers)
    assert resp.status_code == 200, resp.text
    verification_id = resp.json()["verification_id"]

    clock.advance(minutes=1)
    resp = client.post(f"/worker/tasks/{report_id}/complete", json={"after_photo_url": "https://img/a.jpg"},
                       headers=worker_headers)
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "TIMING_ERROR"

    clock.advance(minutes=25)
    resp = client.post(f"/worker/tasks/{report_id}/complete", json={"after_photo_url": "https://img/a.jpg"},
                       headers=worker_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "verified"
    assert resp.json()["time_spent"] == 26

    # --- Admin reviews ---
    pending = client.get("/admin/verifications/pending", headers=ADMIN_HEADERS)
    assert [v["id"] for v in pending.json()] == [verification_id]

    resp = client.post(f"/admin/verifications/{verification_id}/approve", headers=ADMIN_HEADERS)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["new_status"] == "resolved"
    # base + high severity + first in area
    assert body["points_awarded"] == 35

    resp = client.post(f"/admin/verifications/{verification_id}/approve", headers=ADMIN_HEADERS)
    assert resp.status_code == 409
    assert resp.json()["detail"]["message"] == "Verification already approved"

    stats = client.get("/citizens/me/stats", headers=DEVICE_HEADERS).json()
    assert stats["total_points"] == 35
    assert stats["current_badge"] == "Cleanliness Rookie"
    assert stats["rank"] == 1

    board = client.get("/leaderboard").json()
    assert board[0]["points"] == 35
    assert board[0]["device_id"] != DEVICE_HEADERS["X-Device-Id"]

    stats = client.get("/admin/verifications/stats", headers=ADMIN_HEADERS).json()
    assert stats["approved_today"] == 1
    assert stats["pending_count"] == 0


def test_cooldown_returns_retry_after(client, clock, origin, north_of):
    lat, lng = origin
    assert _submit(client, lat, lng).status_code == 201
    clock.advance(seconds=120)
    resp = _submit(client, north_of(lat, 2000), lng)
    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "180"
    assert resp.json()["detail"]["code"] == "COOLDOWN_ACTIVE"
    assert resp.json()["detail"]["retry_after_seconds"] == 180


def test_duplicate_report_is_conflict(client, clock, origin, north_of):
    lat, lng = origin
    assert _submit(client, lat, lng).status_code == 201
    clock.advance(minutes=30)
    resp = _submit(client, north_of(lat, 20), lng, headers={"X-Device-Id": "neighbour"})
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "DUPLICATE_REPORT"
    assert "Retry-After" not in resp.headers


def test_missing_identity_header_is_unauthorized(client, origin):
    lat, lng = origin
    assert _submit(client, lat, lng, headers={}).status_code == 401
    assert client.get("/admin/verifications/pending").status_code == 401


def test_out_of_range_coordinates_rejected(client):
    assert _submit(client, 95.0, 10.0).status_code == 422


def test_padded_description_rejected(client, origin):
    lat, lng = origin
    assert _submit(client, lat, lng, description="  " + "x" * 49).status_code == 422


def test_unknown_report_and_verification(client):
    assert client.get("/reports/nope").status_code == 404
    resp = client.post("/admin/verifications/nope/reject", json={"reason": "blurry"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NOT_FOUND"


def test_worker_sees_zone_pool(client, origin, north_of):
    lat, lng = origin
    resp = client.post("/admin/workers/", json={"name": "Asha", "zones": ["Indiranagar"]}, headers=ADMIN_HEADERS)
    worker_headers = {"X-Worker-Id": resp.json()["id"]}
    in_zone = _submit(client, north_of(lat, 100), lng, area="Indiranagar").json()["report_id"]
    _submit(client, north_of(lat, 3000), lng, headers={"X-Device-Id": "elsewhere"}, area="Jayanagar")

    resp = client.get("/worker/pool", params={"lat": lat, "lng": lng}, headers=worker_headers)

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert [entry["report"]["id"] for entry in body] == [in_zone]
    assert body[0]["distance"] == pytest.approx(100, abs=1e-6)
    assert client.get("/worker/pool", headers={"X-Worker-Id": "ghost"}).status_code == 404
