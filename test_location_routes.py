import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from conftest import MAIN_LAT, MAIN_LNG
from core.deps import get_current_actor, get_notification_dispatcher
from db.seed import seed_default_zones
from db.session import get_session
from main import app
from models.location import Actor

OPERATOR = Actor(actor_id="op-1", actor_name="Sita Operator", actor_role="operator")
ADMIN = Actor(actor_id="adm-1", actor_name="Hari Admin", actor_role="admin")
FAR = {"latitude": MAIN_LAT + 0.02, "longitude": MAIN_LNG, "accuracy": 15}


@pytest.fixture
def client(engine, dispatcher):
    with Session(engine) as session:
        seed_default_zones(session)

    current = {"actor": OPERATOR}

    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_current_actor] = lambda: current["actor"]
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    client = TestClient(app)
    client.act_as = lambda actor: current.update(actor=actor)
    yield client
    app.dependency_overrides.clear()


def test_check_inside_zone_is_granted(client):
    response = client.post("/location/check", json={"latitude": MAIN_LAT, "longitude": MAIN_LNG, "accuracy": 12})

    assert response.status_code == 200
    body = response.json()
    assert body["access"] == "granted"
    assert body["verdict"]["distance_meters"] == 0


def test_check_requires_location(client):
    response = client.post("/location/check", json={"latitude": MAIN_LAT})
    assert response.status_code == 400


def test_device_error_is_surfaced_and_denied(client):
    response = client.post("/location/check", json={"error_code": "PERMISSION_DENIED"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["code"] == "PERMISSION_DENIED"
    assert detail["access"] == "denied"


def test_remote_access_approval_flow(client):
    pending = client.post("/location/check", json=FAR).json()
    assert pending["access"] == "pending"
    approval_id = pending["approval_id"]

    status = client.get(f"/location/approvals/{approval_id}/status").json()
    assert status["status"] == "pending"

    # Operators can't reach admin routes
    assert client.get("/admin/location/approvals/pending").status_code == 403

    client.act_as(ADMIN)
    queue = client.get("/admin/location/approvals/pending").json()
    assert [a["id"] for a in queue] == [approval_id]

    decided = client.post(f"/admin/location/approvals/{approval_id}/approve", json={"reason": "Supplier visit"})
    assert decided.status_code == 200
    assert decided.json()["status"] == "approved"
    assert decided.json()["access_expires_at"].endswith("Z")

    again = client.post(f"/admin/location/approvals/{approval_id}/deny", json={})
    assert again.status_code == 409

    client.act_as(OPERATOR)
    assert client.get(f"/location/approvals/{approval_id}/status").json()["status"] == "approved"
    assert client.get("/location/approval").json()["has_valid_approval"] is True
    assert client.post("/location/check", json=FAR).json()["access"] == "granted"


def test_other_users_cannot_read_approval_status(client):
    approval_id = client.post("/location/check", json=FAR).json()["approval_id"]

    client.act_as(Actor(actor_id="op-2", actor_name="Other", actor_role="operator"))
    assert client.get(f"/location/approvals/{approval_id}/status").status_code == 403


def test_alerts_listing_and_mark_read(client):
    client.post("/location/check", json=FAR)

    client.act_as(ADMIN)
    alerts = client.get("/admin/location/alerts", params={"status_filter": "unread"}).json()
    assert len(alerts) == 1
    assert alerts[0]["type"] == "LOCATION_VIOLATION"

    read = client.post(f"/admin/location/alerts/{alerts[0]['id']}/read")
    assert read.json()["status"] == "read"
    assert client.get("/admin/location/alerts", params={"status_filter": "unread"}).json() == []
    assert client.post("/admin/location/alerts/999/read").status_code == 404


def test_zone_management(client):
    client.act_as(ADMIN)

    zones = client.get("/admin/location/zones").json()
    assert [z["id"] for z in zones] == [1, 2, 3]

    assert client.post("/admin/location/zones/2/toggle").json()["active"] is False
    # Last active zone stays on
    assert client.post("/admin/location/zones/1/toggle").json()["active"] is True

    updated = client.patch("/admin/location/zones/1", json={"radius_meters": 650})
    assert updated.json()["radius_meters"] == 650

    # Seed already fills the three allowed slots
    created = client.post(
        "/admin/location/zones",
        json={"name": "Dyeing Unit", "latitude": 27.69, "longitude": 85.31, "radius_meters": 250},
    )
    assert created.status_code == 400

    assert client.delete("/admin/location/zones/77").status_code == 404
    assert client.delete("/admin/location/zones/3").json()["deleted"]["id"] == 3
    assert client.delete("/admin/location/zones/2").status_code == 200
    last = client.delete("/admin/location/zones/1")
    assert last.status_code == 409
    assert last.json()["detail"]["reason"] == "last zone"


def test_stats_on_empty_log(client):
    client.act_as(ADMIN)
    stats = client.get("/admin/location/stats", params={"days": 30}).json()

    assert stats["total_attempts"] == 0
    assert stats["average_distance_meters"] == 0
    assert stats["unique_actors"] == 0


def test_expire_stale_endpoint(client):
    client.act_as(ADMIN)
    assert client.post("/admin/location/approvals/expire-stale").json() == {"expired": 0}


@pytest.mark.parametrize("field", ["name", "latitude", "longitude", "radius_meters", "active"])
def test_zone_patch_rejects_null_for_required_fields(client, field):
    client.act_as(ADMIN)

    response = client.patch("/admin/location/zones/1", json={field: None})
    assert response.status_code == 422

    # The zone is untouched and the session is still usable
    zone = client.get("/admin/location/zones").json()[0]
    assert zone["name"] == "TSA Garment Factory - Main"
    assert zone["active"] is True


def test_zone_patch_can_clear_address(client):
    client.act_as(ADMIN)
    client.patch("/admin/location/zones/1", json={"address": "Teku Road"})

    response = client.patch("/admin/location/zones/1", json={"address": None})
    assert response.status_code == 200
    assert response.json()["address"] is None


def test_delete_missing_zone_is_not_found_with_one_zone_left(client):
    client.act_as(ADMIN)
    client.delete("/admin/location/zones/3")
    client.delete("/admin/location/zones/2")

    assert client.delete("/admin/location/zones/99").status_code == 404
    assert client.delete("/admin/location/zones/1").status_code == 409
