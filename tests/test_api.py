import json
from datetime import timedelta

import pytest
from httpx import AsyncClient

from foodshare.core.clock import utcnow
from tests.conftest import auth, donation_fields

pytestmark = pytest.mark.anyio


async def _create(ac: AsyncClient, donor: dict, **overrides) -> dict:
    r = await ac.post("/api/donations", headers=auth(donor), json=donation_fields(**overrides))
    assert r.status_code == 201, r.text
    return r.json()["donation"]


async def test_health(test_client: AsyncClient):
    r = await test_client.get("/health")
    assert r.status_code == 200 and r.json() == {"ok": True}


async def test_register_login_me(test_client: AsyncClient):
    r = await test_client.post("/api/auth/register", json={
        "email": "donor@example.com", "password": "secret123",
        "display_name": "Asha", "role": "donor",
    })
    assert r.status_code == 201, r.text
    body = r.json()
    assert "password_hash" not in body["user"]

    r = await test_client.post("/api/auth/register", json={
        "email": "donor@example.com", "password": "secret123",
        "display_name": "Asha again", "role": "donor",
    })
    assert r.status_code == 409 and r.json()["code"] == "email_taken"

    r = await test_client.post("/api/auth/login", data={"email": "donor@example.com", "password": "nope"})
    assert r.status_code == 401

    r = await test_client.post("/api/auth/login", data={"email": "donor@example.com", "password": "secret123"})
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]
    r = await test_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200 and r.json()["display_name"] == "Asha"

    r = await test_client.post("/api/auth/verify-email", json={"token": body["verify_token"]})
    assert r.json()["email_verified"] is True


async def test_requests_without_token_are_rejected(test_client: AsyncClient):
    assert (await test_client.get("/api/donations/available")).status_code == 401
    r = await test_client.get("/api/donations/available", headers={"Authorization": "Bearer junk"})
    assert r.status_code == 401
    assert r.json()["code"] == "unauthorized"


async def test_donor_creates_pending_donation(test_client: AsyncClient, make_user):
    donor = await make_user("donor")
    donation = await _create(test_client, donor)
    assert donation["status"] == "pending"
    assert donation.get("accepted_by") is None
    assert donation["title"] == "Lunch"

    r = await test_client.get(f"/api/donations/{donation['id']}", headers=auth(donor))
    assert r.status_code == 200
    assert r.json()["history"][0]["to_status"] == "pending"

    r = await test_client.get("/api/donations/mine", headers=auth(donor))
    assert [d["id"] for d in r.json()] == [donation["id"]]


async def test_missing_fields_are_422_with_field_names(test_client: AsyncClient, make_user):
    donor = await make_user("donor")
    r = await test_client.post("/api/donations", headers=auth(donor),
                               json=donation_fields(food_type="", quantity=None))
    assert r.status_code == 422
    assert set(r.json()["fields"]) == {"food_type", "quantity"}


async def test_wrong_role_is_403(test_client: AsyncClient, make_user):
    ngo = await make_user("ngo")
    r = await test_client.post("/api/donations", headers=auth(ngo), json=donation_fields())
    assert r.status_code == 403


async def test_second_accept_is_conflict_with_refresh(test_client: AsyncClient, make_user):
    donor = await make_user("donor")
    ngo1 = await make_user("ngo")
    ngo2 = await make_user("ngo")
    donation = await _create(test_client, donor)

    r1 = await test_client.post(f"/api/donations/{donation['id']}/accept", headers=auth(ngo1))
    r2 = await test_client.post(f"/api/donations/{donation['id']}/accept", headers=auth(ngo2))
    assert r1.status_code == 200, r1.text
    assert r2.status_code == 409
    assert r2.json()["code"] == "already_accepted"
    assert r2.json()["refresh"] is True

    r = await test_client.get(f"/api/donations/{donation['id']}", headers=auth(ngo2))
    assert r.json()["accepted_by"] == ngo1["id"]


async def test_delivery_flow_over_http(test_client: AsyncClient, make_user):
    donor = await make_user("donor")
    ngo = await make_user("ngo")
    v1 = await make_user("volunteer")
    v2 = await make_user("volunteer")
    did = (await _create(test_client, donor))["id"]

    assert (await test_client.post(f"/api/donations/{did}/accept", headers=auth(ngo))).status_code == 200
    r = await test_client.post(f"/api/donations/{did}/request-pickup", headers=auth(ngo))
    assert r.json()["delivery_status"] == "available_for_pickup"

    r = await test_client.get("/api/deliveries/available", headers=auth(v1))
    assert [d["id"] for d in r.json()] == [did]

    assert (await test_client.post(f"/api/deliveries/{did}/claim", headers=auth(v1))).status_code == 200
    r = await test_client.post(f"/api/deliveries/{did}/claim", headers=auth(v2))
    assert r.status_code == 409 and r.json()["code"] == "already_assigned"

    r = await test_client.post("/api/complaints", headers=auth(ngo),
                               json={"donation_id": did, "reason": "late"})
    assert r.status_code == 201

    assert (await test_client.post(f"/api/deliveries/{did}/picked-up", headers=auth(v1))).status_code == 200
    assert (await test_client.post(f"/api/deliveries/{did}/delivered", headers=auth(v1))).status_code == 200
    r = await test_client.post(f"/api/donations/{did}/complete", headers=auth(ngo))
    assert r.status_code == 200 and r.json()["status"] == "completed"

    r = await test_client.get("/api/users/me/stats", headers=auth(v1))
    assert r.json() == {"deliveries": 1, "delivered": 1}


async def test_cancel_twice(test_client: AsyncClient, make_user):
    donor = await make_user("donor")
    did = (await _create(test_client, donor))["id"]
    r = await test_client.post(f"/api/donations/{did}/cancel", headers=auth(donor))
    assert r.status_code == 200 and r.json()["status"] == "cancelled"
    r = await test_client.post(f"/api/donations/{did}/cancel", headers=auth(donor))
    assert r.status_code == 409
    assert r.json()["code"] == "no_longer_available"


async def test_edit_and_delete_pending(test_client: AsyncClient, make_user):
    donor = await make_user("donor")
    did = (await _create(test_client, donor))["id"]
    r = await test_client.patch(f"/api/donations/{did}", headers=auth(donor), json={"quantity": "20 servings"})
    assert r.status_code == 200 and r.json()["quantity"] == "20 servings"
    assert (await test_client.delete(f"/api/donations/{did}", headers=auth(donor))).status_code == 200
    assert (await test_client.get(f"/api/donations/{did}", headers=auth(donor))).status_code == 404


async def test_multipart_image_limit(test_client: AsyncClient, make_user):
    donor = await make_user("donor")
    payload = json.dumps(donation_fields())

    seven = [("images", (f"p{i}.jpg", b"jpeg-bytes", "image/jpeg")) for i in range(7)]
    r = await test_client.post("/api/donations/upload", headers=auth(donor),
                               data={"payload": payload}, files=seven)
    assert r.status_code == 201, r.text
    assert len(r.json()["donation"]["image_urls"]) == 7

    eight = seven + [("images", ("p7.jpg", b"jpeg-bytes", "image/jpeg"))]
    r = await test_client.post("/api/donations/upload", headers=auth(donor),
                               data={"payload": payload}, files=eight)
    assert r.status_code == 422

    r = await test_client.post("/api/donations/upload", headers=auth(donor),
                               data={"payload": "{not json"}, files=seven[:1])
    assert r.status_code == 422


async def test_pre_upload_images(test_client: AsyncClient, make_user):
    donor = await make_user("donor")
    r = await test_client.post("/api/uploads/images", headers=auth(donor),
                               files=[("images", ("a.jpg", b"x", "image/jpeg")),
                                      ("images", ("b.jpg", b"", "image/jpeg"))])
    assert r.status_code == 201
    body = r.json()
    assert len(body["urls"]) == 1 and body["failed"] == ["b.jpg"]


async def test_expired_suspension_header(test_client: AsyncClient, make_user, services):
    donor = await make_user("donor", account_status="suspended",
                            suspended_until=utcnow() - timedelta(minutes=5))
    r = await test_client.post("/api/donations", headers=auth(donor), json=donation_fields())
    assert r.status_code == 201, r.text
    assert r.headers.get("x-suspension-expired") == "true"
    assert (await services.store.get("users", donor["id"]))["account_status"] == "active"

    r = await test_client.post("/api/donations", headers=auth(donor), json=donation_fields())
    assert "x-suspension-expired" not in r.headers


async def test_admin_endpoints(test_client: AsyncClient, make_user, make_admin):
    admin = await make_admin()
    vol = await make_user("volunteer")

    r = await test_client.get("/api/admin/users", headers=auth(vol))
    assert r.status_code == 403
    r = await test_client.get("/api/admin/users", headers=auth(admin))
    assert r.status_code == 200
    assert vol["id"] in {u["id"] for u in r.json()}
    assert all("password_hash" not in u for u in r.json())

    r = await test_client.post(f"/api/admin/users/{vol['id']}/suspend", headers=auth(admin), json={"days": 2})
    assert r.status_code == 200 and r.json()["account_status"] == "suspended"
    r = await test_client.post("/api/chats", headers=auth(vol), json={"other_user_id": admin["id"]})
    assert r.status_code == 403

    r = await test_client.post(f"/api/admin/users/{vol['id']}/reinstate", headers=auth(admin))
    assert r.status_code == 200
    r = await test_client.post(f"/api/admin/users/{vol['id']}/warn", headers=auth(admin), json={"reason": "rude"})
    assert r.json()["warning_count"] == 1


async def test_chat_over_http(test_client: AsyncClient, make_user):
    donor = await make_user("donor")
    ngo = await make_user("ngo")
    r = await test_client.post("/api/chats", headers=auth(ngo), json={"other_user_id": donor["id"]})
    assert r.status_code == 200
    chat_id = r.json()["id"]

    r = await test_client.post(f"/api/chats/{chat_id}/messages", headers=auth(ngo), json={"text": "hello"})
    assert r.status_code == 201
    r = await test_client.get("/api/chats", headers=auth(donor))
    assert r.json()[0]["unread_count"][donor["id"]] == 1

    r = await test_client.post(f"/api/chats/{chat_id}/read", headers=auth(donor))
    assert r.json()["ok"] is True
    r = await test_client.get(f"/api/chats/{chat_id}/messages", headers=auth(donor))
    assert [m["text"] for m in r.json()] == ["hello"]

    r = await test_client.get("/api/notifications", headers=auth(donor))
    assert [n["title"] for n in r.json()] == ["New message"]


async def test_inventory_and_ai_endpoints(test_client: AsyncClient, make_user):
    ngo = await make_user("ngo")
    r = await test_client.post("/api/inventory", headers=auth(ngo), json={"name": "Lentils", "quantity": "2"})
    assert r.status_code == 201 and r.json()["low_stock"] is True
    r = await test_client.get("/api/inventory", headers=auth(ngo))
    assert [i["name"] for i in r.json()] == ["Lentils"]

    r = await test_client.post("/api/ai/analyze-image", headers=auth(ngo), json={"image_base64": "aGVsbG8="})
    assert r.status_code == 200 and r.json()["tags"] == ["AI_FALLBACK", "Manual Verify"]
    r = await test_client.post("/api/ai/recipes", headers=auth(ngo), json={"ingredients": ["lentils"]})
    assert r.json() == {"recipes": []}

    r = await test_client.post("/api/ai/recipes/saved", headers=auth(ngo), json={"title": "Dal"})
    assert r.status_code == 201
    r = await test_client.get("/api/ai/recipes/saved", headers=auth(ngo))
    assert [x["title"] for x in r.json()] == ["Dal"]


async def test_profile_endpoints(test_client: AsyncClient, make_user):
    user = await make_user("volunteer")
    r = await test_client.patch("/api/users/me", headers=auth(user), json={"bio": "evenings only"})
    assert r.status_code == 200 and r.json()["bio"] == "evenings only"
    r = await test_client.post("/api/users/me/device", headers={**auth(user), "User-Agent": "pytest"})
    assert r.status_code == 200
    r = await test_client.get(f"/api/users/{user['id']}", headers=auth(user))
    assert r.json()["bio"] == "evenings only" and "email" not in r.json()
