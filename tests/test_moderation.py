from datetime import timedelta

import pytest

from foodshare.core.clock import utcnow
from foodshare.core.errors import (
    AccessDeniedError, IllegalStateError, IllegalTransitionError, ValidationError,
)
from foodshare.services.moderation import ModerationGate
from tests.conftest import donation_fields

pytestmark = pytest.mark.anyio


async def test_expired_suspension_lets_the_action_through(services, make_user):
    donor = await make_user("donor", account_status="suspended",
                            suspended_until=utcnow() - timedelta(hours=1))
    decision = await services.gate.check(donor["id"], roles=["donor"])
    assert decision.status == "active"
    assert decision.suspension_expired is True

    result = await services.lifecycle.create_donation(donor["id"], donation_fields())
    assert (await services.lifecycle.get(result["id"]))["status"] == "pending"

    assert await services.gate.clear_expired_suspension(donor["id"]) is True
    assert await services.gate.clear_expired_suspension(donor["id"]) is False
    stored = await services.store.get("users", donor["id"])
    assert stored["account_status"] == "active"
    assert "suspended_until" not in stored


async def test_active_suspension_and_ban_are_rejected(services, make_user):
    suspended = await make_user("donor", account_status="suspended",
                                suspended_until=utcnow() + timedelta(days=2))
    banned = await make_user("donor", account_status="banned")
    for user in (suspended, banned):
        with pytest.raises(AccessDeniedError):
            await services.lifecycle.create_donation(user["id"], donation_fields())


async def test_unverified_rejected_when_required(services, make_user):
    donor = await make_user("donor")
    gate = ModerationGate(services.store, require_verified=True)
    with pytest.raises(AccessDeniedError):
        await gate.check(donor["id"])
    await services.accounts.store.update("users", donor["id"], {"email_verified": True})
    assert (await gate.check(donor["id"])).user_id == donor["id"]


async def test_admin_actions_need_server_side_flag(services, make_user, make_admin):
    plain = await make_user("volunteer")
    target = await make_user("volunteer")
    with pytest.raises(AccessDeniedError):
        await services.gate.suspend(plain["id"], target["id"], days=3)

    admin = await make_admin()
    user = await services.gate.suspend(admin["id"], target["id"], days=3)
    assert user["account_status"] == "suspended"
    with pytest.raises(AccessDeniedError):
        await services.gate.check(target["id"])

    user = await services.gate.reinstate(admin["id"], target["id"])
    assert user["account_status"] == "active"
    assert user["warning_count"] == 0
    with pytest.raises(IllegalTransitionError):
        await services.gate.reinstate(admin["id"], target["id"])

    await services.gate.ban(admin["id"], target["id"])
    with pytest.raises(IllegalTransitionError):
        await services.gate.suspend(admin["id"], target["id"], days=1)


async def test_suspension_must_end_in_the_future(services, make_user, make_admin):
    admin = await make_admin()
    target = await make_user("volunteer")
    with pytest.raises(ValidationError):
        await services.gate.suspend(admin["id"], target["id"], until=utcnow() - timedelta(minutes=1))
    with pytest.raises(ValidationError):
        await services.gate.suspend(admin["id"], target["id"], days=0)


async def test_warnings_accumulate(services, make_user, make_admin):
    admin = await make_admin()
    target = await make_user("volunteer")
    assert await services.gate.warn(admin["id"], target["id"], "late") == 1
    assert await services.gate.warn(admin["id"], target["id"]) == 2
    titles = [n["title"] for n in await services.notifier.list_for(target["id"])]
    assert titles.count("Warning") == 2


async def test_complaint_flow(services, make_user, make_admin):
    admin = await make_admin()
    donor = await make_user("donor")
    ngo = await make_user("ngo")
    vol = await make_user("volunteer")
    did = (await services.lifecycle.create_donation(donor["id"], donation_fields()))["id"]
    await services.matching.accept_donation(did, ngo["id"])
    with pytest.raises(IllegalStateError):
        await services.complaints.file_complaint(ngo["id"], did, "no show")
    await services.matching.request_pickup(did, ngo["id"])
    await services.matching.claim_delivery(did, vol["id"])

    with pytest.raises(ValidationError):
        await services.complaints.file_complaint(ngo["id"], did, " ")
    complaint = await services.complaints.file_complaint(ngo["id"], did, "no show")
    assert complaint["volunteer_id"] == vol["id"]
    assert complaint["status"] == "pending"

    with pytest.raises(AccessDeniedError):
        await services.complaints.list_complaints(ngo["id"])
    listed = await services.complaints.list_complaints(admin["id"], "pending")
    assert [c["id"] for c in listed] == [complaint["id"]]

    resolved = await services.complaints.resolve_complaint(admin["id"], complaint["id"])
    assert resolved["status"] == "resolved"
    with pytest.raises(IllegalStateError):
        await services.complaints.resolve_complaint(admin["id"], complaint["id"])
