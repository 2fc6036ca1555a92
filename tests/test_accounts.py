import pytest

from foodshare.core.errors import (
    AccessDeniedError, AuthError, DuplicateAccountError, NotFoundError, ValidationError,
)

pytestmark = pytest.mark.anyio


async def test_register_and_authenticate(services):
    user, verify_token = await services.accounts.register(
        "Asha@Example.com", "secret123", "Asha", "donor")
    assert user["email"] == "asha@example.com"
    assert user["account_status"] == "active"
    assert user["is_admin"] is False and user["email_verified"] is False

    same = await services.accounts.authenticate("asha@example.com", "secret123")
    assert same["id"] == user["id"]
    with pytest.raises(AuthError):
        await services.accounts.authenticate("asha@example.com", "wrong")

    verified = await services.accounts.verify_email(verify_token)
    assert verified["email_verified"] is True


async def test_email_is_unique(services):
    await services.accounts.register("dup@example.com", "secret123", "One", "donor")
    with pytest.raises(DuplicateAccountError):
        await services.accounts.register("DUP@example.com", "secret123", "Two", "volunteer")


async def test_registration_validation(services):
    with pytest.raises(ValidationError):
        await services.accounts.register("x@example.com", "123", "X", "donor")
    with pytest.raises(ValidationError):
        await services.accounts.register("x@example.com", "secret123", "X", "ngo")
    with pytest.raises(ValidationError):
        await services.accounts.register("x@example.com", "secret123", "X", "admin")


async def test_profile_update_is_gated(services, make_user):
    user = await make_user("volunteer")
    updated = await services.accounts.update_profile(user["id"], {"bio": " I drive a van "})
    assert updated["bio"] == "I drive a van"
    with pytest.raises(ValidationError):
        await services.accounts.update_profile(user["id"], {"is_admin": True})
    await services.store.update("users", user["id"], {"account_status": "banned"})
    with pytest.raises(AccessDeniedError):
        await services.accounts.update_profile(user["id"], {"bio": "still here"})


async def test_public_profile_hides_private_fields(services, make_user):
    user = await make_user("ngo")
    profile = await services.accounts.public_profile(user["id"])
    assert profile["organization_name"] == "Helping Hands"
    assert "email" not in profile and "password_hash" not in profile
    with pytest.raises(NotFoundError):
        await services.accounts.public_profile("ghost")


async def test_inventory(services, make_user):
    ngo = await make_user("ngo")
    donor = await make_user("donor")
    item = await services.inventory.add_item(ngo["id"], {"name": "Rice", "quantity": "4"})
    assert item["unit"] == "kg" and item["category"] == "Other"
    assert item["low_stock_threshold"] == 5
    assert item["low_stock"] is True
    assert item["expiry_date"] > item["last_updated"]

    item = await services.inventory.update_item(ngo["id"], item["id"], {"quantity": "40"})
    assert item["low_stock"] is False
    with pytest.raises(ValidationError):
        await services.inventory.add_item(ngo["id"], {"name": "", "quantity": "1"})
    with pytest.raises(AccessDeniedError):
        await services.inventory.add_item(donor["id"], {"name": "Rice", "quantity": "1"})

    other = await make_user("ngo")
    with pytest.raises(NotFoundError):
        await services.inventory.delete_item(other["id"], item["id"])
    await services.inventory.delete_item(ngo["id"], item["id"])
    assert await services.inventory.list_items(ngo["id"]) == []


async def test_saved_recipes(services, make_user):
    user = await make_user("volunteer")
    saved = await services.recipes.save(user["id"], {"title": "Banana Bread", "ingredients": ["banana"]})
    assert [r["title"] for r in await services.recipes.list(user["id"])] == ["Banana Bread"]
    with pytest.raises(ValidationError):
        await services.recipes.save(user["id"], {"description": "untitled"})
    await services.recipes.delete(user["id"], saved["id"])
    with pytest.raises(NotFoundError):
        await services.recipes.delete(user["id"], saved["id"])


async def test_notifications_read_state(services, make_user):
    user = await make_user("donor")
    await services.notifier.notify(user["id"], "One", "first")
    await services.notifier.notify(user["id"], "Two", "second")
    notes = await services.notifier.list_for(user["id"], unread_only=True)
    assert len(notes) == 2
    await services.notifier.mark_read(user["id"], notes[0]["id"])
    assert len(await services.notifier.list_for(user["id"], unread_only=True)) == 1
    assert await services.notifier.mark_all_read(user["id"]) == 1
    with pytest.raises(NotFoundError):
        await services.notifier.mark_read("someone-else", notes[0]["id"])
