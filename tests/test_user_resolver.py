"""
Tests for billing_api/services/user_resolver.py
"""
from unittest.mock import AsyncMock, patch

from billing_api.crud import user_crud, user_settings_crud
from billing_api.models.user import UserRole
from billing_api.schemas.billing import UserCreate
from billing_api.services.user_resolver import UserResolver, local_part


async def test_creates_user_with_defaults(db):
    resolved = await UserResolver(db).get_or_create("New.Buyer@Example.com")

    assert resolved.created is True
    user = await user_crud.get(db, resolved.id)
    assert user.email == "new.buyer@example.com"
    assert user.full_name == "new.buyer"
    assert user.role == UserRole.USER
    assert user.email_verified is True

    user_settings = await user_settings_crud.get_by_user_id(db, resolved.id)
    assert user_settings is not None
    assert user_settings.settings == {}


async def test_display_name_used_when_given(db):
    resolved = await UserResolver(db).get_or_create("jane@example.com", "Jane Doe")
    user = await user_crud.get(db, resolved.id)
    assert user.full_name == "Jane Doe"


async def test_existing_user_is_reused_case_insensitively(db):
    first = await UserResolver(db).get_or_create("buyer@example.com")
    second = await UserResolver(db).get_or_create("BUYER@example.com")

    assert second.created is False
    assert second.id == first.id
    assert await user_crud.count(db) == 1


async def test_duplicate_key_race_returns_winner(db):
    """Another delivery inserts the same email between our lookup and insert."""
    winner = await user_crud.create(db, obj_in=UserCreate(email="race@example.com", full_name="Winner"))
    winner_id = winner.id  # the rollback below expires loaded instances
    real_lookup = user_crud.get_by_email
    calls = []

    async def lookup_missing_first(session, email):
        calls.append(email)
        if len(calls) == 1:
            return None
        return await real_lookup(session, email)

    with patch.object(user_crud, "get_by_email", side_effect=lookup_missing_first):
        resolved = await UserResolver(db).get_or_create("race@example.com")

    assert resolved is not None
    assert resolved.id == winner_id
    assert resolved.created is False
    assert len(calls) == 2
    assert await user_crud.count(db) == 1


async def test_data_store_error_returns_none(db):
    with patch.object(user_crud, "get_by_email", new_callable=AsyncMock, side_effect=RuntimeError("connection lost")):
        assert await UserResolver(db).get_or_create("down@example.com") is None


async def test_empty_email_returns_none(db):
    assert await UserResolver(db).get_or_create("   ") is None
    assert await UserResolver(db).resolve(None) is None


async def test_resolve_never_creates(db):
    assert await UserResolver(db).resolve("ghost@example.com") is None
    assert await user_crud.count(db) == 0


def test_local_part():
    assert local_part("someone@example.com") == "someone"
