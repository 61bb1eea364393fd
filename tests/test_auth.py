"""
Tests for billing_api/core/auth.py
"""
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from billing_api.core.auth import require_admin, require_admin_or_setup, verify_token
from billing_api.core.config import settings
from billing_api.crud import user_crud
from billing_api.models.user import UserRole
from billing_api.schemas.auth import TokenData
from billing_api.schemas.billing import UserCreate

SECRET = "super-secret-jwt-key"


def _bearer(claims: dict, key: str = SECRET) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=jwt.encode(claims, key, algorithm="HS256"))


class TestVerifyToken:
    async def test_verified_token(self, monkeypatch):
        monkeypatch.setattr(settings, "jwt_secret_key", SECRET)
        token = await verify_token(_bearer({"sub": "user-1", "email": "Admin@Example.com", "aud": "authenticated"}))
        assert token == TokenData(user_id="user-1", email="admin@example.com")

    async def test_wrong_signature_rejected(self, monkeypatch):
        monkeypatch.setattr(settings, "jwt_secret_key", SECRET)
        with pytest.raises(HTTPException) as exc:
            await verify_token(_bearer({"sub": "user-1"}, key="forged"))
        assert exc.value.status_code == 401

    async def test_unverified_claims_without_secret(self):
        token = await verify_token(_bearer({"sub": "user-2", "email": "dev@example.com"}, key="anything"))
        assert token.user_id == "user-2"

    async def test_missing_subject_rejected(self):
        with pytest.raises(HTTPException) as exc:
            await verify_token(_bearer({"email": "dev@example.com"}))
        assert exc.value.status_code == 401

    async def test_missing_credentials_rejected(self):
        with pytest.raises(HTTPException) as exc:
            await verify_token(None)
        assert exc.value.status_code == 401

    async def test_garbage_token_rejected(self):
        with pytest.raises(HTTPException) as exc:
            await verify_token(HTTPAuthorizationCredentials(scheme="Bearer", credentials="not-a-jwt"))
        assert exc.value.status_code == 401


class TestRequireAdmin:
    async def test_admin_allowed(self, db):
        await user_crud.create(db, obj_in=UserCreate(email="admin@example.com", role=UserRole.ADMIN))
        user = await require_admin(TokenData(user_id="u", email="admin@example.com"), db)
        assert user.role == UserRole.ADMIN

    async def test_regular_user_forbidden(self, db):
        await user_crud.create(db, obj_in=UserCreate(email="user@example.com"))
        with pytest.raises(HTTPException) as exc:
            await require_admin(TokenData(user_id="u", email="user@example.com"), db)
        assert exc.value.status_code == 403

    async def test_no_database_is_503(self):
        with pytest.raises(HTTPException) as exc:
            await require_admin(TokenData(user_id="u", email="admin@example.com"), None)
        assert exc.value.status_code == 503

    async def test_setup_mode_without_database(self):
        assert await require_admin_or_setup(TokenData(user_id="u", email="x@example.com"), None) is None
