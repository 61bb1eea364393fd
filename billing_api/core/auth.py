from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from billing_api.schemas.auth import TokenData
from billing_api.core.config import settings
from billing_api.core.database import get_optional_db
from billing_api.core.exceptions import ForbiddenError, ServiceUnavailableError, UnauthorizedError
from billing_api.crud import user_crud
from billing_api.models.user import User, UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode a Supabase-issued JWT; the signature is only checked when JWT_SECRET_KEY is set"""
    if settings.jwt_secret_key:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
    # Development only: read claims without verification
    return jwt.get_unverified_claims(token)


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenData:
    """Verify JWT token and return user data"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Not authenticated")

    try:
        payload = decode_token(credentials.credentials)
    except JWTError as e:
        logger.warning("JWT decode failed: %s", e)
        raise UnauthorizedError()

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError()
    return TokenData(user_id=user_id, email=(payload.get("email") or "").lower())


async def get_current_user(token_data: TokenData = Depends(verify_token)) -> TokenData:
    """Get current authenticated user"""
    return token_data


async def require_admin(
    current_user: TokenData = Depends(get_current_user),
    db: Optional[AsyncSession] = Depends(get_optional_db),
) -> User:
    """Local user row of the caller, which must carry the admin role"""
    if db is None:
        raise ServiceUnavailableError()
    if not current_user.email:
        raise ForbiddenError("Admin access required")

    user = await user_crud.get_by_email(db, current_user.email)
    if user is None or user.role != UserRole.ADMIN:
        raise ForbiddenError("Admin access required")
    return user


async def require_admin_or_setup(
    current_user: TokenData = Depends(get_current_user),
    db: Optional[AsyncSession] = Depends(get_optional_db),
) -> Optional[User]:
    """
    Admin check for settings endpoints. Before a database is configured there
    are no roles to check, so any authenticated user may act (setup mode).
    """
    if db is None:
        return None
    return await require_admin(current_user, db)
