import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from billing_api.crud import user_crud, user_settings_crud
from billing_api.models.user import User, UserRole
from billing_api.schemas.billing import UserCreate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedUser:
    id: UUID
    created: bool


def local_part(email: str) -> str:
    return email.split("@", 1)[0]


class UserResolver:
    """Maps payment-provider customer emails onto local user rows"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, email: Optional[str]) -> Optional[User]:
        if not email:
            return None
        return await user_crud.get_by_email(self.db, email)

    async def get_or_create(self, email: str, display_name: Optional[str] = None) -> Optional[ResolvedUser]:
        """
        Idempotent get-or-create by lower-cased email.

        A paying customer counts as email-verified. A concurrent delivery that
        inserts the same email first is tolerated: the existing row is returned
        with created=False. Any other data-store error yields None.
        """
        email = (email or "").strip().lower()
        if not email:
            return None

        try:
            existing = await user_crud.get_by_email(self.db, email)
            if existing:
                return ResolvedUser(id=existing.id, created=False)

            try:
                user = await user_crud.create(
                    self.db,
                    obj_in=UserCreate(
                        email=email,
                        full_name=display_name or local_part(email),
                        role=UserRole.USER,
                        email_verified=True,
                    ),
                )
            except IntegrityError:
                await self.db.rollback()
                winner = await user_crud.get_by_email(self.db, email)
                if winner is None:
                    logger.error("Duplicate key for %s but no user row found", email)
                    return None
                logger.info("User %s was created concurrently, reusing %s", email, winner.id)
                return ResolvedUser(id=winner.id, created=False)

            await user_settings_crud.merge(self.db, user.id, {})
            logger.info("Created user %s for %s from payment event", user.id, email)
            return ResolvedUser(id=user.id, created=True)
        except Exception as e:
            logger.error("Failed to get or create user %s: %s", email, str(e))
            try:
                await self.db.rollback()
            except Exception as rollback_error:
                logger.debug("Rollback failed: %s", rollback_error)
            return None
