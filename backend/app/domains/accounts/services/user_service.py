from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy import update
import bcrypt
import logging
from typing import Any, Dict, Optional

from ..models.user import User, ROLE_TENANT
from ..schemas.user import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class UserService:

    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    @staticmethod
    def verify_password(password: str, hashed_password: str) -> bool:
        return bcrypt.checkpw(password.encode('utf-8'), hashed_password.encode('utf-8'))

    @staticmethod
    async def create_user(db: AsyncSession, user_data: UserCreate) -> Optional[User]:
        try:
            hashed_password = UserService.hash_password(user_data.password)
            db_user = User(
                email=user_data.email.lower(),
                username=user_data.username,
                hashed_password=hashed_password,
                name=user_data.name,
                role=ROLE_TENANT
            )
            db.add(db_user)
            await db.commit()
            await db.refresh(db_user)
            return db_user
        except IntegrityError:
            await db.rollback()
            return None

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_external_id(db: AsyncSession, external_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.external_id == external_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def update_user(db: AsyncSession, user_id: int, user_data: UserUpdate) -> Optional[User]:
        user = await UserService.get_user_by_id(db, user_id)
        if not user:
            return None

        for field, value in user_data.model_dump(exclude_unset=True).items():
            setattr(user, field, value)

        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def set_role(db: AsyncSession, user: User, role: str) -> User:
        user.role = role
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def authenticate_user(db: AsyncSession, username: str, password: str) -> Optional[User]:
        user = await UserService.get_user_by_username(db, username)
        if not user or not user.hashed_password or not UserService.verify_password(password, user.hashed_password):
            return None
        return user

    @staticmethod
    async def resolve_identity(db: AsyncSession, claims: Dict[str, Any]) -> User:
        """
        Find or create the internal user for verified identity-token claims.

        Lookup order is external uid, then email (linking the uid to the
        existing account), then a new TENANT account.
        """
        uid = claims["sub"]
        user = await UserService.get_user_by_external_id(db, uid)
        if user:
            return user

        email = (claims.get("email") or "").strip().lower()
        if email:
            user = await UserService.get_user_by_email(db, email)
            if user:
                if not user.external_id:
                    user.external_id = uid
                    await db.commit()
                    await db.refresh(user)
                    logger.info(f"Linked user {user.id} to external identity {uid}")
                else:
                    logger.info(f"User {user.id} matched by email but already linked to a different identity")
                return user

        user = User(
            external_id=uid,
            email=email or f"no-email-{uid}@local",
            name=claims.get("name") or email or None,
            role=ROLE_TENANT
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info(f"Created user {user.id} for external identity {uid}")
        return user

    @staticmethod
    async def adjust_listing_count(db: AsyncSession, user_id: int, delta: int) -> None:
        """Shift the denormalised listing counter; never below zero. Caller commits."""
        if delta < 0:
            stmt = (
                update(User)
                .where(User.id == user_id, User.listing_count >= -delta)
                .values(listing_count=User.listing_count + delta)
            )
        else:
            stmt = update(User).where(User.id == user_id).values(listing_count=User.listing_count + delta)
        await db.execute(stmt)
