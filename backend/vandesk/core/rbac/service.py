import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vandesk.core.rbac.models import User
from vandesk.core.rbac.schemas import UserCreate


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    user = User(
        email=data.email.lower() if data.email else None,
        full_name=data.full_name,
        roles=",".join(dict.fromkeys(data.roles)),
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.created_at.asc()))
    return list(result.scalars().all())
