import asyncio
import os

from vandesk.core.rbac.models import User
from vandesk.core.rbac.schemas import UserCreate
from vandesk.core.rbac.service import create_user, get_user_by_email
from vandesk.core.logging import get_logger, setup_logging
from vandesk.db.session import get_session

logger = get_logger(__name__)


async def seed() -> User:
    admin_email = os.getenv("SEED_ADMIN_EMAIL", "admin@fleet-ops.example.com")
    admin_name = os.getenv("SEED_ADMIN_NAME", "Fleet Admin")

    async with get_session() as db:
        user = await get_user_by_email(db, admin_email)
        if not user:
            user = await create_user(db, UserCreate(email=admin_email, full_name=admin_name, roles=["admin"]))
            logger.info("Admin created", extra={"extra_data": {"email": user.email, "user_id": str(user.id)}})
        else:
            logger.info("Admin exists", extra={"extra_data": {"email": user.email}})
    return user


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed())
