import uuid
from dataclasses import dataclass
from typing import Annotated, AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from vandesk.core.auth.security import decode_access_token
from vandesk.core.incidents.assessment import AssessmentClient
from vandesk.core.notifications.email import EmailProvider
from vandesk.core.rbac.models import User
from vandesk.core.rbac.service import get_user
from vandesk.db.session import AsyncSessionLocal
from vandesk.settings import get_settings

bearer = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    user: User
    user_id: uuid.UUID
    roles: frozenset[str]


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
        user_id = uuid.UUID(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = await get_user(db, user_id)
    if not user or user.status != "active":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

    return CurrentUser(user=user, user_id=user_id, roles=user.role_set)


async def require_admin(
    current: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if "admin" not in current.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin required")
    return current


def get_assessment_client() -> AssessmentClient:
    return AssessmentClient.from_settings(get_settings())


def get_email_provider() -> EmailProvider:
    return EmailProvider.from_settings(get_settings())
