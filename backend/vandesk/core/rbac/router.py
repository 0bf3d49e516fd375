import uuid
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from vandesk.core.rbac import service
from vandesk.core.rbac.schemas import UserCreate, UserRead
from vandesk.dependencies import get_db, require_admin, CurrentUser

router = APIRouter(tags=["users"])


@router.post("/users", response_model=UserRead, status_code=201)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    if data.email and await service.get_user_by_email(db, data.email):
        raise HTTPException(409, "Email already registered")
    return await service.create_user(db, data)


@router.get("/users", response_model=list[UserRead])
async def list_users(db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    return await service.list_users(db)


@router.get("/users/{user_id}", response_model=UserRead)
async def get_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    user = await service.get_user(db, user_id)
    if not user:
        raise HTTPException(404, "User not found")
    return user
