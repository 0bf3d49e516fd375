import uuid
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, EmailStr, Field

Role = Literal["field_staff", "ld", "ops", "admin"]


class UserCreate(BaseModel):
    email: EmailStr | None = None
    full_name: str | None = Field(None, max_length=255)
    roles: list[Role] = Field(default_factory=lambda: ["field_staff"], min_length=1)


class UserRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    email: str | None
    full_name: str | None
    status: str
    roles: str
    created_at: datetime
