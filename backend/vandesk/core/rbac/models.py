import uuid
from sqlalchemy import String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from vandesk.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """
    Directory entry for reporters and reviewers.
    roles: comma-separated, any of field_staff | ld | ops | admin
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    roles: Mapped[str] = mapped_column(String(255), nullable=False, default="field_staff")

    @property
    def role_set(self) -> frozenset[str]:
        return frozenset(r.strip() for r in (self.roles or "").split(",") if r.strip())
