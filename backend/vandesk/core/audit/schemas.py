import uuid
from datetime import datetime
from pydantic import BaseModel


class AuditEntryRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    user_id: uuid.UUID | None
    action: str
    resource_type: str
    resource_id: str | None
    detail: dict | None
    ip_address: str | None
    trace_id: str | None
    created_at: datetime
