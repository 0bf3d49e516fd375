import uuid
from datetime import datetime
from pydantic import BaseModel, Field


class IncidentFileRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    incident_id: uuid.UUID
    file_path: str
    file_type: str
    file_name: str
    created_at: datetime


class IncidentFileCreate(BaseModel):
    model_config = {"str_strip_whitespace": True}
    file_path: str = Field(..., min_length=1, max_length=1000)
    file_type: str = Field(..., min_length=1, max_length=100)
    file_name: str = Field(..., min_length=1, max_length=500)
