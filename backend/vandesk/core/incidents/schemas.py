import uuid
from datetime import date, datetime, time
from typing import Literal
from pydantic import BaseModel, Field, field_validator

from vandesk.core.files.schemas import IncidentFileCreate

CaseStatus = Literal["submitted", "in_review", "closed"]
LDReviewStatus = Literal["pending", "approved", "needs_revision"]
LDDecision = Literal["approved", "needs_revision"]
Preventability = Literal["preventable", "non_preventable"]
DraftStatus = Literal["pending", "generated", "reviewed", "sent"]
CostBucket = Literal["under_1500", "1500_to_3500", "over_3500"]
Severity = Literal["cosmetic", "structural", "unclear"]
Complexity = Literal["low", "medium", "high"]
Confidence = Literal["high", "medium", "low"]


class IncidentCreate(BaseModel):
    model_config = {"str_strip_whitespace": True}
    ops_area: str = Field(..., min_length=1, max_length=100)
    trip_id: str | None = Field(None, max_length=100)
    van_id: str = Field(..., min_length=1, max_length=50)
    license_plate: str = Field(..., min_length=1, max_length=30)
    vin: str = Field(..., min_length=1, max_length=30)
    incident_date: date
    incident_time: time
    location_text: str = Field(..., min_length=1, max_length=500)
    weather: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1)
    vehicle_drivable: bool | None = None
    was_towed: bool | None = None
    files: list[IncidentFileCreate] = Field(default_factory=list)


class IncidentRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    reporter_id: uuid.UUID
    ops_area: str
    trip_id: str | None
    van_id: str
    license_plate: str
    vin: str
    incident_date: date
    incident_time: time
    location_text: str
    weather: str
    description: str
    vehicle_drivable: bool | None
    was_towed: bool | None
    status: CaseStatus
    ops_admin_user_id: uuid.UUID | None
    internal_notes: str | None
    confirmation_sent_at: datetime | None
    ai_cost_bucket: CostBucket | None
    ai_severity: Severity | None
    ai_confidence: Confidence | None
    ai_repair_complexity: Complexity | None
    ai_cost_range: str | None
    ai_damaged_components: list[str] | None
    ai_analysis_notes: str | None
    season_incident_count: int | None
    ld_review_status: LDReviewStatus | None
    ld_preventability_decision: Preventability | None
    ld_reviewed_by: uuid.UUID | None
    ld_reviewed_at: datetime | None
    ld_review_comment: str | None
    ld_cost_bucket_override: CostBucket | None
    ld_draft_content: dict | None
    ld_edited_draft: dict | None
    ld_draft_status: DraftStatus
    ld_draft_generated_at: datetime | None
    final_email_content: dict | None
    ops_email_sent_at: datetime | None
    ops_email_sent_by: uuid.UUID | None
    created_at: datetime
    updated_at: datetime


class IncidentAdminUpdate(BaseModel):
    """Operator override path. Only fields that are set are applied."""
    status: CaseStatus | None = None
    internal_notes: str | None = None
    ops_admin_user_id: uuid.UUID | None = None


# ── LD review ─────────────────────────────────────────────────────────────────

class LDReviewRequest(BaseModel):
    decision: LDDecision
    preventability: Preventability | None = None
    comment: str | None = None


class CostOverrideRequest(BaseModel):
    cost_bucket: CostBucket | None = None


# ── Drafts ────────────────────────────────────────────────────────────────────

class EditedDraft(BaseModel):
    model_config = {"str_strip_whitespace": True}
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)


class ConsequenceRead(BaseModel):
    model_config = {"from_attributes": True}
    title: str
    cost_label: str | None
    mandatory: list[str]
    optional: list[str]
    note: str | None


class GuidanceRead(BaseModel):
    incident_id: uuid.UUID
    effective_cost_bucket: CostBucket
    cost_bucket_source: Literal["override", "ai", "default"]
    incident_ordinal: int
    incident_number_label: str
    consequence: ConsequenceRead
    penalty_start: date
    penalty_end: date


class DraftPreview(BaseModel):
    subject: str
    body: str
    source: Literal["edited", "generated"]
    unsaved: bool = False
    effective_cost_bucket: CostBucket
    draft_status: DraftStatus
    guidance: ConsequenceRead


# ── Assessment ────────────────────────────────────────────────────────────────

class AssessmentResult(BaseModel):
    success: bool
    incident_id: uuid.UUID
    ai_cost_bucket: CostBucket
    incident_count_this_season: int
    ld_draft_status: DraftStatus
    confidence_level: Confidence


# ── Comments ──────────────────────────────────────────────────────────────────

class CommentCreate(BaseModel):
    body: str

    @field_validator("body")
    @classmethod
    def body_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Comment body cannot be empty")
        return v


class CommentRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    incident_id: uuid.UUID
    author_id: uuid.UUID
    body: str
    created_at: datetime


# ── Dispatch ──────────────────────────────────────────────────────────────────

class SendFinalEmailRequest(BaseModel):
    subject: str | None = None
    body: str | None = None


class FinalEmailContent(BaseModel):
    subject: str
    body: str
    recipient_email: str
    recipient_name: str | None = None
    provider_message_id: str | None = None


class SendFinalEmailResponse(BaseModel):
    success: bool
    already_sent: bool
    incident_id: uuid.UUID
    ops_email_sent_at: datetime
    final_email: FinalEmailContent
