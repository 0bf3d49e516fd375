import uuid
from datetime import date, datetime, time
from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text, Time
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from vandesk.db.base import Base, TimestampMixin

JSONType = JSON().with_variant(JSONB, "postgresql")


class Incident(Base, TimestampMixin):
    """
    Van incident report.

    status flow:         submitted -> in_review -> closed
    ld_review_status:    NULL -> approved | needs_revision (terminal)
    ld_draft_status:     pending -> generated -> reviewed -> sent

    ai_* fields and season_incident_count are written only by the damage
    assessment and overwritten on every re-run.
    ops_email_sent_at is write-once.
    """
    __tablename__ = "van_incidents"
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reporter_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    # Facts, fixed at creation
    ops_area: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    trip_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    van_id: Mapped[str] = mapped_column(String(50), nullable=False)
    license_plate: Mapped[str] = mapped_column(String(30), nullable=False)
    vin: Mapped[str] = mapped_column(String(30), nullable=False)
    incident_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    incident_time: Mapped[time] = mapped_column(Time, nullable=False)
    location_text: Mapped[str] = mapped_column(String(500), nullable=False)
    weather: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    vehicle_drivable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    was_towed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    # Case
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="submitted")
    ops_admin_user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    confirmation_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Damage assessment
    ai_cost_bucket: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ai_severity: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ai_confidence: Mapped[str | None] = mapped_column(String(10), nullable=True)
    ai_repair_complexity: Mapped[str | None] = mapped_column(String(10), nullable=True)
    ai_cost_range: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ai_damaged_components: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    ai_analysis_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    season_incident_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # LD review
    ld_review_status: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    ld_preventability_decision: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ld_reviewed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    ld_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ld_review_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    ld_cost_bucket_override: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ld_draft_content: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ld_edited_draft: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ld_draft_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    ld_draft_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # OPS dispatch
    final_email_content: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ops_email_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ops_email_sent_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class IncidentReviewComment(Base):
    """Insert-only thread between LD and OPS."""
    __tablename__ = "incident_review_comments"
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    incident_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("van_incidents.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
