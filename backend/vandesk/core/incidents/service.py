import uuid
from datetime import date
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException

from vandesk.core.audit.service import audit
from vandesk.core.files.service import create_file
from vandesk.core.incidents import dispatch, drafts, policy
from vandesk.core.incidents.assessment import AssessmentClient, AssessmentServiceError, run_assessment
from vandesk.core.incidents.models import Incident
from vandesk.core.incidents.schemas import (
    CostOverrideRequest, DraftPreview, GuidanceRead, ConsequenceRead,
    IncidentAdminUpdate, IncidentCreate, LDReviewRequest,
)
from vandesk.core.incidents.workflow import REVIEWING_ROLES, can_transition_case, is_ld_decided, is_reviewer
from vandesk.core.logging import get_logger
from vandesk.core.notifications.email import EmailProvider
from vandesk.core.rbac.models import User
from vandesk.db.base import utcnow
from vandesk.settings import get_settings

logger = get_logger(__name__)


# ── Record store ──────────────────────────────────────────────────────────────

async def create_incident(db: AsyncSession, reporter_id: uuid.UUID, data: IncidentCreate) -> Incident:
    incident = Incident(
        reporter_id=reporter_id,
        status="submitted",
        ld_draft_status="pending",
        **data.model_dump(exclude={"files"}),
    )
    db.add(incident)
    await db.flush()
    for f in data.files:
        await create_file(db, incident.id, f)
    await db.refresh(incident)
    return incident


async def submit_incident(
    db: AsyncSession,
    reporter: User,
    data: IncidentCreate,
    assessor: AssessmentClient,
    mailer: EmailProvider,
    ip_address: str | None = None,
) -> Incident:
    """
    Create the record, send the receipt and run the first assessment.
    Neither the receipt nor the assessment can fail the submission.
    """
    incident = await create_incident(db, reporter.id, data)
    await audit(
        db, user_id=reporter.id, action="incident.created",
        resource_type="van_incident", resource_id=str(incident.id),
        detail={"van_id": incident.van_id, "files": len(data.files)}, ip_address=ip_address,
    )

    if get_settings().SEND_SUBMISSION_CONFIRMATION:
        await dispatch.send_receipt(db, incident, mailer)

    try:
        await run_assessment(db, incident, assessor, user_id=reporter.id, ip_address=ip_address)
    except AssessmentServiceError as exc:
        logger.error(
            "Initial assessment failed; incident left pending",
            extra={"extra_data": {"incident_id": str(incident.id), "error": str(exc)}},
        )
    await db.refresh(incident)
    return incident


async def get_incident(db: AsyncSession, incident_id: uuid.UUID) -> Incident | None:
    result = await db.execute(select(Incident).where(Incident.id == incident_id))
    return result.scalar_one_or_none()


async def list_incidents(
    db: AsyncSession,
    *,
    reporter_id: uuid.UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    ops_area: str | None = None,
    status: str | None = None,
    ld_draft_status: str | None = None,
) -> list[Incident]:
    q = select(Incident)
    if reporter_id is not None:
        q = q.where(Incident.reporter_id == reporter_id)
    if date_from is not None:
        q = q.where(Incident.incident_date >= date_from)
    if date_to is not None:
        q = q.where(Incident.incident_date <= date_to)
    if ops_area:
        q = q.where(Incident.ops_area == ops_area)
    if status:
        q = q.where(Incident.status == status)
    if ld_draft_status:
        q = q.where(Incident.ld_draft_status == ld_draft_status)
    result = await db.execute(q.order_by(Incident.created_at.desc()))
    return list(result.scalars().all())


def ensure_can_read(roles: frozenset[str], user_id: uuid.UUID, incident: Incident) -> None:
    if is_reviewer(roles) or incident.reporter_id == user_id:
        return
    raise HTTPException(403, "Not allowed to access this incident")


# ── Case status ───────────────────────────────────────────────────────────────

async def open_incident(db: AsyncSession, incident: Incident, roles: frozenset[str]) -> Incident:
    """First look by a reviewing role moves a submitted case into review."""
    if incident.status == "submitted" and roles & REVIEWING_ROLES:
        incident.status = "in_review"
        await db.flush()
        await db.refresh(incident)
    return incident


async def transition_incident(db: AsyncSession, incident: Incident, new_status: str) -> Incident:
    if not can_transition_case(incident.status, new_status):
        raise HTTPException(400, f"Cannot transition from '{incident.status}' to '{new_status}'")
    incident.status = new_status
    await db.flush()
    await db.refresh(incident)
    return incident


async def close_incident(
    db: AsyncSession, incident: Incident, user_id: uuid.UUID, ip_address: str | None = None
) -> Incident:
    if incident.status == "closed":
        return incident
    incident = await transition_incident(db, incident, "closed")
    await audit(
        db, user_id=user_id, action="incident.closed",
        resource_type="van_incident", resource_id=str(incident.id), ip_address=ip_address,
    )
    return incident


async def admin_update(
    db: AsyncSession,
    incident: Incident,
    data: IncidentAdminUpdate,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> Incident:
    """Operator override: any legal status value, notes and assignee."""
    changes = data.model_dump(exclude_unset=True)
    detail: dict = {}
    if "status" in changes and changes["status"] is not None and changes["status"] != incident.status:
        detail["status"] = {"from": incident.status, "to": changes["status"]}
        incident.status = changes["status"]
    if "internal_notes" in changes:
        incident.internal_notes = changes["internal_notes"]
        detail["internal_notes"] = True
    if "ops_admin_user_id" in changes:
        incident.ops_admin_user_id = changes["ops_admin_user_id"]
        detail["ops_admin_user_id"] = str(changes["ops_admin_user_id"]) if changes["ops_admin_user_id"] else None
    await db.flush()
    if detail:
        await audit(
            db, user_id=user_id, action="incident.admin_update",
            resource_type="van_incident", resource_id=str(incident.id),
            detail=detail, ip_address=ip_address,
        )
    await db.refresh(incident)
    return incident


# ── LD review ─────────────────────────────────────────────────────────────────

async def decide_ld_review(
    db: AsyncSession,
    incident: Incident,
    data: LDReviewRequest,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> Incident:
    """
    Terminal once decided. A second decision is a no-op that returns the
    record unchanged; racing reviewers are settled by the WHERE clause.
    """
    await db.refresh(incident)
    if is_ld_decided(incident.ld_review_status):
        return incident

    comment = (data.comment or "").strip() or None
    if data.decision == "needs_revision" and not comment:
        raise HTTPException(422, "A comment is required when requesting revision")

    values = dict(
        ld_review_status=data.decision,
        ld_reviewed_by=user_id,
        ld_reviewed_at=utcnow(),
        ld_review_comment=comment,
    )
    if data.preventability is not None:
        values["ld_preventability_decision"] = data.preventability

    result = await db.execute(
        update(Incident)
        .where(
            Incident.id == incident.id,
            or_(Incident.ld_review_status.is_(None), Incident.ld_review_status == "pending"),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.refresh(incident)
        return incident

    # The decision implies the case is under review
    await db.execute(
        update(Incident)
        .where(Incident.id == incident.id, Incident.status == "submitted")
        .values(status="in_review")
        .execution_options(synchronize_session=False)
    )
    await audit(
        db, user_id=user_id, action="incident.ld_decision",
        resource_type="van_incident", resource_id=str(incident.id),
        detail={"decision": data.decision, "preventability": data.preventability, "comment": comment},
        ip_address=ip_address,
    )
    await db.refresh(incident)
    return incident


async def set_cost_override(
    db: AsyncSession,
    incident: Incident,
    data: CostOverrideRequest,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> DraftPreview:
    """Set or clear the LD cost tier. Returns a freshly generated, unsaved preview."""
    if incident.ops_email_sent_at is not None:
        raise HTTPException(409, "Final email already sent; cost tier can no longer change")
    previous = incident.ld_cost_bucket_override
    incident.ld_cost_bucket_override = data.cost_bucket
    if incident.ld_draft_content:
        incident.ld_draft_content = {**incident.ld_draft_content, "consequence_guidance": policy.guidance_block(incident)}
    await db.flush()
    await audit(
        db, user_id=user_id, action="incident.cost_override",
        resource_type="van_incident", resource_id=str(incident.id),
        detail={"from": previous, "to": data.cost_bucket}, ip_address=ip_address,
    )
    await db.refresh(incident)
    return drafts.preview(incident, regenerate=True, unsaved=True)


def guidance(incident: Incident) -> GuidanceRead:
    bucket = policy.effective_cost_bucket(incident)
    if incident.ld_cost_bucket_override:
        source = "override"
    elif incident.ai_cost_bucket:
        source = "ai"
    else:
        source = "default"
    ordinal = incident.season_incident_count or 1
    start, end = policy.penalty_period(incident.incident_date)
    return GuidanceRead(
        incident_id=incident.id,
        effective_cost_bucket=bucket,
        cost_bucket_source=source,
        incident_ordinal=ordinal,
        incident_number_label=policy.incident_number_label(ordinal),
        consequence=ConsequenceRead.model_validate(policy.consequence(bucket, ordinal)),
        penalty_start=start,
        penalty_end=end,
    )
