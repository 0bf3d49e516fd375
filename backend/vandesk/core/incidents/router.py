import uuid
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from vandesk.core.audit.schemas import AuditEntryRead
from vandesk.core.audit.service import client_ip, list_entries
from vandesk.core.files.schemas import IncidentFileCreate, IncidentFileRead
from vandesk.core.files.service import create_file, list_files
from vandesk.core.incidents import comments, dispatch, drafts, service
from vandesk.core.incidents.assessment import AssessmentClient, AssessmentServiceError, run_assessment
from vandesk.core.incidents.models import Incident
from vandesk.core.incidents.schemas import (
    AssessmentResult, CaseStatus, CommentCreate, CommentRead, CostOverrideRequest,
    DraftPreview, DraftStatus, EditedDraft, GuidanceRead, IncidentAdminUpdate,
    IncidentCreate, IncidentRead, LDReviewRequest, SendFinalEmailRequest, SendFinalEmailResponse,
)
from vandesk.core.incidents.workflow import (
    PERMISSION_ASSESS, PERMISSION_AUDIT_READ, PERMISSION_CLOSE, PERMISSION_COMMENT_READ, PERMISSION_COMMENT_WRITE,
    PERMISSION_DRAFT_EDIT, PERMISSION_DRAFT_MARK_REVIEWED, PERMISSION_FORCE_STATUS,
    PERMISSION_LD_DECIDE, PERMISSION_LD_OVERRIDE_COST, PERMISSION_OPEN, PERMISSION_SEND,
    is_reviewer, require_permission,
)
from vandesk.core.notifications.email import EmailProvider
from vandesk.dependencies import (
    CurrentUser, get_assessment_client, get_current_user, get_db, get_email_provider,
)

router = APIRouter(tags=["incidents"])


async def _load(db: AsyncSession, incident_id: uuid.UUID) -> Incident:
    incident = await service.get_incident(db, incident_id)
    if not incident:
        raise HTTPException(404, "Incident not found")
    return incident


@router.post("/incidents", response_model=IncidentRead, status_code=201)
async def create_incident(
    data: IncidentCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
    assessor: AssessmentClient = Depends(get_assessment_client),
    mailer: EmailProvider = Depends(get_email_provider),
):
    return await service.submit_incident(db, current.user, data, assessor, mailer, client_ip(request))


@router.get("/incidents", response_model=list[IncidentRead])
async def list_incidents(
    date_from: date | None = None,
    date_to: date | None = None,
    ops_area: str | None = None,
    status: CaseStatus | None = None,
    ld_draft_status: DraftStatus | None = None,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    return await service.list_incidents(
        db,
        reporter_id=None if is_reviewer(current.roles) else current.user_id,
        date_from=date_from,
        date_to=date_to,
        ops_area=ops_area,
        status=status,
        ld_draft_status=ld_draft_status,
    )


@router.get("/incidents/{incident_id}", response_model=IncidentRead)
async def get_incident(
    incident_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    incident = await _load(db, incident_id)
    service.ensure_can_read(current.roles, current.user_id, incident)
    if is_reviewer(current.roles):
        require_permission(current.roles, PERMISSION_OPEN)
        incident = await service.open_incident(db, incident, current.roles)
    return incident


@router.patch("/incidents/{incident_id}/admin", response_model=IncidentRead)
async def admin_update(
    incident_id: uuid.UUID,
    data: IncidentAdminUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_FORCE_STATUS)
    incident = await _load(db, incident_id)
    return await service.admin_update(db, incident, data, current.user_id, client_ip(request))


@router.post("/incidents/{incident_id}/close", response_model=IncidentRead)
async def close_incident(
    incident_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_CLOSE)
    incident = await _load(db, incident_id)
    return await service.close_incident(db, incident, current.user_id, client_ip(request))


# ── Attachments ───────────────────────────────────────────────────────────────

@router.post("/incidents/{incident_id}/files", response_model=IncidentFileRead, status_code=201)
async def attach_file(
    incident_id: uuid.UUID,
    data: IncidentFileCreate,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    incident = await _load(db, incident_id)
    service.ensure_can_read(current.roles, current.user_id, incident)
    return await create_file(db, incident.id, data)


@router.get("/incidents/{incident_id}/files", response_model=list[IncidentFileRead])
async def get_files(
    incident_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    incident = await _load(db, incident_id)
    service.ensure_can_read(current.roles, current.user_id, incident)
    return await list_files(db, incident.id)


# ── Assessment & LD review ────────────────────────────────────────────────────

@router.post("/incidents/{incident_id}/assess", response_model=AssessmentResult)
async def assess_incident(
    incident_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
    assessor: AssessmentClient = Depends(get_assessment_client),
):
    require_permission(current.roles, PERMISSION_ASSESS)
    incident = await _load(db, incident_id)
    try:
        return await run_assessment(db, incident, assessor, user_id=current.user_id, ip_address=client_ip(request))
    except AssessmentServiceError as exc:
        raise HTTPException(502, str(exc))


@router.get("/incidents/{incident_id}/guidance", response_model=GuidanceRead)
async def get_guidance(
    incident_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_DRAFT_EDIT)
    return service.guidance(await _load(db, incident_id))


@router.post("/incidents/{incident_id}/ld-review", response_model=IncidentRead)
async def ld_review(
    incident_id: uuid.UUID,
    data: LDReviewRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_LD_DECIDE)
    incident = await _load(db, incident_id)
    return await service.decide_ld_review(db, incident, data, current.user_id, client_ip(request))


@router.put("/incidents/{incident_id}/cost-override", response_model=DraftPreview)
async def cost_override(
    incident_id: uuid.UUID,
    data: CostOverrideRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_LD_OVERRIDE_COST)
    incident = await _load(db, incident_id)
    return await service.set_cost_override(db, incident, data, current.user_id, client_ip(request))


# ── Drafts ────────────────────────────────────────────────────────────────────

@router.get("/incidents/{incident_id}/draft", response_model=DraftPreview)
async def get_draft(
    incident_id: uuid.UUID,
    regenerate: bool = False,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_DRAFT_EDIT)
    return drafts.preview(await _load(db, incident_id), regenerate=regenerate)


@router.put("/incidents/{incident_id}/draft", response_model=DraftPreview)
async def save_draft(
    incident_id: uuid.UUID,
    data: EditedDraft,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_DRAFT_EDIT)
    incident = await _load(db, incident_id)
    incident = await drafts.save_edited_draft(db, incident, data, current.user_id, client_ip(request))
    return drafts.preview(incident)


@router.post("/incidents/{incident_id}/draft/mark-reviewed", response_model=IncidentRead)
async def mark_draft_reviewed(
    incident_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_DRAFT_MARK_REVIEWED)
    incident = await _load(db, incident_id)
    return await drafts.mark_reviewed(db, incident, current.user_id, client_ip(request))


# ── Collaboration log ─────────────────────────────────────────────────────────

@router.post("/incidents/{incident_id}/comments", response_model=CommentRead, status_code=201)
async def add_comment(
    incident_id: uuid.UUID,
    data: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_COMMENT_WRITE)
    return await comments.add_comment(db, incident_id, current.user_id, data.body)


@router.get("/incidents/{incident_id}/comments", response_model=list[CommentRead])
async def list_comments(
    incident_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_COMMENT_READ)
    return await comments.list_comments(db, incident_id)


# ── Dispatch ──────────────────────────────────────────────────────────────────

@router.post("/incidents/{incident_id}/send-final-email", response_model=SendFinalEmailResponse)
async def send_final_email(
    incident_id: uuid.UUID,
    request: Request,
    data: SendFinalEmailRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
    mailer: EmailProvider = Depends(get_email_provider),
):
    require_permission(current.roles, PERMISSION_SEND)
    incident = await _load(db, incident_id)
    return await dispatch.send_final_email(
        db, incident, data, mailer, user_id=current.user_id, ip_address=client_ip(request),
    )


# ── Audit trail ───────────────────────────────────────────────────────────────

@router.get("/incidents/{incident_id}/audit", response_model=list[AuditEntryRead])
async def get_audit_trail(
    incident_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    require_permission(current.roles, PERMISSION_AUDIT_READ)
    incident = await _load(db, incident_id)
    return await list_entries(db, "van_incident", str(incident.id))
