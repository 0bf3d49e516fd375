"""
OPS dispatch of the final determination email, plus the submission receipt.

The final email goes out at most once. The sent-stamp is a conditional
update on ops_email_sent_at IS NULL, so a racing second sender cannot
overwrite the stored content.
"""
import uuid

from fastapi import HTTPException
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from vandesk.core.audit.service import audit
from vandesk.core.incidents import drafts
from vandesk.core.incidents.models import Incident
from vandesk.core.incidents.schemas import FinalEmailContent, SendFinalEmailRequest, SendFinalEmailResponse
from vandesk.core.incidents.workflow import can_dispatch
from vandesk.core.logging import get_logger
from vandesk.core.notifications.email import DeliveryError, EmailProvider, OutboundEmail
from vandesk.core.rbac.service import get_user
from vandesk.db.base import utcnow

logger = get_logger(__name__)


def _already_sent(incident: Incident) -> SendFinalEmailResponse:
    stored = incident.final_email_content or {}
    return SendFinalEmailResponse(
        success=True,
        already_sent=True,
        incident_id=incident.id,
        ops_email_sent_at=incident.ops_email_sent_at,
        final_email=FinalEmailContent(
            subject=stored.get("subject", ""),
            body=stored.get("body", ""),
            recipient_email=stored.get("recipient_email", ""),
            recipient_name=stored.get("recipient_name"),
            provider_message_id=stored.get("provider_message_id"),
        ),
    )


def resolve_content(incident: Incident, data: SendFinalEmailRequest | None) -> tuple[str, str]:
    """Explicit subject and body from OPS > saved LD edit > generated draft."""
    if data and data.subject and data.subject.strip() and data.body and data.body.strip():
        return data.subject.strip(), data.body.strip()
    p = drafts.preview(incident)
    return p.subject, p.body


async def send_final_email(
    db: AsyncSession,
    incident: Incident,
    data: SendFinalEmailRequest | None,
    provider: EmailProvider,
    *,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> SendFinalEmailResponse:
    if incident.ops_email_sent_at is not None:
        return _already_sent(incident)
    if not can_dispatch(incident.ld_review_status, incident.ops_email_sent_at):
        raise HTTPException(409, "LD review must be approved before the final email can be sent")

    reporter = await get_user(db, incident.reporter_id)
    if not reporter or not reporter.email:
        raise HTTPException(422, "Reporter has no email address on file")

    subject, body = resolve_content(incident, data)
    email = OutboundEmail(
        incident_id=incident.id,
        recipient_email=reporter.email,
        recipient_name=reporter.full_name,
        subject=subject,
        body=body,
    )
    try:
        message_id = await provider.send_final(email)
    except DeliveryError as exc:
        logger.error(
            "Final email delivery failed",
            extra={"extra_data": {"incident_id": str(incident.id), "error": str(exc)}},
        )
        raise HTTPException(502, str(exc))

    content = FinalEmailContent(
        subject=subject,
        body=body,
        recipient_email=reporter.email,
        recipient_name=reporter.full_name,
        provider_message_id=message_id,
    )
    sent_at = utcnow()
    result = await db.execute(
        update(Incident)
        .where(Incident.id == incident.id, Incident.ops_email_sent_at.is_(None))
        .values(
            ops_email_sent_at=sent_at,
            ops_email_sent_by=user_id,
            final_email_content=content.model_dump(),
            ld_draft_status="sent",
            status="closed",
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(incident)
    if result.rowcount == 0:
        logger.warning(
            "Final email sent but incident was already stamped",
            extra={"extra_data": {"incident_id": str(incident.id)}},
        )
        return _already_sent(incident)

    await audit(
        db,
        user_id=user_id,
        action="incident.final_email_sent",
        resource_type="van_incident",
        resource_id=str(incident.id),
        detail={"recipient": reporter.email, "subject": subject, "provider_message_id": message_id},
        ip_address=ip_address,
    )
    return SendFinalEmailResponse(
        success=True,
        already_sent=False,
        incident_id=incident.id,
        ops_email_sent_at=incident.ops_email_sent_at,
        final_email=content,
    )


async def send_receipt(db: AsyncSession, incident: Incident, provider: EmailProvider) -> bool:
    """Best effort. Failures are logged and never propagate."""
    reporter = await get_user(db, incident.reporter_id)
    if not reporter or not reporter.email:
        logger.warning("No reporter email for receipt", extra={"extra_data": {"incident_id": str(incident.id)}})
        return False
    try:
        await provider.send_confirmation(
            incident_id=incident.id,
            recipient_email=reporter.email,
            recipient_name=reporter.full_name,
            van_id=incident.van_id,
            incident_date=incident.incident_date.isoformat(),
            ops_area=incident.ops_area,
        )
    except DeliveryError as exc:
        logger.warning(
            "Submission receipt failed",
            extra={"extra_data": {"incident_id": str(incident.id), "error": str(exc)}},
        )
        return False
    incident.confirmation_sent_at = utcnow()
    await db.flush()
    return True
