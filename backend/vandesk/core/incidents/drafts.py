"""
Field-staff email drafts.

The generated text is always rebuilt from the record; only the LD's edited
draft is persisted. preview() picks between the two.
"""
import uuid
from datetime import date

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from vandesk.core.audit.service import audit
from vandesk.core.incidents import policy
from vandesk.core.incidents.models import Incident
from vandesk.core.incidents.schemas import ConsequenceRead, DraftPreview, EditedDraft
from vandesk.core.incidents.workflow import can_transition_draft


def _long_date(d: date) -> str:
    return f"{d:%B} {d.day}, {d.year}"


def _short_date(d: date) -> str:
    return f"{d:%b} {d.day}, {d.year}"


def generate_subject(incident: Incident) -> str:
    return f"Van Incident Follow-up - {incident.van_id} ({_short_date(incident.incident_date)})"


def generate_body(incident: Incident) -> str:
    preventability = (
        "non-preventable" if incident.ld_preventability_decision == "non_preventable" else "preventable"
    )
    c = policy.consequence(policy.effective_cost_bucket(incident), incident.season_incident_count)
    start, end = policy.penalty_period(incident.incident_date)

    damage: list[str] = []
    if incident.ai_damaged_components:
        damage.append(f"Damaged Components: {', '.join(incident.ai_damaged_components)}")
    if incident.ai_cost_range:
        damage.append(f"Estimated Repair Cost: {incident.ai_cost_range}")
    if not damage:
        damage.append("See attached photos for damage details.")

    heading = c.title + (f" ({c.cost_label})" if c.cost_label else "")
    lines = [
        f"We are following up regarding the van incident on {_long_date(incident.incident_date)} "
        f"involving vehicle {incident.van_id}.",
        "",
        "INCIDENT SUMMARY:",
        incident.description,
        "",
        f"LOCATION: {incident.location_text}",
        f"WEATHER CONDITIONS: {incident.weather}",
        "",
        "DAMAGE ASSESSMENT:",
        *damage,
        "",
        "DETERMINATION:",
        f"This incident has been determined to be {preventability}.",
        "",
        "POLICY CONSEQUENCES:",
        heading,
        "",
        "Mandatory:",
        *[f"  • {item}" for item in c.mandatory],
    ]
    if c.optional:
        lines += ["", "Optional:", *[f"  • {item} (optional)" for item in c.optional]]
    if c.note:
        lines += ["", f"Note: {c.note}"]
    lines += [
        "",
        f"All penalties apply for 1 calendar year ({_long_date(start)} to {_long_date(end)}).",
        "",
        "If you have any questions about this determination, please contact your Operations Manager.",
    ]
    return "\n".join(lines)


def saved_edit(incident: Incident) -> EditedDraft | None:
    """The LD's edited draft, only when both subject and body are present."""
    edited = incident.ld_edited_draft or {}
    subject = (edited.get("subject") or "").strip()
    body = (edited.get("body") or "").strip()
    if subject and body:
        return EditedDraft(subject=subject, body=body)
    return None


def preview(incident: Incident, *, regenerate: bool = False, unsaved: bool = False) -> DraftPreview:
    bucket = policy.effective_cost_bucket(incident)
    c = policy.consequence(bucket, incident.season_incident_count)
    edited = None if regenerate else saved_edit(incident)
    if edited:
        subject, body, source = edited.subject, edited.body, "edited"
    else:
        subject, body, source = generate_subject(incident), generate_body(incident), "generated"
    return DraftPreview(
        subject=subject,
        body=body,
        source=source,
        unsaved=unsaved,
        effective_cost_bucket=bucket,
        draft_status=incident.ld_draft_status,
        guidance=ConsequenceRead.model_validate(c),
    )


async def save_edited_draft(
    db: AsyncSession,
    incident: Incident,
    data: EditedDraft,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> Incident:
    if incident.ops_email_sent_at is not None or incident.ld_draft_status == "sent":
        raise HTTPException(409, "Final email already sent; draft can no longer be edited")
    incident.ld_edited_draft = {"subject": data.subject, "body": data.body}
    await db.flush()
    await audit(
        db, user_id=user_id, action="incident.draft_saved",
        resource_type="van_incident", resource_id=str(incident.id), ip_address=ip_address,
    )
    await db.refresh(incident)
    return incident


async def mark_reviewed(
    db: AsyncSession,
    incident: Incident,
    user_id: uuid.UUID,
    ip_address: str | None = None,
) -> Incident:
    """generated -> reviewed. Independent of the LD approval decision."""
    if incident.ld_draft_status == "reviewed":
        return incident
    if not can_transition_draft(incident.ld_draft_status, "reviewed"):
        raise HTTPException(409, f"Cannot mark draft reviewed from '{incident.ld_draft_status}'")
    incident.ld_draft_status = "reviewed"
    await db.flush()
    await audit(
        db, user_id=user_id, action="incident.draft_reviewed",
        resource_type="van_incident", resource_id=str(incident.id), ip_address=ip_address,
    )
    await db.refresh(incident)
    return incident
