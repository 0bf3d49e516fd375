import uuid
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vandesk.core.incidents.models import Incident, IncidentReviewComment
from vandesk.db.base import utcnow


async def add_comment(db: AsyncSession, incident_id: uuid.UUID, author_id: uuid.UUID, body: str) -> IncidentReviewComment:
    body = (body or "").strip()
    if not body:
        raise HTTPException(422, "Comment body cannot be empty")
    if await db.get(Incident, incident_id) is None:
        raise HTTPException(404, "Incident not found")
    comment = IncidentReviewComment(
        incident_id=incident_id,
        author_id=author_id,
        body=body,
        created_at=utcnow(),
    )
    db.add(comment)
    await db.flush()
    await db.refresh(comment)
    return comment


async def list_comments(db: AsyncSession, incident_id: uuid.UUID) -> list[IncidentReviewComment]:
    if await db.get(Incident, incident_id) is None:
        raise HTTPException(404, "Incident not found")
    result = await db.execute(
        select(IncidentReviewComment)
        .where(IncidentReviewComment.incident_id == incident_id)
        .order_by(IncidentReviewComment.created_at.asc(), IncidentReviewComment.id.asc())
    )
    return list(result.scalars().all())
