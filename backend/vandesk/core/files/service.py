import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from vandesk.core.files.models import IncidentFile
from vandesk.core.files.schemas import IncidentFileCreate
from vandesk.db.base import utcnow
from vandesk.settings import get_settings


async def create_file(db: AsyncSession, incident_id: uuid.UUID, data: IncidentFileCreate) -> IncidentFile:
    f = IncidentFile(incident_id=incident_id, created_at=utcnow(), **data.model_dump())
    db.add(f)
    await db.flush()
    await db.refresh(f)
    return f


async def list_files(db: AsyncSession, incident_id: uuid.UUID) -> list[IncidentFile]:
    result = await db.execute(
        select(IncidentFile)
        .where(IncidentFile.incident_id == incident_id)
        .order_by(IncidentFile.created_at.asc())
    )
    return list(result.scalars().all())


def is_image(f: IncidentFile) -> bool:
    return f.file_type.lower().startswith("image/")


def public_url(file_path: str) -> str:
    base = get_settings().STORAGE_PUBLIC_BASE_URL.rstrip("/")
    return f"{base}/{file_path.lstrip('/')}"
