"""
Damage assessment.

Sends the incident facts and up to five photos to an OpenAI-compatible
chat-completions endpoint and merges the answer back into the record.

Transport and HTTP failures raise AssessmentServiceError before anything is
written. An answer that cannot be parsed is replaced by a conservative
fallback and never raises.
"""
import json
import re
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import get_args

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vandesk.core.audit.service import audit
from vandesk.core.files.models import IncidentFile
from vandesk.core.files.service import is_image, list_files, public_url
from vandesk.core.incidents import policy
from vandesk.core.incidents.models import Incident
from vandesk.core.incidents.schemas import AssessmentResult, Complexity, Confidence, Severity
from vandesk.core.incidents.workflow import COST_BUCKETS, draft_status_after_assessment
from vandesk.core.logging import get_logger
from vandesk.core.rbac.service import get_user
from vandesk.db.base import utcnow
from vandesk.settings import Settings

logger = get_logger(__name__)

MAX_PHOTOS = 5

SEVERITIES = get_args(Severity)
COMPLEXITIES = get_args(Complexity)
CONFIDENCES = get_args(Confidence)

FALLBACK_NOTE = "AI analysis could not be parsed. Manual review required."

SYSTEM_PROMPT = "You are a vehicle damage assessment AI. Always respond with valid JSON only."


class AssessmentServiceError(Exception):
    pass


@dataclass
class Assessment:
    damaged_components: list[str]
    severity: str
    repair_complexity: str
    cost_bucket: str
    cost_range_text: str
    confidence: str
    notes: str
    parsed: bool = True
    open_items: list[str] = field(default_factory=list)


def fallback_assessment() -> Assessment:
    return Assessment(
        damaged_components=[],
        severity="unclear",
        repair_complexity="medium",
        cost_bucket=policy.DEFAULT_COST_BUCKET,
        cost_range_text="Unable to estimate reliably",
        confidence="low",
        notes=FALLBACK_NOTE,
        parsed=False,
        open_items=["AI response could not be parsed - manual review required"],
    )


_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def parse_assessment(content: str | None) -> Assessment:
    """Parse the model's answer; anything off-shape yields the fallback."""
    if not content:
        return fallback_assessment()
    match = _FENCE.search(content)
    raw = match.group(1) if match else content.strip()
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Unparseable assessment response", extra={"extra_data": {"content": content[:500]}})
        return fallback_assessment()
    if not isinstance(data, dict):
        return fallback_assessment()

    components = data.get("damaged_components") or []
    if not isinstance(components, list) or not all(isinstance(c, str) for c in components):
        return fallback_assessment()
    severity = data.get("severity")
    complexity = data.get("repair_complexity")
    bucket = data.get("cost_bucket")
    confidence = data.get("confidence")
    if (
        severity not in SEVERITIES
        or complexity not in COMPLEXITIES
        or bucket not in COST_BUCKETS
        or confidence not in CONFIDENCES
    ):
        logger.warning("Assessment response has illegal values", extra={"extra_data": {"content": content[:500]}})
        return fallback_assessment()

    return Assessment(
        damaged_components=components,
        severity=severity,
        repair_complexity=complexity,
        cost_bucket=bucket,
        cost_range_text=str(data.get("cost_range_text") or "Unable to estimate"),
        confidence=confidence,
        notes=str(data.get("notes") or ""),
    )


def _flag(value: bool | None) -> str:
    return "Not specified" if value is None else str(value).lower()


def build_prompt(incident: Incident, has_photos: bool) -> str:
    photos = "Photos have been provided for analysis." if has_photos else "No photos were provided."
    return f"""You are an expert vehicle damage assessor for a European fleet management company. Analyze the provided incident report and photos to generate a damage assessment.

INCIDENT DETAILS:
- Van ID: {incident.van_id}
- License Plate: {incident.license_plate}
- Date/Time: {incident.incident_date} at {incident.incident_time}
- Location: {incident.location_text}
- Weather: {incident.weather}
- Description: {incident.description}
- Vehicle Drivable: {_flag(incident.vehicle_drivable)}
- Was Towed: {_flag(incident.was_towed)}

{photos}

Based on the information and any visible damage in photos, provide your assessment in the following JSON format:
{{
  "damaged_components": ["list of likely damaged components e.g. bumper, door panel, mirror, lights"],
  "severity": "cosmetic | structural | unclear",
  "repair_complexity": "low | medium | high",
  "cost_bucket": "under_1500 | 1500_to_3500 | over_3500",
  "cost_range_text": "Likely < €1,500 | Likely €1,500 – €3,500 | Likely > €3,500",
  "confidence": "high | medium | low",
  "notes": "Brief explanation of assessment, any limitations or uncertainties"
}}

IMPORTANT:
- Use European repair cost assumptions
- Provide a range, never a single number
- If photos are insufficient or ambiguous, mark confidence as "low" and note limitations
- Be conservative in estimates - when uncertain, lean toward higher cost bucket"""


class AssessmentClient:
    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssessmentClient":
        return cls(
            api_url=settings.ASSESSMENT_API_URL,
            api_key=settings.ASSESSMENT_API_KEY,
            model=settings.ASSESSMENT_MODEL,
            timeout=settings.ASSESSMENT_TIMEOUT_SECONDS,
        )

    async def assess(self, prompt: str, image_urls: list[str]) -> str:
        """Return the raw message content of the first choice."""
        if image_urls:
            user_content: str | list = [{"type": "text", "text": prompt}] + [
                {"type": "image_url", "image_url": {"url": url}} for url in image_urls[:MAX_PHOTOS]
            ]
        else:
            user_content = prompt
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_content},
            ],
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                resp = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as exc:
            raise AssessmentServiceError(f"Assessment service unreachable: {exc}") from exc

        if not resp.is_success:
            logger.error(
                "Assessment service error",
                extra={"extra_data": {"status": resp.status_code, "body": resp.text[:500]}},
            )
            raise AssessmentServiceError(f"AI analysis failed: {resp.status_code}")

        try:
            data = resp.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            return ""


# ── Season history ────────────────────────────────────────────────────────────

async def season_incident_ordinal(db: AsyncSession, incident: Incident, today: date | None = None) -> int:
    """1-based position of this incident among the reporter's incidents this calendar year."""
    season_start = date((today or utcnow().date()).year, 1, 1)
    result = await db.execute(
        select(func.count(Incident.id)).where(
            Incident.reporter_id == incident.reporter_id,
            Incident.incident_date >= season_start,
            Incident.created_at < incident.created_at,
            Incident.id != incident.id,
        )
    )
    return (result.scalar_one() or 0) + 1


def build_draft_content(
    incident: Incident,
    *,
    reporter_email: str | None,
    result: Assessment,
    ordinal: int,
    files: list[IncidentFile],
    photo_count: int,
) -> dict:
    reported = [f"Weather conditions: {incident.weather}."]
    if incident.vehicle_drivable is False:
        reported.append("Vehicle was NOT drivable.")
    if incident.was_towed:
        reported.append("Vehicle was towed.")

    open_items = list(result.open_items)
    if photo_count == 0:
        open_items.append("No photos provided - manual inspection required")
    if result.confidence == "low" and result.parsed:
        open_items.append("AI confidence is low - manual review recommended")
    open_items += ["Final repair costs to be confirmed with invoice", "Driver statement to be verified"]

    return {
        "incident_overview": {
            "report_id": str(incident.id),
            "reporter_email": reporter_email or "Unknown",
            "ops_area": incident.ops_area,
            "van_id": incident.van_id,
            "date_time": f"{incident.incident_date} at {incident.incident_time}",
            "location": incident.location_text,
        },
        "incident_summary": incident.description,
        "reported_damage": " ".join(reported),
        "ai_damage_review": {
            "damaged_components": result.damaged_components,
            "severity": result.severity,
            "repair_complexity": result.repair_complexity,
            "cost_bucket": result.cost_bucket,
            "cost_range": result.cost_range_text,
            "notes": result.notes,
        },
        "consequence_guidance": policy.guidance_block(incident, ordinal),
        "incident_history_flag": policy.incident_history_flag(ordinal),
        "attachments": [f.file_name for f in files],
        "open_items": open_items,
    }


async def run_assessment(
    db: AsyncSession,
    incident: Incident,
    client: AssessmentClient,
    *,
    user_id: uuid.UUID | None = None,
    ip_address: str | None = None,
) -> AssessmentResult:
    files = await list_files(db, incident.id)
    photos = [f for f in files if is_image(f)][:MAX_PHOTOS]
    image_urls = [public_url(f.file_path) for f in photos]

    # Raises before anything is written
    content = await client.assess(build_prompt(incident, bool(image_urls)), image_urls)
    result = parse_assessment(content)

    ordinal = await season_incident_ordinal(db, incident)
    reporter = await get_user(db, incident.reporter_id)

    incident.ai_cost_bucket = result.cost_bucket
    incident.ai_severity = result.severity
    incident.ai_confidence = result.confidence
    incident.ai_repair_complexity = result.repair_complexity
    incident.ai_cost_range = result.cost_range_text
    incident.ai_damaged_components = result.damaged_components
    incident.ai_analysis_notes = result.notes
    incident.season_incident_count = ordinal
    incident.ld_draft_content = build_draft_content(
        incident,
        reporter_email=reporter.email if reporter else None,
        result=result,
        ordinal=ordinal,
        files=files,
        photo_count=len(image_urls),
    )
    incident.ld_draft_status = draft_status_after_assessment(incident.ld_draft_status)
    incident.ld_draft_generated_at = utcnow()
    await db.flush()

    await audit(
        db,
        user_id=user_id,
        action="incident.assessed",
        resource_type="van_incident",
        resource_id=str(incident.id),
        detail={
            "cost_bucket": result.cost_bucket,
            "confidence": result.confidence,
            "parsed": result.parsed,
            "season_incident_count": ordinal,
            "photos": len(image_urls),
        },
        ip_address=ip_address,
    )
    logger.info(
        "Assessment stored",
        extra={"extra_data": {"incident_id": str(incident.id), "cost_bucket": result.cost_bucket, "parsed": result.parsed}},
    )
    await db.refresh(incident)
    return AssessmentResult(
        success=True,
        incident_id=incident.id,
        ai_cost_bucket=result.cost_bucket,
        incident_count_this_season=ordinal,
        ld_draft_status=incident.ld_draft_status,
        confidence_level=result.confidence,
    )
