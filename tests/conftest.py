import json
from datetime import time
from typing import AsyncGenerator

import httpx
import pytest
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool


# SQLite has no native UUID column type
@compiles(UUID, "sqlite")
def compile_uuid_sqlite(type_, compiler, **kw):
    return "VARCHAR(36)"


from vandesk.db.base import Base, utcnow  # noqa: E402
from vandesk.core.audit.models import AuditLog  # noqa: E402,F401
from vandesk.core.files.models import IncidentFile  # noqa: E402,F401
from vandesk.core.incidents.assessment import AssessmentClient  # noqa: E402
from vandesk.core.incidents.models import Incident, IncidentReviewComment  # noqa: E402,F401
from vandesk.core.incidents.schemas import IncidentCreate  # noqa: E402
from vandesk.core.incidents.service import create_incident  # noqa: E402
from vandesk.core.notifications.email import EmailProvider  # noqa: E402
from vandesk.core.rbac.models import User  # noqa: E402
from vandesk.core.rbac.schemas import UserCreate  # noqa: E402
from vandesk.core.rbac.service import create_user  # noqa: E402

GOOD_ASSESSMENT = {
    "damaged_components": ["front bumper", "left headlight"],
    "severity": "cosmetic",
    "repair_complexity": "low",
    "cost_bucket": "under_1500",
    "cost_range_text": "Likely < €1,500",
    "confidence": "high",
    "notes": "Scrape along the front bumper.",
}


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


async def _user(db: AsyncSession, email: str, name: str, roles: list[str]) -> User:
    return await create_user(db, UserCreate(email=email, full_name=name, roles=roles))


@pytest.fixture
async def reporter(db) -> User:
    return await _user(db, "sam.driver@example.com", "Sam Driver", ["field_staff"])


@pytest.fixture
async def other_reporter(db) -> User:
    return await _user(db, "alex.guide@example.com", "Alex Guide", ["field_staff"])


@pytest.fixture
async def ld_user(db) -> User:
    return await _user(db, "lee.lead@example.com", "Lee Lead", ["ld"])


@pytest.fixture
async def ops_user(db) -> User:
    return await _user(db, "olive.ops@example.com", "Olive Ops", ["ops"])


@pytest.fixture
async def admin_user(db) -> User:
    return await _user(db, "ada.admin@example.com", "Ada Admin", ["admin"])


def incident_payload(**overrides) -> IncidentCreate:
    data = dict(
        ops_area="Dolomites",
        trip_id="TRIP-2231",
        van_id="VAN-17",
        license_plate="AB123CD",
        vin="WDB9066331S123456",
        incident_date=utcnow().date(),
        incident_time=time(14, 30),
        location_text="Hotel car park, Cortina",
        weather="Rain",
        description="Reversed into a bollard while parking.",
        vehicle_drivable=True,
        was_towed=False,
    )
    data.update(overrides)
    return IncidentCreate(**data)


@pytest.fixture
def make_incident(db):
    async def _make(reporter: User, **overrides) -> Incident:
        return await create_incident(db, reporter.id, incident_payload(**overrides))
    return _make


@pytest.fixture
async def incident(make_incident, reporter) -> Incident:
    return await make_incident(reporter)


# ── Fake external services ────────────────────────────────────────────────────

class FakeAssessment:
    """Chat-completions stand-in. Records every request body it receives."""

    def __init__(self, content: str | None = None, status: int = 200, fail: bool = False):
        self.content = json.dumps(GOOD_ASSESSMENT) if content is None else content
        self.status = status
        self.fail = fail
        self.requests: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)
        self.requests.append(json.loads(request.content))
        if not 200 <= self.status < 300:
            return httpx.Response(self.status, text="gateway exploded")
        return httpx.Response(200, json={"choices": [{"message": {"content": self.content}}]})

    def client(self) -> AssessmentClient:
        return AssessmentClient(
            api_url="https://ai.test/v1/chat/completions",
            api_key="test-key",
            model="test-model",
            transport=httpx.MockTransport(self.handler),
        )


class FakeMailer:
    """Resend-style stand-in. Records every email payload it receives."""

    def __init__(self, status: int = 200, message: str = "Domain not verified"):
        self.status = status
        self.message = message
        self.sent: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if not 200 <= self.status < 300:
            return httpx.Response(self.status, json={"message": self.message})
        self.sent.append(payload)
        return httpx.Response(200, json={"id": f"msg-{len(self.sent)}"})

    def provider(self) -> EmailProvider:
        return EmailProvider(
            api_url="https://mail.test/emails",
            api_key="test-key",
            from_address="Fleet Ops <ops@fleet.test>",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def fake_ai() -> FakeAssessment:
    return FakeAssessment()


@pytest.fixture
def fake_mail() -> FakeMailer:
    return FakeMailer()
