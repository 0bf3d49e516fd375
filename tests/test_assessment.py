import json
from datetime import date

import pytest
from conftest import GOOD_ASSESSMENT, FakeAssessment
from vandesk.core.audit.service import list_entries
from vandesk.core.files.schemas import IncidentFileCreate
from vandesk.core.files.service import create_file
from vandesk.core.incidents.assessment import (
    FALLBACK_NOTE, AssessmentServiceError, parse_assessment, run_assessment, season_incident_ordinal,
)
from vandesk.db.base import utcnow


def test_parse_plain_json():
    a = parse_assessment(json.dumps(GOOD_ASSESSMENT))
    assert a.parsed
    assert a.cost_bucket == "under_1500"
    assert a.damaged_components == ["front bumper", "left headlight"]


def test_parse_strips_markdown_fence():
    a = parse_assessment("Here you go:\n```json\n" + json.dumps(GOOD_ASSESSMENT) + "\n```")
    assert a.parsed
    assert a.severity == "cosmetic"


@pytest.mark.parametrize("content", [
    "",
    None,
    "not json at all",
    "[1, 2, 3]",
    json.dumps({**GOOD_ASSESSMENT, "cost_bucket": "about_2000"}),
    json.dumps({**GOOD_ASSESSMENT, "severity": "catastrophic"}),
    json.dumps({**GOOD_ASSESSMENT, "damaged_components": "bumper"}),
])
def test_unparseable_yields_conservative_fallback(content):
    a = parse_assessment(content)
    assert not a.parsed
    assert a.cost_bucket == "1500_to_3500"
    assert a.confidence == "low"
    assert a.severity == "unclear"
    assert a.notes == FALLBACK_NOTE
    assert any("manual review" in item for item in a.open_items)


async def test_run_assessment_writes_ai_fields_and_draft(db, incident, fake_ai):
    result = await run_assessment(db, incident, fake_ai.client())

    assert result.success
    assert result.ai_cost_bucket == "under_1500"
    assert result.incident_count_this_season == 1
    assert result.ld_draft_status == "generated"
    assert result.confidence_level == "high"

    assert incident.ai_severity == "cosmetic"
    assert incident.ai_repair_complexity == "low"
    assert incident.ai_cost_range == "Likely < €1,500"
    assert incident.season_incident_count == 1
    assert incident.ld_draft_generated_at is not None

    content = incident.ld_draft_content
    assert content["incident_overview"]["reporter_email"] == "sam.driver@example.com"
    assert content["consequence_guidance"]["title"] == "FIRST INCIDENT of Season"
    assert content["consequence_guidance"]["mandatory"] == ["Loss of 4 Performance Points"]
    assert "No photos provided - manual inspection required" in content["open_items"]

    entries = await list_entries(db, "van_incident", str(incident.id))
    assert [e.action for e in entries] == ["incident.assessed"]


async def test_photos_sent_as_image_parts_capped_at_five(db, incident, fake_ai):
    for i in range(7):
        await create_file(db, incident.id, IncidentFileCreate(
            file_path=f"{incident.id}/photo-{i}.jpg", file_type="image/jpeg", file_name=f"photo-{i}.jpg",
        ))
    await create_file(db, incident.id, IncidentFileCreate(
        file_path=f"{incident.id}/police.pdf", file_type="application/pdf", file_name="police.pdf",
    ))

    await run_assessment(db, incident, fake_ai.client())

    user_msg = fake_ai.requests[0]["messages"][1]["content"]
    images = [part for part in user_msg if part["type"] == "image_url"]
    assert len(images) == 5
    assert images[0]["image_url"]["url"].startswith("http://localhost:9000/incident-files/")
    assert "police.pdf" in incident.ld_draft_content["attachments"]
    assert "No photos provided - manual inspection required" not in incident.ld_draft_content["open_items"]


async def test_unparseable_response_still_stores_fallback(db, incident):
    ai = FakeAssessment(content="Sorry, I cannot help with that.")
    result = await run_assessment(db, incident, ai.client())
    assert result.ai_cost_bucket == "1500_to_3500"
    assert result.confidence_level == "low"
    assert incident.ai_analysis_notes == FALLBACK_NOTE


@pytest.mark.parametrize("ai", [FakeAssessment(status=500), FakeAssessment(status=302), FakeAssessment(fail=True)])
async def test_service_failure_leaves_record_untouched(db, incident, ai):
    with pytest.raises(AssessmentServiceError):
        await run_assessment(db, incident, ai.client())
    await db.refresh(incident)
    assert incident.ai_cost_bucket is None
    assert incident.ld_draft_status == "pending"
    assert incident.season_incident_count is None


async def test_season_ordinal_counts_earlier_incidents_this_year(db, make_incident, reporter, other_reporter):
    last_year = date(utcnow().year - 1, 12, 30)
    await make_incident(reporter, incident_date=last_year)
    await make_incident(reporter)
    await make_incident(other_reporter)
    second = await make_incident(reporter)
    third = await make_incident(reporter)

    assert await season_incident_ordinal(db, second) == 2
    assert await season_incident_ordinal(db, third) == 3


async def test_rerun_overwrites_and_keeps_edited_draft(db, incident):
    await run_assessment(db, incident, FakeAssessment().client())
    incident.ld_edited_draft = {"subject": "Edited", "body": "Edited body"}
    incident.ld_draft_status = "reviewed"
    await db.flush()

    ai = FakeAssessment(content=json.dumps({**GOOD_ASSESSMENT, "cost_bucket": "over_3500", "damaged_components": []}))
    result = await run_assessment(db, incident, ai.client())

    assert result.ai_cost_bucket == "over_3500"
    assert incident.ai_damaged_components == []
    assert incident.ld_draft_status == "generated"
    assert incident.ld_edited_draft == {"subject": "Edited", "body": "Edited body"}


async def test_rerun_after_send_keeps_sent(db, incident, fake_ai):
    incident.ld_draft_status = "sent"
    incident.ops_email_sent_at = utcnow()
    await db.flush()
    result = await run_assessment(db, incident, fake_ai.client())
    assert result.ld_draft_status == "sent"
    assert incident.ai_cost_bucket == "under_1500"
