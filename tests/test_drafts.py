from datetime import date

import pytest
from fastapi import HTTPException
from vandesk.core.incidents import drafts
from vandesk.core.incidents.schemas import EditedDraft
from vandesk.db.base import utcnow


async def test_generated_subject_and_body(db, make_incident, reporter):
    incident = await make_incident(reporter, incident_date=date(2026, 3, 7))
    incident.ai_damaged_components = ["rear door", "tail light"]
    incident.ai_cost_range = "Likely €1,500 – €3,500"
    incident.ai_cost_bucket = "1500_to_3500"
    incident.season_incident_count = 1

    p = drafts.preview(incident)
    assert p.source == "generated"
    assert p.subject == "Van Incident Follow-up - VAN-17 (Mar 7, 2026)"
    assert "on March 7, 2026 involving vehicle VAN-17" in p.body
    assert "Damaged Components: rear door, tail light" in p.body
    assert "Estimated Repair Cost: Likely €1,500 – €3,500" in p.body
    assert "determined to be preventable" in p.body
    assert "FIRST INCIDENT of Season (€1,500 to €3,500)" in p.body
    assert "  • Termination (optional)" in p.body
    assert "March 7, 2026 to March 7, 2027" in p.body
    assert not p.body.startswith("Dear")


async def test_body_without_damage_facts_points_at_photos(db, incident):
    body = drafts.generate_body(incident)
    assert "See attached photos for damage details." in body
    assert "Damaged Components" not in body
    assert "Estimated Repair Cost" not in body


async def test_non_preventable_wording(db, incident):
    incident.ld_preventability_decision = "non_preventable"
    assert "determined to be non-preventable" in drafts.generate_body(incident)


async def test_third_incident_body_has_no_optional_block(db, incident):
    incident.season_incident_count = 3
    body = drafts.generate_body(incident)
    assert "THIRD+ INCIDENT of Season\n" in body
    assert "Optional:" not in body


async def test_edited_draft_wins_unless_regenerate(db, incident, ld_user):
    await drafts.save_edited_draft(db, incident, EditedDraft(subject="Custom", body="Custom body"), ld_user.id)

    assert drafts.preview(incident).source == "edited"
    assert drafts.preview(incident).subject == "Custom"
    regenerated = drafts.preview(incident, regenerate=True)
    assert regenerated.source == "generated"
    assert regenerated.subject.startswith("Van Incident Follow-up")


async def test_half_empty_edit_is_ignored(db, incident):
    incident.ld_edited_draft = {"subject": "Only a subject", "body": "  "}
    assert drafts.preview(incident).source == "generated"


async def test_save_rejected_after_send(db, incident, ld_user):
    incident.ops_email_sent_at = utcnow()
    incident.ld_draft_status = "sent"
    await db.flush()
    with pytest.raises(HTTPException) as exc:
        await drafts.save_edited_draft(db, incident, EditedDraft(subject="x", body="y"), ld_user.id)
    assert exc.value.status_code == 409


async def test_mark_reviewed_only_from_generated(db, incident, ld_user):
    with pytest.raises(HTTPException) as exc:
        await drafts.mark_reviewed(db, incident, ld_user.id)
    assert exc.value.status_code == 409

    incident.ld_draft_status = "generated"
    await db.flush()
    await drafts.mark_reviewed(db, incident, ld_user.id)
    assert incident.ld_draft_status == "reviewed"
    # approval is a separate signal
    assert incident.ld_review_status is None
