import pytest
from fastapi import HTTPException
from conftest import FakeAssessment, FakeMailer, incident_payload
from vandesk.core.audit.service import list_entries
from vandesk.core.files.schemas import IncidentFileCreate
from vandesk.core.files.service import list_files
from vandesk.core.incidents import service
from vandesk.core.incidents.assessment import run_assessment
from vandesk.core.incidents.schemas import CostOverrideRequest, IncidentAdminUpdate, LDReviewRequest
from vandesk.db.base import utcnow


# ── Submission ────────────────────────────────────────────────────────────────

async def test_submit_creates_files_sends_receipt_and_assesses(db, reporter, fake_ai, fake_mail):
    data = incident_payload(files=[
        IncidentFileCreate(file_path="x/front.jpg", file_type="image/jpeg", file_name="front.jpg"),
    ])
    incident = await service.submit_incident(db, reporter, data, fake_ai.client(), fake_mail.provider())

    assert incident.status == "submitted"
    assert incident.ld_draft_status == "generated"
    assert incident.confirmation_sent_at is not None
    assert fake_mail.sent[0]["subject"] == "Van Incident Report Received - VAN-17"
    assert fake_mail.sent[0]["to"] == ["sam.driver@example.com"]
    assert [f.file_name for f in await list_files(db, incident.id)] == ["front.jpg"]

    actions = [e.action for e in await list_entries(db, "van_incident", str(incident.id))]
    assert actions == ["incident.created", "incident.assessed"]


async def test_submit_survives_assessment_and_mail_failures(db, reporter):
    incident = await service.submit_incident(
        db, reporter, incident_payload(), FakeAssessment(status=503).client(), FakeMailer(status=500).provider(),
    )
    assert incident.id is not None
    assert incident.ld_draft_status == "pending"
    assert incident.ai_cost_bucket is None
    assert incident.confirmation_sent_at is None


# ── Case status ───────────────────────────────────────────────────────────────

async def test_reviewer_open_moves_to_in_review(db, incident):
    await service.open_incident(db, incident, frozenset({"field_staff"}))
    assert incident.status == "submitted"
    await service.open_incident(db, incident, frozenset({"ops"}))
    assert incident.status == "in_review"


async def test_close_is_idempotent(db, incident, ops_user):
    await service.close_incident(db, incident, ops_user.id)
    assert incident.status == "closed"
    await service.close_incident(db, incident, ops_user.id)
    assert incident.status == "closed"
    actions = [e.action for e in await list_entries(db, "van_incident", str(incident.id))]
    assert actions == ["incident.closed"]


async def test_illegal_transition_is_400(db, incident):
    incident.status = "closed"
    await db.flush()
    with pytest.raises(HTTPException) as exc:
        await service.transition_incident(db, incident, "in_review")
    assert exc.value.status_code == 400


async def test_admin_update_forces_status_and_audits(db, incident, admin_user, ops_user):
    incident.status = "closed"
    await db.flush()
    data = IncidentAdminUpdate(status="in_review", internal_notes="Reopened for invoice", ops_admin_user_id=ops_user.id)
    await service.admin_update(db, incident, data, admin_user.id)

    assert incident.status == "in_review"
    assert incident.internal_notes == "Reopened for invoice"
    assert incident.ops_admin_user_id == ops_user.id
    entries = await list_entries(db, "van_incident", str(incident.id))
    assert entries[-1].detail["status"] == {"from": "closed", "to": "in_review"}


# ── LD decision ───────────────────────────────────────────────────────────────

async def test_ld_approve(db, incident, ld_user):
    data = LDReviewRequest(decision="approved", preventability="non_preventable", comment="  Fine  ")
    await service.decide_ld_review(db, incident, data, ld_user.id)

    assert incident.ld_review_status == "approved"
    assert incident.ld_reviewed_by == ld_user.id
    assert incident.ld_reviewed_at is not None
    assert incident.ld_review_comment == "Fine"
    assert incident.ld_preventability_decision == "non_preventable"
    assert incident.status == "in_review"


async def test_ld_decision_is_terminal(db, incident, ld_user, admin_user):
    await service.decide_ld_review(db, incident, LDReviewRequest(decision="approved"), ld_user.id)
    first_at = incident.ld_reviewed_at

    again = LDReviewRequest(decision="needs_revision", comment="Changed my mind")
    await service.decide_ld_review(db, incident, again, admin_user.id)

    assert incident.ld_review_status == "approved"
    assert incident.ld_reviewed_by == ld_user.id
    assert incident.ld_reviewed_at == first_at
    assert incident.ld_review_comment is None
    actions = [e.action for e in await list_entries(db, "van_incident", str(incident.id))]
    assert actions == ["incident.ld_decision"]


@pytest.mark.parametrize("comment", [None, "", "   "])
async def test_needs_revision_requires_comment(db, incident, ld_user, comment):
    with pytest.raises(HTTPException) as exc:
        await service.decide_ld_review(
            db, incident, LDReviewRequest(decision="needs_revision", comment=comment), ld_user.id,
        )
    assert exc.value.status_code == 422
    await db.refresh(incident)
    assert incident.ld_review_status is None


@pytest.mark.parametrize("comment", [None, "   "])
async def test_repeat_decision_without_comment_is_a_no_op(db, incident, ld_user, admin_user, comment):
    await service.decide_ld_review(db, incident, LDReviewRequest(decision="approved"), ld_user.id)

    again = LDReviewRequest(decision="needs_revision", comment=comment)
    result = await service.decide_ld_review(db, incident, again, admin_user.id)

    assert result.ld_review_status == "approved"
    assert result.ld_reviewed_by == ld_user.id
    actions = [e.action for e in await list_entries(db, "van_incident", str(incident.id))]
    assert actions == ["incident.ld_decision"]


async def test_explicit_pending_can_still_be_decided(db, incident, ld_user):
    incident.ld_review_status = "pending"
    await db.flush()
    await service.decide_ld_review(
        db, incident, LDReviewRequest(decision="needs_revision", comment="Need the police report"), ld_user.id,
    )
    assert incident.ld_review_status == "needs_revision"
    assert incident.ld_review_comment == "Need the police report"


# ── Cost override & guidance ──────────────────────────────────────────────────

async def test_cost_override_regenerates_unsaved_preview(db, incident, ld_user, fake_ai):
    await run_assessment(db, incident, fake_ai.client())
    incident.ld_edited_draft = {"subject": "Mine", "body": "My words"}
    await db.flush()

    preview = await service.set_cost_override(db, incident, CostOverrideRequest(cost_bucket="over_3500"), ld_user.id)

    assert preview.unsaved
    assert preview.source == "generated"
    assert preview.effective_cost_bucket == "over_3500"
    assert "Loss of 6 Performance Points" in preview.body
    assert incident.ld_edited_draft == {"subject": "Mine", "body": "My words"}

    cleared = await service.set_cost_override(db, incident, CostOverrideRequest(cost_bucket=None), ld_user.id)
    assert cleared.effective_cost_bucket == "under_1500"


async def test_cost_override_refreshes_stored_guidance(db, incident, ld_user, fake_ai):
    await run_assessment(db, incident, fake_ai.client())
    assert incident.ld_draft_content["consequence_guidance"]["cost_tier"] == "under_1500"

    await service.set_cost_override(db, incident, CostOverrideRequest(cost_bucket="over_3500"), ld_user.id)

    guidance = incident.ld_draft_content["consequence_guidance"]
    assert guidance["cost_tier"] == "over_3500"
    assert "Loss of 6 Performance Points" in guidance["mandatory"]
    assert incident.ld_draft_content["ai_damage_review"]["cost_bucket"] == "under_1500"

    await service.set_cost_override(db, incident, CostOverrideRequest(cost_bucket=None), ld_user.id)
    assert incident.ld_draft_content["consequence_guidance"]["cost_tier"] == "under_1500"


async def test_cost_override_rejected_after_send(db, incident, ld_user):
    incident.ops_email_sent_at = utcnow()
    await db.flush()
    with pytest.raises(HTTPException) as exc:
        await service.set_cost_override(db, incident, CostOverrideRequest(cost_bucket="under_1500"), ld_user.id)
    assert exc.value.status_code == 409


async def test_guidance_follows_effective_bucket(db, incident):
    g = service.guidance(incident)
    assert g.cost_bucket_source == "default"
    assert g.effective_cost_bucket == "1500_to_3500"
    assert g.incident_ordinal == 1

    incident.ai_cost_bucket = "under_1500"
    incident.season_incident_count = 2
    g = service.guidance(incident)
    assert g.cost_bucket_source == "ai"
    assert g.consequence.title == "SECOND INCIDENT of Season"
    assert g.incident_number_label == "Second incident this season"


# ── Listing ───────────────────────────────────────────────────────────────────

async def test_list_filters(db, make_incident, reporter, other_reporter):
    a = await make_incident(reporter, ops_area="Dolomites")
    b = await make_incident(other_reporter, ops_area="Provence")
    b.status = "closed"
    await db.flush()

    assert {i.id for i in await service.list_incidents(db)} == {a.id, b.id}
    assert [i.id for i in await service.list_incidents(db, reporter_id=reporter.id)] == [a.id]
    assert [i.id for i in await service.list_incidents(db, ops_area="Provence")] == [b.id]
    assert [i.id for i in await service.list_incidents(db, status="submitted")] == [a.id]
    assert [i.id for i in await service.list_incidents(db, ld_draft_status="pending")] == [b.id, a.id]
