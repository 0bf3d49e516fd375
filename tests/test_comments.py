import uuid

import pytest
from fastapi import HTTPException
from vandesk.core.incidents.comments import add_comment, list_comments


async def test_comments_listed_oldest_first(db, incident, ld_user, ops_user):
    await add_comment(db, incident.id, ld_user.id, "Cost looks high")
    await add_comment(db, incident.id, ops_user.id, "  Invoice is on its way  ")
    await add_comment(db, incident.id, ld_user.id, "Thanks")

    thread = await list_comments(db, incident.id)
    assert [c.body for c in thread] == ["Cost looks high", "Invoice is on its way", "Thanks"]
    assert thread[1].author_id == ops_user.id


async def test_comments_allowed_after_close(db, incident, ops_user):
    incident.status = "closed"
    await db.flush()
    c = await add_comment(db, incident.id, ops_user.id, "Filed with insurer")
    assert c.id is not None


@pytest.mark.parametrize("body", ["", "   ", "\n\t"])
async def test_blank_comment_rejected(db, incident, ld_user, body):
    with pytest.raises(HTTPException) as exc:
        await add_comment(db, incident.id, ld_user.id, body)
    assert exc.value.status_code == 422
    assert await list_comments(db, incident.id) == []


async def test_unknown_incident_404(db, ld_user):
    with pytest.raises(HTTPException) as exc:
        await add_comment(db, uuid.uuid4(), ld_user.id, "Hello")
    assert exc.value.status_code == 404
    with pytest.raises(HTTPException):
        await list_comments(db, uuid.uuid4())
