"""
Review state machine for van incidents.

Three independent axes live on one record and each has its own table:

  case status    submitted -> in_review -> closed      (reviewers, dispatch)
  LD review      NULL/pending -> approved | needs_revision   (LD only, terminal)
  draft status   pending -> generated -> reviewed -> sent    (assessment, LD, dispatch)

The axes are not ordered against each other. Only the dispatcher moves the
draft to 'sent', and only when the LD review is 'approved'.
"""
from typing import Iterable, get_args

from fastapi import HTTPException

from vandesk.core.incidents.schemas import CostBucket, LDDecision

LD_DECISIONS = get_args(LDDecision)
COST_BUCKETS = get_args(CostBucket)


VALID_CASE_TRANSITIONS = {
    "submitted": ["in_review", "closed"],
    "in_review": ["closed"],
    "closed": [],
}

VALID_DRAFT_TRANSITIONS = {
    "pending": ["generated", "sent"],
    "generated": ["generated", "reviewed", "sent"],
    "reviewed": ["generated", "sent"],
    "sent": [],
}


# ── Roles & permissions ───────────────────────────────────────────────────────

ROLE_FIELD_STAFF = "field_staff"
ROLE_LD = "ld"
ROLE_OPS = "ops"
ROLE_ADMIN = "admin"

REVIEWING_ROLES = frozenset({ROLE_LD, ROLE_OPS, ROLE_ADMIN})

PERMISSION_OPEN = "incident:open"
PERMISSION_CLOSE = "incident:close"
PERMISSION_FORCE_STATUS = "incident:force_status"
PERMISSION_ASSESS = "incident:assess"
PERMISSION_LD_DECIDE = "ld:decide"
PERMISSION_LD_OVERRIDE_COST = "ld:override_cost"
PERMISSION_DRAFT_EDIT = "draft:edit"
PERMISSION_DRAFT_MARK_REVIEWED = "draft:mark_reviewed"
PERMISSION_SEND = "ops:send"
PERMISSION_COMMENT_WRITE = "comment:write"
PERMISSION_COMMENT_READ = "comment:read"
PERMISSION_AUDIT_READ = "incident:audit_read"

PERMISSIONS: dict[str, frozenset[str]] = {
    PERMISSION_OPEN: REVIEWING_ROLES,
    PERMISSION_CLOSE: REVIEWING_ROLES,
    PERMISSION_FORCE_STATUS: frozenset({ROLE_OPS, ROLE_ADMIN}),
    PERMISSION_ASSESS: REVIEWING_ROLES,
    PERMISSION_LD_DECIDE: frozenset({ROLE_LD, ROLE_ADMIN}),
    PERMISSION_LD_OVERRIDE_COST: frozenset({ROLE_LD, ROLE_ADMIN}),
    PERMISSION_DRAFT_EDIT: REVIEWING_ROLES,
    PERMISSION_DRAFT_MARK_REVIEWED: frozenset({ROLE_LD, ROLE_ADMIN}),
    PERMISSION_SEND: frozenset({ROLE_OPS, ROLE_ADMIN}),
    PERMISSION_COMMENT_WRITE: REVIEWING_ROLES,
    PERMISSION_COMMENT_READ: REVIEWING_ROLES,
    PERMISSION_AUDIT_READ: REVIEWING_ROLES,
}


def has_permission(roles: Iterable[str], permission: str) -> bool:
    allowed = PERMISSIONS.get(permission, frozenset())
    return any(role in allowed for role in roles)


def is_reviewer(roles: Iterable[str]) -> bool:
    return any(role in REVIEWING_ROLES for role in roles)


def require_permission(roles: Iterable[str], permission: str) -> None:
    if not has_permission(roles, permission):
        raise HTTPException(403, f"Permission denied: {permission} required")


# ── Axis guards ───────────────────────────────────────────────────────────────

def can_transition_case(from_status: str, to_status: str) -> bool:
    return to_status in VALID_CASE_TRANSITIONS.get(from_status, [])


def can_transition_draft(from_status: str | None, to_status: str) -> bool:
    return to_status in VALID_DRAFT_TRANSITIONS.get(from_status or "pending", [])


def is_ld_decided(ld_review_status: str | None) -> bool:
    return ld_review_status in LD_DECISIONS


def draft_status_after_assessment(current: str | None) -> str:
    """A re-run resets the draft to 'generated' unless the email already went out."""
    if current == "sent":
        return "sent"
    return "generated"


def can_dispatch(ld_review_status: str | None, ops_email_sent_at) -> bool:
    return ops_email_sent_at is not None or ld_review_status == "approved"
