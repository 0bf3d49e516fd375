"""
Seasonal penalty chart.

consequence() is the only place the chart lives. The guidance endpoint, the
assessment's draft content and the email composer all call it with the tier
from effective_cost_bucket(), so the on-screen guidance and the email text
cannot drift apart.
"""
from dataclasses import dataclass, field
from datetime import date

from vandesk.core.incidents.workflow import COST_BUCKETS

DEFAULT_COST_BUCKET = "1500_to_3500"

COST_BUCKET_LABELS = {
    "under_1500": "Less than €1,500",
    "1500_to_3500": "€1,500 to €3,500",
    "over_3500": "Over €3,500",
}

ONE_YEAR_WARNING_NOTE = (
    "1-Year Warning: You will have lower priority for Staff Ride approval, scheduling, "
    "Winter Work, and/or career progression opportunities for the duration of the warning."
)


@dataclass(frozen=True)
class Consequence:
    title: str
    mandatory: list[str]
    optional: list[str] = field(default_factory=list)
    note: str | None = None
    cost_label: str | None = None


def consequence(cost_tier: str, incident_ordinal: int | None) -> Consequence:
    if cost_tier not in COST_BUCKETS:
        raise ValueError(f"Unknown cost tier: {cost_tier!r}")
    ordinal = incident_ordinal if incident_ordinal and incident_ordinal > 0 else 1

    if ordinal >= 3:
        return Consequence(
            title="THIRD+ INCIDENT of Season",
            mandatory=["May result in termination", "Application of maximum penalties regardless of cost"],
            note=(
                "Any THIRD incident may result in termination or application of max penalties "
                "regardless of cost of the incident. This overrides all cost-based tiers."
            ),
        )

    if ordinal == 2:
        return Consequence(
            title="SECOND INCIDENT of Season",
            cost_label="Any Cost at All",
            mandatory=["Loss of additional 6 Performance Points"],
            optional=["Termination"],
            note="Policy indicates additional loss of 6 performance points for a second incident.",
        )

    if cost_tier == "under_1500":
        return Consequence(
            title="FIRST INCIDENT of Season",
            cost_label=COST_BUCKET_LABELS[cost_tier],
            mandatory=["Loss of 4 Performance Points"],
        )

    points = 4 if cost_tier == "1500_to_3500" else 6
    return Consequence(
        title="FIRST INCIDENT of Season",
        cost_label=COST_BUCKET_LABELS[cost_tier],
        mandatory=[
            f"Loss of {points} Performance Points",
            "1-Year Warning",
            "Staff Ride Disqualification",
            "Gear Ineligibility",
        ],
        optional=["Termination"],
        note=ONE_YEAR_WARNING_NOTE,
    )


def effective_cost_bucket(incident) -> str:
    """LD override if set, else the AI bucket, else the conservative default."""
    return incident.ld_cost_bucket_override or incident.ai_cost_bucket or DEFAULT_COST_BUCKET


def penalty_period(incident_date: date) -> tuple[date, date]:
    """Consequences run for one calendar year from the incident date."""
    try:
        end = incident_date.replace(year=incident_date.year + 1)
    except ValueError:
        # 29 February
        end = incident_date.replace(year=incident_date.year + 1, day=28)
    return incident_date, end


def incident_number_label(ordinal: int) -> str:
    if ordinal <= 1:
        return "First incident this season"
    if ordinal == 2:
        return "Second incident this season"
    if ordinal == 3:
        return "3rd incident this season"
    return f"{ordinal}th incident this season"


def incident_history_flag(ordinal: int) -> str:
    if ordinal <= 1:
        return "First incident this season"
    if ordinal == 2:
        return "Second incident this season → additional penalties may apply"
    return "Third or subsequent incident → escalated review recommended"


def guidance_block(incident, ordinal: int | None = None) -> dict:
    """consequence_guidance section of the stored draft content, for the effective tier."""
    ordinal = ordinal or incident.season_incident_count or 1
    bucket = effective_cost_bucket(incident)
    c = consequence(bucket, ordinal)
    start, end = penalty_period(incident.incident_date)
    return {
        "cost_tier": bucket,
        "incident_number": incident_number_label(ordinal),
        "title": c.title,
        "cost_label": c.cost_label,
        "mandatory": c.mandatory,
        "optional": c.optional,
        "note": c.note,
        "penalty_period": {"start": start.isoformat(), "end": end.isoformat()},
    }
