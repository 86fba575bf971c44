"""Typed view over the provider's pitch-deck scoring payload.

The provider returns a loosely structured document, typically::

    {"output": {"total_score": 82, "tags": [...],
                "venture": {...}, "team": [{"name": ..., "role": ...}],
                "problem": {"score": 8}, "solution": {"score": 7}, ...}}

``parse_scoring_response`` turns it into a :class:`ScoringResult` with explicit
optional fields, and ``validate_scoring_result`` decides whether the analysis
plausibly covers the venture and team the founder submitted.  The check is
structural (does a venture / team subtree exist at all), never fuzzy name
matching.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger(__name__)

VENTURE_KEYS = ("venture", "venture_name", "business", "company")
TEAM_KEYS = ("team", "founders", "founding_team")

# Provider sub-score sections grouped into the five ProofScore dimensions.
DIMENSION_SECTIONS: dict[str, tuple[str, str]] = {
    "desirability": ("problem", "market_opportunity"),
    "feasibility": ("solution", "product_technology"),
    "viability": ("business_model", "financials_projections_ask"),
    "traction": ("traction", "go_to_market_strategy"),
    "readiness": ("readiness", "team"),
}

MISSING_BOTH_MESSAGE = (
    "We couldn't find venture and team details in your document. "
    "Please upload a file with venture and team details."
)
MISSING_VENTURE_MESSAGE = (
    "We couldn't find venture details in your document. "
    "Please upload a pitch deck that describes your venture: its name, the problem and your solution."
)
MISSING_TEAM_MESSAGE = (
    "We couldn't find team details in your document. "
    "Please upload a pitch deck that includes a slide on your founding team."
)


@dataclass
class TeamPerson:
    name: str
    role: str = ""
    experience: str = ""
    background: str = ""


@dataclass
class ScoringResult:
    total_score: int | None
    tags: list[str]
    venture: dict[str, Any] | None
    team: list[TeamPerson] | None
    sections: dict[str, Any]
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def has_venture(self) -> bool:
        return self.venture is not None

    @property
    def has_team(self) -> bool:
        return self.team is not None


@dataclass
class ValidationOutcome:
    is_valid: bool
    kind: str | None = None  # missing_venture_and_team | missing_venture | missing_team
    missing_data: list[str] = field(default_factory=list)
    message: str = ""


def _section_score(section: Any) -> float:
    if isinstance(section, dict):
        val = section.get("score")
    else:
        val = None
    try:
        return float(val or 0)
    except (TypeError, ValueError):
        return 0.0


def _coerce_score(val: Any) -> int | None:
    if val is None or isinstance(val, bool):
        return None
    try:
        return int(round(float(val)))
    except (TypeError, ValueError):
        return None


def _parse_person(item: Any) -> TeamPerson | None:
    if isinstance(item, str):
        return TeamPerson(name=item.strip()) if item.strip() else None
    if not isinstance(item, dict):
        return None
    name = str(item.get("name") or item.get("full_name") or "").strip()
    if not name:
        return None
    return TeamPerson(
        name=name,
        role=str(item.get("role") or item.get("title") or ""),
        experience=str(item.get("experience") or ""),
        background=str(item.get("background") or ""),
    )


def _parse_team(value: Any) -> list[TeamPerson] | None:
    """Team subtree may be a list of people or a dict holding ``members``."""
    if value is None:
        return None
    if isinstance(value, list):
        items = value
    elif isinstance(value, dict):
        items = value.get("members") or value.get("team") or []
        if not isinstance(items, list):
            items = []
    else:
        return None
    return [p for p in (_parse_person(i) for i in items) if p is not None]


def parse_scoring_response(raw: dict[str, Any] | None) -> ScoringResult:
    raw = raw or {}
    output = raw.get("output") if isinstance(raw.get("output"), dict) else raw

    venture: dict[str, Any] | None = None
    for key in VENTURE_KEYS:
        val = output.get(key)
        if val is None or val == "" or val == {}:
            continue
        venture = val if isinstance(val, dict) else {"name": val}
        break

    team: list[TeamPerson] | None = None
    for key in TEAM_KEYS:
        if output.get(key) is None:
            continue
        team = _parse_team(output.get(key))
        if team is not None:
            break

    tags = output.get("tags") or []
    if not isinstance(tags, list):
        tags = []

    total = output.get("total_score")
    if total is None:
        total = raw.get("total_score", raw.get("score"))

    return ScoringResult(
        total_score=_coerce_score(total),
        tags=[str(t) for t in tags],
        venture=venture,
        team=team,
        sections={k: v for k, v in output.items() if isinstance(v, dict)},
        raw=raw,
    )


def validate_scoring_result(
    result: ScoringResult,
    expected_founder_name: str | None,
    expected_venture_name: str | None,
) -> ValidationOutcome:
    """Check that the analysis contains the subtrees we expect for this session."""
    missing: list[str] = []
    if (expected_venture_name or "").strip() and not result.has_venture:
        missing.append("venture")
    if (expected_founder_name or "").strip() and not result.has_team:
        missing.append("team")

    if not missing:
        return ValidationOutcome(is_valid=True)
    if missing == ["venture", "team"]:
        outcome = ValidationOutcome(False, "missing_venture_and_team", missing, MISSING_BOTH_MESSAGE)
    elif missing == ["venture"]:
        outcome = ValidationOutcome(False, "missing_venture", missing, MISSING_VENTURE_MESSAGE)
    else:
        outcome = ValidationOutcome(False, "missing_team", missing, MISSING_TEAM_MESSAGE)
    log.info(
        "Scoring response rejected (%s) for venture=%r founder=%r",
        outcome.kind, expected_venture_name, expected_founder_name,
    )
    return outcome


def dimension_scores(result: ScoringResult) -> dict[str, float]:
    return {
        dim: _section_score(result.sections.get(a)) + _section_score(result.sections.get(b))
        for dim, (a, b) in DIMENSION_SECTIONS.items()
    }


def extract_team_members(result: ScoringResult) -> list[TeamPerson]:
    """People named in the analysis, first occurrence wins (case-insensitive)."""
    seen: set[str] = set()
    people: list[TeamPerson] = []
    for person in result.team or []:
        key = person.name.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        people.append(person)
    return people


def is_technical_role(role: str) -> bool:
    r = role.lower()
    return "cto" in r or "tech" in r


def is_cofounder_role(role: str) -> bool:
    r = role.lower()
    return "founder" in r or "ceo" in r
