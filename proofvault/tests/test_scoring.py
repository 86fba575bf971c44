"""Tests for parsing and validating pitch deck analysis payloads."""
from __future__ import annotations

from proofvault.scoring import (
    MISSING_BOTH_MESSAGE,
    MISSING_TEAM_MESSAGE,
    MISSING_VENTURE_MESSAGE,
    dimension_scores,
    extract_team_members,
    is_cofounder_role,
    is_technical_role,
    parse_scoring_response,
    validate_scoring_result,
)


def _payload(**output):
    return {"output": {"total_score": 72, "tags": ["Problem Hunter"], **output}}


# ---------------------------------------------------------------------------
# parse_scoring_response
# ---------------------------------------------------------------------------


class TestParseScoringResponse:
    def test_reads_output_subtree(self):
        result = parse_scoring_response(_payload(venture={"name": "Lovelace Labs"}))
        assert result.total_score == 72
        assert result.tags == ["Problem Hunter"]
        assert result.venture == {"name": "Lovelace Labs"}
        assert result.has_venture
        assert not result.has_team

    def test_flat_payload_without_output(self):
        result = parse_scoring_response({"total_score": 55, "company": "Acme"})
        assert result.total_score == 55
        assert result.venture == {"name": "Acme"}

    def test_alternate_venture_keys(self):
        for key in ("venture_name", "business", "company"):
            result = parse_scoring_response(_payload(**{key: "Acme"}))
            assert result.has_venture, key

    def test_empty_venture_value_is_missing(self):
        result = parse_scoring_response(_payload(venture="", business={}))
        assert not result.has_venture

    def test_team_as_list(self):
        result = parse_scoring_response(_payload(team=[
            {"name": "Ada Lovelace", "role": "CEO"},
            {"name": "Charles Babbage", "role": "CTO", "background": "Engines"},
        ]))
        assert [p.name for p in result.team] == ["Ada Lovelace", "Charles Babbage"]
        assert result.team[1].background == "Engines"

    def test_team_as_dict_with_members(self):
        result = parse_scoring_response(_payload(founding_team={"members": [{"name": "Grace"}]}))
        assert result.has_team
        assert result.team[0].name == "Grace"

    def test_team_entries_without_name_dropped(self):
        result = parse_scoring_response(_payload(founders=[{"role": "CEO"}, "Alan Turing", 42]))
        assert [p.name for p in result.team] == ["Alan Turing"]

    def test_score_coercion(self):
        assert parse_scoring_response({"output": {"total_score": "81.6"}}).total_score == 82
        assert parse_scoring_response({"output": {"total_score": "n/a"}}).total_score is None
        assert parse_scoring_response(None).total_score is None

    def test_non_list_tags_ignored(self):
        assert parse_scoring_response({"output": {"tags": "oops"}}).tags == []


# ---------------------------------------------------------------------------
# validate_scoring_result
# ---------------------------------------------------------------------------


class TestValidateScoringResult:
    def test_valid_when_both_present(self):
        result = parse_scoring_response(_payload(venture="Acme", team=[{"name": "Ada"}]))
        outcome = validate_scoring_result(result, "Ada Lovelace", "Acme")
        assert outcome.is_valid
        assert outcome.missing_data == []

    def test_missing_both(self):
        result = parse_scoring_response(_payload())
        outcome = validate_scoring_result(result, "Ada Lovelace", "Acme")
        assert not outcome.is_valid
        assert outcome.kind == "missing_venture_and_team"
        assert outcome.missing_data == ["venture", "team"]
        assert outcome.message == MISSING_BOTH_MESSAGE

    def test_missing_venture_only(self):
        result = parse_scoring_response(_payload(team=[{"name": "Ada"}]))
        outcome = validate_scoring_result(result, "Ada Lovelace", "Acme")
        assert outcome.kind == "missing_venture"
        assert outcome.message == MISSING_VENTURE_MESSAGE

    def test_missing_team_only(self):
        result = parse_scoring_response(_payload(venture="Acme"))
        outcome = validate_scoring_result(result, "Ada Lovelace", "Acme")
        assert outcome.kind == "missing_team"
        assert outcome.message == MISSING_TEAM_MESSAGE

    def test_empty_team_list_counts_as_present(self):
        result = parse_scoring_response(_payload(venture="Acme", team=[]))
        assert validate_scoring_result(result, "Ada", "Acme").is_valid

    def test_checks_skipped_without_expected_names(self):
        result = parse_scoring_response(_payload())
        assert validate_scoring_result(result, None, "").is_valid
        outcome = validate_scoring_result(result, None, "Acme")
        assert outcome.kind == "missing_venture"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestDimensionScores:
    def test_sums_section_pairs(self):
        result = parse_scoring_response({"output": {
            "problem": {"score": 8}, "market_opportunity": {"score": 7},
            "solution": {"score": 6}, "product_technology": {"score": "5"},
            "business_model": {"score": 4}, "traction": {"score": 3},
            "team": {"score": 9}, "readiness": {"score": None},
        }})
        dims = dimension_scores(result)
        assert dims == {
            "desirability": 15.0,
            "feasibility": 11.0,
            "viability": 4.0,
            "traction": 3.0,
            "readiness": 9.0,
        }

    def test_missing_sections_are_zero(self):
        dims = dimension_scores(parse_scoring_response({"output": {}}))
        assert set(dims) == {"desirability", "feasibility", "viability", "traction", "readiness"}
        assert all(v == 0.0 for v in dims.values())


class TestRoleHelpers:
    def test_technical_roles(self):
        assert is_technical_role("CTO")
        assert is_technical_role("Head of Technology")
        assert not is_technical_role("CMO")

    def test_cofounder_roles(self):
        assert is_cofounder_role("Co-Founder")
        assert is_cofounder_role("CEO")
        assert not is_cofounder_role("Designer")


class TestExtractTeamMembers:
    def test_dedups_case_insensitively(self):
        result = parse_scoring_response(_payload(team=[
            {"name": "Ada Lovelace", "role": "CEO"},
            {"name": "ada lovelace ", "role": "Advisor"},
            "Charles Babbage",
        ]))
        people = extract_team_members(result)
        assert [p.name for p in people] == ["Ada Lovelace", "Charles Babbage"]
        assert people[0].role == "CEO"

    def test_missing_team(self):
        assert extract_team_members(parse_scoring_response(_payload())) == []
