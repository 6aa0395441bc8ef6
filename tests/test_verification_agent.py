"""Tests for profile match scoring."""
from profile_scout.agents.verification_agent import (
    context_score,
    interests_score,
    name_score,
    score_profile_match,
)
from profile_scout.models.extraction import IdentitySummary
from profile_scout.models.schemas import ProfileInput


def _identity(**kwargs) -> IdentitySummary:
    values = {"name": "Alice Smith", "headline": "Software Engineer", "experience": ""}
    values.update(kwargs)
    return IdentitySummary(**values)


def test_exact_name_alone_scores_40_and_is_not_a_match():
    match = score_profile_match(_identity(), ProfileInput(name="Alice Smith"))
    assert match.score == 40
    assert match.is_match is False
    assert match.breakdown == {"name": 40.0, "context": 0.0, "interests": 0.0}


def test_exact_name_plus_context_substring_scores_70_and_matches():
    identity = _identity(headline="Staff Engineer at Acme Corp")
    match = score_profile_match(identity, ProfileInput(name="Alice Smith", context="Acme Corp"))
    assert match.score == 70
    assert match.is_match is True


def test_name_comparison_ignores_case_and_spacing():
    assert name_score("  alice   SMITH ", "Alice Smith") == 40


def test_partial_name_scores_three_quarters():
    assert name_score("Alice Smith-Jones", "Alice Smith") == 30
    assert name_score("Bob Jones", "Alice Smith") == 0


def test_context_keywords_score_proportionally():
    # "acme" matches, "robotics" does not
    assert context_score("Engineer at Acme", "Acme robotics") == 15


def test_missing_context_scores_zero():
    assert context_score("anything", None) == 0
    assert context_score("anything", "   ") == 0


def test_interests_overlap_is_proportional():
    narrative = "Works on machine learning and open source tooling"
    assert interests_score(narrative, ["machine learning", "open source", "sailing"]) == 20
    assert interests_score(narrative, []) == 0
    assert interests_score(narrative, None) == 0


def test_threshold_is_inclusive_at_60():
    identity = _identity(headline="Engineer", experience="machine learning, rust")
    target = ProfileInput(name="Alice Smith", interests=["machine learning", "cooking", "rust"])
    match = score_profile_match(identity, target)
    assert match.score == 60
    assert match.is_match is True
