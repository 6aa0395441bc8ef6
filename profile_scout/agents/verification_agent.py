from __future__ import annotations

import re

from profile_scout.models.extraction import IdentitySummary
from profile_scout.models.research import ProfileMatch
from profile_scout.models.schemas import ProfileInput

NAME_WEIGHT = 40.0
CONTEXT_WEIGHT = 30.0
INTERESTS_WEIGHT = 30.0
MATCH_THRESHOLD = 60.0
# A name that only contains (or is contained in) the target earns this share of NAME_WEIGHT.
PARTIAL_NAME_SHARE = 0.75

_STOPWORDS = {
    "and", "the", "for", "with", "from", "into", "over", "our", "his", "her",
    "their", "who", "works", "working",
}


def _normalize(text: str) -> str:
    return " ".join(text.lower().split())


def _keywords(text: str) -> list[str]:
    return [
        token
        for token in re.findall(r"[a-z0-9+#.]+", text.lower())
        if len(token) > 2 and token not in _STOPWORDS
    ]


def name_score(candidate: str, target: str) -> float:
    candidate_n, target_n = _normalize(candidate), _normalize(target)
    if not candidate_n or not target_n:
        return 0.0
    if candidate_n == target_n:
        return NAME_WEIGHT
    if target_n in candidate_n or candidate_n in target_n:
        return NAME_WEIGHT * PARTIAL_NAME_SHARE
    return 0.0


def context_score(narrative: str, context: str | None) -> float:
    if not context or not context.strip():
        return 0.0
    haystack = _normalize(narrative)
    if _normalize(context) in haystack:
        return CONTEXT_WEIGHT
    keywords = _keywords(context)
    if not keywords:
        return 0.0
    hits = sum(1 for keyword in keywords if keyword in haystack)
    return CONTEXT_WEIGHT * hits / len(keywords)


def interests_score(narrative: str, interests: list[str] | None) -> float:
    if not interests:
        return 0.0
    haystack = _normalize(narrative)
    matched = [interest for interest in interests if _normalize(interest) in haystack]
    return INTERESTS_WEIGHT * len(matched) / len(interests)


def score_profile_match(identity: IdentitySummary, target: ProfileInput) -> ProfileMatch:
    """Weighted identity check for a recognized profile page.

    Name up to 40, context up to 30 and declared interests up to 30; a page
    counts as the target person at 60 or more.
    """
    narrative = identity.narrative
    breakdown = {
        "name": round(name_score(identity.name, target.name), 2),
        "context": round(context_score(narrative, target.context), 2),
        "interests": round(interests_score(narrative, target.interests), 2),
    }
    score = round(sum(breakdown.values()), 2)
    return ProfileMatch(score=score, is_match=score >= MATCH_THRESHOLD, breakdown=breakdown)
