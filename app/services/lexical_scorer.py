"""Token-overlap heuristics used when the remote model is unavailable.

Two modes:
  - match mode (score_overlap): query text vs. many candidates, keeps candidates with
    enough shared tokens.
  - pairwise mode (compare_reports): weighted Jaccard comparison of two reports.

Confidence never exceeds LEXICAL_MAX_CONFIDENCE; only the remote model may claim
certainty.
"""
from __future__ import annotations
from typing import Any, Iterable, List, Set
import re

from config import settings
from app.models.ai import CandidateScore, ComparisonResult
from app.domain.report_schema import Provenance

_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)

FALLBACK_EXPLANATION = "AI comparison unavailable; estimate based on text overlap only."


def _field(obj: Any, name: str, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _category_label(value) -> str:
    return str(getattr(value, "value", value) or "")


def tokenize(text: str) -> Set[str]:
    cleaned = _PUNCT_RE.sub(" ", (text or "").lower())
    return {t for t in cleaned.split() if len(t) >= settings.LEXICAL_MIN_TOKEN_LEN}


def candidate_text(candidate: Any) -> str:
    tags = _field(candidate, "tags") or []
    parts = [
        _field(candidate, "title") or "",
        _field(candidate, "description") or "",
        _category_label(_field(candidate, "category")),
        " ".join(str(t) for t in tags),
    ]
    return " ".join(p for p in parts if p)


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    sa, sb = set(a), set(b)
    union = sa | sb
    if not union:
        return 0.0
    return len(sa & sb) / len(union)


def text_similarity(a: str, b: str) -> float:
    return jaccard(tokenize(a), tokenize(b))


def score_overlap(query: str, candidates: List[Any]) -> List[CandidateScore]:
    """Match mode: keep candidates sharing enough tokens with the query."""
    q_tokens = tokenize(query)
    if not q_tokens:
        return []
    short_query = len(q_tokens) < settings.LEXICAL_SHORT_QUERY_TOKENS
    cap = settings.LEXICAL_MAX_CONFIDENCE
    out: List[CandidateScore] = []
    for c in candidates:
        overlap = len(q_tokens & tokenize(candidate_text(c)))
        if overlap >= settings.LEXICAL_MIN_OVERLAP or (short_query and overlap >= 1):
            confidence = min(cap, round(cap * overlap / len(q_tokens)))
            out.append(CandidateScore(
                id=str(_field(c, "id")),
                confidence=confidence,
                provenance=Provenance.LOCAL_FALLBACK,
            ))
    out.sort(key=lambda s: s.confidence, reverse=True)
    return out


def compare_reports(a: Any, b: Any) -> ComparisonResult:
    """Pairwise mode. Weights: category 25, title up to 35, description up to 40."""
    score = 0
    similarities: List[str] = []
    differences: List[str] = []

    cat_a = _category_label(_field(a, "category"))
    cat_b = _category_label(_field(b, "category"))
    if cat_a and cat_a == cat_b:
        score += 25
        similarities.append(f"Same category: {cat_a}")
    else:
        differences.append(f"Different categories: {cat_a or 'unknown'} vs {cat_b or 'unknown'}")

    title_sim = text_similarity(_field(a, "title") or "", _field(b, "title") or "")
    if title_sim > 0.8:
        score += 35
        similarities.append("Titles are nearly identical")
    elif title_sim > 0.4:
        score += 20
        similarities.append("Titles share key words")
    else:
        differences.append("Titles have little in common")

    desc_sim = text_similarity(_field(a, "description") or "", _field(b, "description") or "")
    if desc_sim > 0.8:
        score += 40
        similarities.append("Descriptions closely match")
    elif desc_sim > 0.3:
        score += 15 + round(desc_sim * 25)
        similarities.append("Descriptions overlap partially")
    else:
        differences.append("Descriptions differ")

    loc_a = (_field(a, "location") or "").strip().lower()
    loc_b = (_field(b, "location") or "").strip().lower()
    if loc_a and loc_a == loc_b:
        similarities.append(f"Same location: {_field(a, 'location')}")

    return ComparisonResult(
        confidence=max(0, min(settings.LEXICAL_MAX_CONFIDENCE, score)),
        explanation=FALLBACK_EXPLANATION,
        similarities=similarities,
        differences=differences,
        used_fallback=True,
    )
