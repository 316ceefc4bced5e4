"""Typed results for the AI-backed operations.

Each model doubles as the validation schema for the model's JSON reply: missing
keys fall back to field defaults, wrong types raise ``ValidationError`` which the
operations treat as malformed output.
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from app.domain.report_schema import (
    ItemCategory, Provenance, ReportType, ViolationType, normalize_category, normalize_violation,
)
from app.models.reports import ItemReport

REDACTION_SCALE = 1000.0


def _clamp_confidence(v) -> int:
    try:
        n = int(round(float(v)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, n))


def _str_list(v) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [v] if v.strip() else []
    return [str(x) for x in v if x is not None and str(x).strip()]


class ImageSafetyResult(BaseModel):
    violation_type: ViolationType = ViolationType.NONE
    is_staged: bool = False
    reason: str = ""
    used_fallback: bool = False

    @field_validator("violation_type", mode="before")
    @classmethod
    def _violation(cls, v):
        return normalize_violation(v)


class RedactionBox(BaseModel):
    """[ymin, xmin, ymax, xmax] on a 0-1000 scale."""
    box: List[float]
    label: str = ""

    @field_validator("box", mode="before")
    @classmethod
    def _box(cls, v):
        if not isinstance(v, (list, tuple)) or len(v) != 4:
            raise ValueError("box must have 4 coordinates")
        return [max(0.0, min(REDACTION_SCALE, float(x))) for x in v]


class RedactionResult(BaseModel):
    boxes: List[RedactionBox] = Field(default_factory=list)
    used_fallback: bool = False


class VisualDetails(BaseModel):
    title: str = ""
    category: ItemCategory = ItemCategory.OTHER
    tags: List[str] = Field(default_factory=list)
    color: str = ""
    brand: str = ""
    condition: str = ""
    distinguishing_features: List[str] = Field(default_factory=list)
    used_fallback: bool = False

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        return normalize_category(v)

    @field_validator("tags", "distinguishing_features", mode="before")
    @classmethod
    def _lists(cls, v):
        return _str_list(v)

    @field_validator("title", "color", "brand", "condition", mode="before")
    @classmethod
    def _strings(cls, v):
        return "" if v is None else str(v)


class MergedDescription(BaseModel):
    description: str
    used_fallback: bool = False


class ReportValidation(BaseModel):
    is_valid: bool = True
    reason: str = ""
    used_fallback: bool = False

    @field_validator("reason", mode="before")
    @classmethod
    def _reason(cls, v):
        return "" if v is None else str(v)


class ContentAnalysis(BaseModel):
    is_violating: bool = False
    violation_type: ViolationType = ViolationType.NONE
    violation_reason: str = ""
    category: ItemCategory = ItemCategory.OTHER
    title: str = ""
    description: str = ""
    summary: str = ""
    tags: List[str] = Field(default_factory=list)
    distinguishing_features: List[str] = Field(default_factory=list)
    used_fallback: bool = False

    @field_validator("violation_type", mode="before")
    @classmethod
    def _violation(cls, v):
        return normalize_violation(v)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        return normalize_category(v)

    @field_validator("tags", "distinguishing_features", mode="before")
    @classmethod
    def _lists(cls, v):
        return _str_list(v)


class SearchIntent(BaseModel):
    user_status: Optional[ReportType] = None  # None -> unknown
    refined_query: str = ""
    used_fallback: bool = False

    @field_validator("user_status", mode="before")
    @classmethod
    def _status(cls, v):
        raw = (v or "").strip().upper() if isinstance(v, str) else v
        return raw if raw in ("LOST", "FOUND") else None


class CandidateScore(BaseModel):
    id: str
    confidence: int = 0
    provenance: Provenance = Provenance.REMOTE_MODEL

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return _clamp_confidence(v)


class CandidateScoreList(BaseModel):
    matches: List[CandidateScore] = Field(default_factory=list)


class MatchCandidate(BaseModel):
    report: ItemReport
    confidence: int
    provenance: Provenance


class ComparisonResult(BaseModel):
    confidence: int = 0
    explanation: str = ""
    similarities: List[str] = Field(default_factory=list)
    differences: List[str] = Field(default_factory=list)
    used_fallback: bool = False

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return _clamp_confidence(v)

    @field_validator("similarities", "differences", mode="before")
    @classmethod
    def _lists(cls, v):
        return _str_list(v)
