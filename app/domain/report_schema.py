"""Closed vocabularies shared by reports and AI results."""
from __future__ import annotations
from enum import Enum
from typing import Optional


class ItemCategory(str, Enum):
    ELECTRONICS = "Electronics"
    STATIONERY = "Stationery"
    CLOTHING = "Clothing"
    ACCESSORIES = "Accessories"
    ID_CARDS = "ID Cards"
    BOOKS = "Books"
    OTHER = "Other"


class ReportType(str, Enum):
    LOST = "LOST"
    FOUND = "FOUND"


class ReportStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class ViolationType(str, Enum):
    NONE = "NONE"
    GORE = "GORE"
    NUDITY = "NUDITY"
    ANIMAL = "ANIMAL"
    HUMAN = "HUMAN"
    IRRELEVANT = "IRRELEVANT"
    INCONSISTENT = "INCONSISTENT"


class Provenance(str, Enum):
    REMOTE_MODEL = "remote_model"
    LOCAL_FALLBACK = "local_fallback"


class MatchTier(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


CATEGORY_NAMES = [c.value for c in ItemCategory]

# Loose aliases the model tends to emit instead of the canonical label
CATEGORY_SYNONYMS = {
    "electronic": ItemCategory.ELECTRONICS,
    "gadget": ItemCategory.ELECTRONICS,
    "phone": ItemCategory.ELECTRONICS,
    "laptop": ItemCategory.ELECTRONICS,
    "clothes": ItemCategory.CLOTHING,
    "apparel": ItemCategory.CLOTHING,
    "accessory": ItemCategory.ACCESSORIES,
    "jewelry": ItemCategory.ACCESSORIES,
    "wallet": ItemCategory.ACCESSORIES,
    "id card": ItemCategory.ID_CARDS,
    "id": ItemCategory.ID_CARDS,
    "documents": ItemCategory.ID_CARDS,
    "book": ItemCategory.BOOKS,
    "stationary": ItemCategory.STATIONERY,
}

HIGH_TIER_MIN_CONFIDENCE = 80
MEDIUM_TIER_MIN_CONFIDENCE = 50


def normalize_category(value: Optional[str]) -> ItemCategory:
    """Map a free-form category label onto the closed enum (unknown -> Other)."""
    if isinstance(value, ItemCategory):
        return value
    raw = (value or "").strip().lower()
    if not raw:
        return ItemCategory.OTHER
    for cat in ItemCategory:
        if cat.value.lower() == raw or cat.name.lower() == raw:
            return cat
    if raw in CATEGORY_SYNONYMS:
        return CATEGORY_SYNONYMS[raw]
    if raw.endswith("s") and raw[:-1] in CATEGORY_SYNONYMS:
        return CATEGORY_SYNONYMS[raw[:-1]]
    return ItemCategory.OTHER


def normalize_violation(value: Optional[str]) -> ViolationType:
    raw = (value or "").strip().upper()
    try:
        return ViolationType(raw)
    except ValueError:
        return ViolationType.NONE


def opposite_type(report_type: ReportType) -> ReportType:
    return ReportType.FOUND if report_type == ReportType.LOST else ReportType.LOST


def match_tier(confidence: int) -> MatchTier:
    if confidence >= HIGH_TIER_MIN_CONFIDENCE:
        return MatchTier.HIGH
    if confidence >= MEDIUM_TIER_MIN_CONFIDENCE:
        return MatchTier.MEDIUM
    return MatchTier.LOW
