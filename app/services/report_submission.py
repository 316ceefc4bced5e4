"""Report form submission: local checks, AI review, final report assembly.

Both AI checks fail open, so a report is only blocked when a model actually
flagged it.
"""
from __future__ import annotations
from typing import List, Optional
import time

from pydantic import BaseModel

from app.scripts.logging_config import get_logger
from app.domain.report_schema import ItemCategory, ReportStatus, ReportType
from app.models.ai import ContentAnalysis, ReportValidation
from app.models.reports import ItemReport, ReportDraft, ReporterRef
from .ai_client import AiClient
from . import ai_operations
from .match_scan import parse_report_datetime
from .report_store import new_report_id

logger = get_logger("report_submission")

REQUIRED_FIELDS = ["title", "description", "location", "date", "time"]


class SubmissionOutcome(BaseModel):
    accepted: bool
    reason: str = ""
    missing: List[str] = []
    report: Optional[ItemReport] = None
    validation: Optional[ReportValidation] = None
    analysis: Optional[ContentAnalysis] = None


def missing_fields(draft: ReportDraft) -> List[str]:
    return [f for f in REQUIRED_FIELDS if not str(getattr(draft, f) or "").strip()]


def to_display_date(date_str: str) -> str:
    """Store dates as DD/MM/YYYY; ISO input is converted, anything else kept."""
    dt = parse_report_datetime(date_str)
    if dt is None:
        return date_str
    return dt.strftime("%d/%m/%Y")


def prepare_submission(client: AiClient, draft: ReportDraft, reporter: ReporterRef,
                       existing: Optional[ItemReport] = None) -> SubmissionOutcome:
    missing = missing_fields(draft)
    if missing:
        return SubmissionOutcome(accepted=False, reason="Please fill in all required fields.", missing=missing)
    images = [u for u in draft.image_urls if u]
    if draft.type == ReportType.FOUND and not images:
        return SubmissionOutcome(accepted=False, reason="Found reports must include a photo.")

    validation = ai_operations.validate_report(client, draft)
    if not validation.is_valid:
        logger.info("submission.rejected reporter=%s reason=%s", reporter.id, validation.reason)
        return SubmissionOutcome(accepted=False, reason=validation.reason or "Report failed validation.",
                                 validation=validation)

    analysis = ai_operations.analyze_report_content(client, draft.description, images, draft.title)
    if analysis.is_violating:
        logger.info("submission.blocked reporter=%s type=%s", reporter.id, analysis.violation_type.value)
        return SubmissionOutcome(accepted=False, reason=analysis.violation_reason or "Safety check failed.",
                                 validation=validation, analysis=analysis)

    category = analysis.category if analysis.category != ItemCategory.OTHER else draft.category
    report = ItemReport(
        id=existing.id if existing else new_report_id(),
        type=draft.type,
        title=analysis.title or draft.title,
        description=analysis.description or draft.description,
        summary=analysis.summary or draft.description[:client.settings.SUMMARY_FALLBACK_CHARS],
        category=category,
        specs=draft.specs,
        distinguishing_features=analysis.distinguishing_features or draft.distinguishing_features,
        location=draft.location,
        date=to_display_date(draft.date),
        time=draft.time,
        image_urls=images,
        tags=analysis.tags or draft.tags,
        status=existing.status if existing else ReportStatus.OPEN,
        reporter_id=reporter.id,
        reporter_name=reporter.name,
        created_at=existing.created_at if existing else int(time.time() * 1000),
    )
    return SubmissionOutcome(accepted=True, report=report, validation=validation, analysis=analysis)
