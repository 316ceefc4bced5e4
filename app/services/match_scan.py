"""Match-candidate scan orchestration.

Narrow the report collection down to plausible counterparts of a source report,
ask the matcher, then map ids back to full reports.

Filter stages (each a pure per-candidate test except the soft category filter):
  1. open, opposite polarity, different id
  2. same category when the source has one and at least one candidate shares it
  3. date window: the FOUND side may not predate the LOST side by more than the buffer
  4. closest date first, capped
"""
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
import re

from app.scripts.logging_config import get_logger
from app.domain.report_schema import ItemCategory, ReportStatus, ReportType, opposite_type
from app.models.ai import MatchCandidate, SearchIntent
from app.models.reports import ItemReport
from .ai_client import AiClient
from . import ai_operations

logger = get_logger("match_scan")

_DMY_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})")


def parse_report_datetime(date_str: Optional[str], time_str: Optional[str] = None) -> Optional[datetime]:
    """Accept DD/MM/YYYY (stored form) or YYYY-MM-DD, optional HH:MM."""
    s = (date_str or "").strip()
    if not s:
        return None
    m = _DMY_RE.match(s)
    try:
        if m:
            day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        else:
            m = _ISO_RE.match(s)
            if not m:
                return None
            year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))
        dt = datetime(year, month, day)
    except ValueError:
        return None
    t = _TIME_RE.match((time_str or "").strip())
    if t and int(t.group(1)) < 24 and int(t.group(2)) < 60:
        dt = dt.replace(hour=int(t.group(1)), minute=int(t.group(2)))
    return dt


def _report_dt(report: ItemReport) -> Optional[datetime]:
    return parse_report_datetime(report.date, report.time)


def eligible_candidates(source: ItemReport, reports: List[ItemReport]) -> List[ItemReport]:
    target = opposite_type(source.type)
    return [
        r for r in reports
        if r.type == target and r.status == ReportStatus.OPEN and r.id != source.id
    ]


def filter_by_category(source: ItemReport, candidates: List[ItemReport]) -> List[ItemReport]:
    """Soft filter: never narrows to zero."""
    if source.category == ItemCategory.OTHER:
        return candidates
    same = [c for c in candidates if c.category == source.category]
    return same or candidates


def within_date_window(source: ItemReport, candidate: ItemReport, buffer_hours: int) -> bool:
    src_dt, cand_dt = _report_dt(source), _report_dt(candidate)
    if src_dt is None or cand_dt is None:
        return True
    lost_dt, found_dt = (src_dt, cand_dt) if source.type == ReportType.LOST else (cand_dt, src_dt)
    return found_dt >= lost_dt - timedelta(hours=buffer_hours)


def filter_by_date(source: ItemReport, candidates: List[ItemReport], buffer_hours: int) -> List[ItemReport]:
    return [c for c in candidates if within_date_window(source, c, buffer_hours)]


def sort_by_date_distance(source: ItemReport, candidates: List[ItemReport]) -> List[ItemReport]:
    src_dt = _report_dt(source)
    if src_dt is None:
        return list(candidates)

    def distance(c: ItemReport) -> Tuple[int, float]:
        dt = _report_dt(c)
        if dt is None:
            return (1, 0.0)  # undated last
        return (0, abs((dt - src_dt).total_seconds()))

    return sorted(candidates, key=distance)


def select_candidates(source: ItemReport, reports: List[ItemReport], buffer_hours: int,
                      max_candidates: int) -> List[ItemReport]:
    candidates = eligible_candidates(source, reports)
    candidates = filter_by_category(source, candidates)
    candidates = filter_by_date(source, candidates, buffer_hours)
    candidates = sort_by_date_distance(source, candidates)
    return candidates[:max_candidates]


def source_query(report: ItemReport) -> str:
    parts = [f"Title: {report.title}.", f"Desc: {report.description}."]
    if report.category != ItemCategory.OTHER:
        parts.append(f"Category: {report.category.value}.")
    if report.tags:
        parts.append(f"Tags: {', '.join(report.tags)}.")
    if report.location:
        parts.append(f"Loc: {report.location}.")
    return " ".join(parts)


def find_smart_matches(client: AiClient, source: ItemReport, reports: List[ItemReport],
                       max_candidates: Optional[int] = None) -> List[MatchCandidate]:
    cfg = client.settings
    cap = max_candidates if max_candidates is not None else cfg.MATCH_MAX_CANDIDATES
    candidates = select_candidates(source, reports, cfg.MATCH_DATE_BUFFER_HOURS, cap)
    logger.info("scan source=%s pool=%d candidates=%d", source.id, len(reports), len(candidates))
    if not candidates:
        return []
    scores = ai_operations.find_potential_matches(client, source_query(source), source.image_urls, candidates)
    by_id: Dict[str, ItemReport] = {c.id: c for c in candidates}
    results = [
        MatchCandidate(report=by_id[s.id], confidence=s.confidence, provenance=s.provenance)
        for s in scores if s.id in by_id
    ]
    results.sort(key=lambda m: m.confidence, reverse=True)
    return results


def scan_user_reports(client: AiClient, user_id: str, reports: List[ItemReport],
                      max_candidates: Optional[int] = None) -> Dict[str, List[MatchCandidate]]:
    """Dashboard scan: every open report of the user against other users' reports, one at a time."""
    cap = max_candidates if max_candidates is not None else client.settings.QUICK_SCAN_MAX_CANDIDATES
    mine = [r for r in reports if r.reporter_id == user_id and r.status == ReportStatus.OPEN]
    others = [r for r in reports if r.reporter_id != user_id]
    out: Dict[str, List[MatchCandidate]] = {}
    for report in mine:
        matches = find_smart_matches(client, report, others, max_candidates=cap)
        if matches:
            out[report.id] = matches
    logger.info("user scan user=%s reports=%d with_matches=%d", user_id, len(mine), len(out))
    return out


def search_reports(reports: List[ItemReport], report_type: ReportType,
                   status: ReportStatus = ReportStatus.OPEN, query: str = "") -> List[ItemReport]:
    result = [r for r in reports if r.type == report_type and r.status == status]
    q = (query or "").strip().lower()
    if q:
        result = [r for r in result if q in r.title.lower() or q in r.location.lower()]
    return sorted(result, key=lambda r: r.created_at, reverse=True)


def smart_search(client: AiClient, query: str, reports: List[ItemReport],
                 default_type: ReportType = ReportType.LOST,
                 status: ReportStatus = ReportStatus.OPEN) -> Tuple[SearchIntent, ReportType, List[ItemReport]]:
    """Someone who lost an item wants FOUND listings, and vice versa."""
    intent = ai_operations.parse_search_query(client, query)
    tab = opposite_type(intent.user_status) if intent.user_status else default_type
    return intent, tab, search_reports(reports, tab, status, intent.refined_query)
