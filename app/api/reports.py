from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Dict, List, Optional

from app.domain.report_schema import MatchTier, ReportStatus, ReportType, match_tier
from app.models.ai import ComparisonResult, MatchCandidate, SearchIntent
from app.models.reports import ItemReport, ReportDraft, ReporterRef, ReportUpdate
from app.scripts.logging_config import get_logger
from app.services import ai_operations, match_scan, report_store
from app.services.ai_client import AiClient, get_ai_client
from app.services.report_submission import SubmissionOutcome, prepare_submission

router = APIRouter(prefix="/reports", tags=["reports"])

logger = get_logger("reports_api")


class SubmitRequest(BaseModel):
    draft: ReportDraft
    reporter: ReporterRef


class ScoredMatch(MatchCandidate):
    tier: MatchTier


class CompareByIdRequest(BaseModel):
    a_id: str
    b_id: str


class ComparisonResponse(ComparisonResult):
    tier: MatchTier


class UserScanRequest(BaseModel):
    user_id: str


class SearchResponse(BaseModel):
    intent: SearchIntent
    report_type: ReportType
    results: List[ItemReport]


def _store_error(e: report_store.ReportStoreError) -> HTTPException:
    if isinstance(e, report_store.ReportNotFound):
        return HTTPException(status_code=404, detail="not_found")
    if isinstance(e, report_store.ReportPermissionError):
        return HTTPException(status_code=403, detail="forbidden")
    return HTTPException(status_code=422, detail=str(e))


def _require(report_id: str) -> ItemReport:
    report = report_store.get_report(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="not_found")
    return report


def _scored(matches: List[MatchCandidate]) -> List[ScoredMatch]:
    return [ScoredMatch(**m.model_dump(), tier=match_tier(m.confidence)) for m in matches]


@router.post("/submit", response_model=SubmissionOutcome)
def submit(req: SubmitRequest, client: AiClient = Depends(get_ai_client)):
    outcome = prepare_submission(client, req.draft, req.reporter)
    if not outcome.accepted or outcome.report is None:
        return outcome
    try:
        stored = report_store.create_report(outcome.report)
    except report_store.ReportStoreError as e:
        raise _store_error(e)
    return outcome.model_copy(update={"report": stored})


@router.get("", response_model=List[ItemReport])
def list_reports(type: Optional[ReportType] = None, status: Optional[ReportStatus] = None,
                 reporter_id: Optional[str] = None, limit: int = 200):
    return report_store.list_reports(report_type=type, status=status, reporter_id=reporter_id, limit=limit)


@router.get("/search", response_model=SearchResponse)
def search(q: str, default_type: ReportType = ReportType.LOST, client: AiClient = Depends(get_ai_client)):
    reports = report_store.list_reports(status=ReportStatus.OPEN)
    intent, tab, results = match_scan.smart_search(client, q, reports, default_type=default_type)
    return SearchResponse(intent=intent, report_type=tab, results=results)


@router.post("/scan", response_model=Dict[str, List[ScoredMatch]])
def scan_user(req: UserScanRequest, client: AiClient = Depends(get_ai_client)):
    reports = report_store.list_reports(status=ReportStatus.OPEN)
    found = match_scan.scan_user_reports(client, req.user_id, reports)
    return {rid: _scored(matches) for rid, matches in found.items()}


@router.post("/compare", response_model=ComparisonResponse)
def compare(req: CompareByIdRequest, client: AiClient = Depends(get_ai_client)):
    a, b = _require(req.a_id), _require(req.b_id)
    result = ai_operations.compare_reports(client, a, b)
    return ComparisonResponse(**result.model_dump(), tier=match_tier(result.confidence))


@router.get("/{report_id}", response_model=ItemReport)
def get_report(report_id: str):
    return _require(report_id)


@router.patch("/{report_id}", response_model=ItemReport)
def update_report(report_id: str, user_id: str, changes: ReportUpdate):
    try:
        return report_store.update_report(report_id, user_id, changes)
    except report_store.ReportStoreError as e:
        raise _store_error(e)


@router.delete("/{report_id}")
def delete_report(report_id: str, user_id: str):
    try:
        report_store.delete_report(report_id, user_id)
    except report_store.ReportStoreError as e:
        raise _store_error(e)
    return {"deleted": report_id}


@router.post("/{report_id}/resolve", response_model=ItemReport)
def resolve_report(report_id: str, user_id: str):
    try:
        return report_store.resolve_report(report_id, user_id)
    except report_store.ReportStoreError as e:
        raise _store_error(e)


@router.post("/{report_id}/matches", response_model=List[ScoredMatch])
def scan_matches(report_id: str, client: AiClient = Depends(get_ai_client)):
    source = _require(report_id)
    reports = report_store.list_reports(status=ReportStatus.OPEN)
    matches = match_scan.find_smart_matches(client, source, reports)
    logger.info("scan.done source=%s matches=%d", report_id, len(matches))
    return _scored(matches)
