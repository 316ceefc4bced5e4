from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Any

from app.domain.report_schema import MatchTier, match_tier
from app.models.ai import (
    CandidateScore, ComparisonResult, ContentAnalysis, ImageSafetyResult, MergedDescription,
    RedactionResult, ReportValidation, SearchIntent, VisualDetails,
)
from app.models.reports import ItemReport, ReportDraft
from app.services import ai_operations
from app.services.ai_client import AiClient, get_ai_client

router = APIRouter(prefix="/ai", tags=["ai"])


class ImageRequest(BaseModel):
    image: str  # data URL, http(s) URL or bare base64


class MergeRequest(BaseModel):
    notes: str = ""
    visual: Optional[Dict[str, Any]] = None


class AnalyzeRequest(BaseModel):
    description: str
    images: List[str] = Field(default_factory=list)
    title: str = ""


class SearchRequest(BaseModel):
    query: str


class MatchListRequest(BaseModel):
    query: str
    images: List[str] = Field(default_factory=list)
    candidates: List[ItemReport] = Field(default_factory=list)


class CompareRequest(BaseModel):
    a: ItemReport
    b: ItemReport


class ComparisonResponse(ComparisonResult):
    tier: MatchTier


class PruneResponse(BaseModel):
    removed: int


@router.post("/image/safety", response_model=ImageSafetyResult)
def image_safety(req: ImageRequest, client: AiClient = Depends(get_ai_client)):
    return ai_operations.check_image_safety(client, req.image)


@router.post("/image/redaction", response_model=RedactionResult)
def image_redaction(req: ImageRequest, client: AiClient = Depends(get_ai_client)):
    return ai_operations.detect_redaction_regions(client, req.image)


@router.post("/image/details", response_model=VisualDetails)
def image_details(req: ImageRequest, client: AiClient = Depends(get_ai_client)):
    return ai_operations.extract_visual_details(client, req.image)


@router.post("/description/merge", response_model=MergedDescription)
def merge_description(req: MergeRequest, client: AiClient = Depends(get_ai_client)):
    return ai_operations.merge_descriptions(client, req.notes, req.visual)


@router.post("/report/validate", response_model=ReportValidation)
def validate_report(draft: ReportDraft, client: AiClient = Depends(get_ai_client)):
    return ai_operations.validate_report(client, draft)


@router.post("/report/analyze", response_model=ContentAnalysis)
def analyze_report(req: AnalyzeRequest, client: AiClient = Depends(get_ai_client)):
    return ai_operations.analyze_report_content(client, req.description, req.images, req.title)


@router.post("/search/parse", response_model=SearchIntent)
def parse_search(req: SearchRequest, client: AiClient = Depends(get_ai_client)):
    return ai_operations.parse_search_query(client, req.query)


@router.post("/matches", response_model=List[CandidateScore])
def list_matches(req: MatchListRequest, client: AiClient = Depends(get_ai_client)):
    return ai_operations.find_potential_matches(client, req.query, req.images, req.candidates)


@router.post("/compare", response_model=ComparisonResponse)
def compare(req: CompareRequest, client: AiClient = Depends(get_ai_client)):
    result = ai_operations.compare_reports(client, req.a, req.b)
    return ComparisonResponse(**result.model_dump(), tier=match_tier(result.confidence))


@router.get("/models")
def models(client: AiClient = Depends(get_ai_client)):
    return client.pool.snapshot()


@router.post("/cache/prune", response_model=PruneResponse)
def prune_cache(force: bool = False, client: AiClient = Depends(get_ai_client)):
    return PruneResponse(removed=client.cache.prune(force_free_space=force))
