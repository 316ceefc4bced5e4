"""AI-backed use cases for the lost & found flows.

Every operation follows one template:
  cache lookup -> prompt -> gauntlet -> JSON extraction -> schema validation
  -> (any failure) documented degraded default with used_fallback=True.

No exception from the AI layer escapes these functions. Only results that came
from a model are cached; fallbacks are recomputed on the next call.
"""
from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar
import json

from pydantic import BaseModel, ValidationError

from app.scripts.logging_config import get_logger, log_operation_fallback
from app.domain.report_schema import CATEGORY_NAMES, Provenance
from app.models.ai import (
    CandidateScore, CandidateScoreList, ComparisonResult, ContentAnalysis, ImageSafetyResult,
    MergedDescription, RedactionBox, RedactionResult, ReportValidation, SearchIntent, VisualDetails,
)
from app.models.reports import ItemReport, ReportDraft
from . import lexical_scorer
from .ai_cache import make_key, make_symmetric_key
from .ai_client import AiClient
from .ai_errors import MalformedModelOutput, MissingCredential
from .llm_providers import GenerationRequest

logger = get_logger("ai_gateway")

T = TypeVar("T", bound=BaseModel)

MERGED_DESCRIPTION_MAX_CHARS = 300

SAFETY_PROMPT = """SYSTEM: Security scan for a lost & found listing photo.
Check the image for:
1. GORE or violence
2. NUDITY
3. Selfies or people as the main subject (HUMAN), animals as the main subject (ANIMAL)
4. Staged or prank photos (memes, screenshots, obviously fake setups)

Return strictly JSON:
{"violation_type": "NONE" | "GORE" | "NUDITY" | "ANIMAL" | "HUMAN", "is_staged": boolean, "reason": "string"}"""

REDACTION_PROMPT = """Find every region in this image that must be blurred before publishing:
human faces, ID cards, credit cards, documents with personal data, licence plates.
Coordinates are [ymin, xmin, ymax, xmax] normalized to 0-1000.

Return strictly JSON: {"boxes": [{"box": [ymin, xmin, ymax, xmax], "label": "face" | "id_card" | "document" | "other"}]}
Return {"boxes": []} if nothing needs redaction."""

VISUAL_PROMPT = """Analyze this image for a Lost & Found report. Extract factual visual details only.

Return strictly JSON:
{{
  "title": "Concise item name (e.g. Silver Dell XPS 13)",
  "category": "One of: {categories}",
  "tags": ["tag1", "tag2", "tag3"],
  "color": "Primary color",
  "brand": "Brand name or Unknown",
  "condition": "Visual condition (e.g. Scratched, New, Worn)",
  "distinguishing_features": ["feature1", "feature2"]
}}"""

MERGE_PROMPT = """Task: write the description for a lost & found post.

Visual facts detected from the photo (JSON): {visual}
User notes: {notes}

Instructions:
- Combine the visual details (brand, color, marks, damage) with the user's story (where, when).
- Natural, helpful language. Under {max_chars} characters.
- Do not mention that an AI detected anything. Reply with the description text only."""

VALIDATION_PROMPT = """You review lost & found reports before they are published.
Report (JSON): {report}

A report is invalid only if it is spam, offensive, clearly not about a physical item,
or its title, description and category contradict each other.

Return strictly JSON: {{"is_valid": boolean, "reason": "short reason, empty when valid"}}"""

ANALYSIS_PROMPT = """Task: enhance the description and validate the content of a lost & found report.
Title: {title}
Raw input: {description}

Instructions:
1. Correct grammar and clarity.
2. Pick the item category, one of: {categories}.
3. Identify policy violations (drugs, weapons, spam, gore, images unrelated to the text).

Return strictly JSON:
{{
  "is_violating": boolean,
  "violation_type": "GORE" | "ANIMAL" | "HUMAN" | "IRRELEVANT" | "INCONSISTENT" | "NONE",
  "violation_reason": "string",
  "category": "string",
  "title": "refined title",
  "description": "enhanced description",
  "summary": "one line summary",
  "tags": ["tag1", "tag2"],
  "distinguishing_features": ["feature1", "feature2"]
}}"""

SEARCH_PROMPT = """Determine the intent of a lost & found search and extract keywords.
LOST means the user lost something, FOUND means the user found something, NONE if unclear.
Search: {query}

Return strictly JSON: {{"user_status": "LOST" | "FOUND" | "NONE", "refined_query": "keywords"}}"""

MATCH_PROMPT = """Task: find the candidates that could be the same physical item as the source.
Source: {source}
Candidates (JSON): {candidates}

Only use candidate ids from the list. Confidence is 0-100.
Return strictly JSON: {{"matches": [{{"id": "candidate_id", "confidence": 0}}]}}"""

COMPARE_PROMPT = """Compare Item A and Item B from a lost & found service. Are they the same object?
Item A (JSON): {a}
Item B (JSON): {b}
{image_note}
Return strictly JSON:
{{"confidence": 0-100, "explanation": "string", "similarities": ["s1"], "differences": ["d1"]}}"""


def _fail(operation: str, exc: Exception) -> None:
    if isinstance(exc, MissingCredential):
        logger.warning("AI %s skipped: API key missing", operation)
    log_operation_fallback(operation, f"{type(exc).__name__}: {str(exc)[:200]}", logger=logger)


# Keys a reply must carry to count as an answer; defaults fill in the rest
REQUIRED_KEYS: Dict[type, tuple] = {
    ImageSafetyResult: ("violation_type",),
    VisualDetails: ("title",),
    ReportValidation: ("is_valid",),
    ContentAnalysis: ("is_violating",),
    SearchIntent: ("user_status",),
    ComparisonResult: ("confidence",),
}


def _validate(model: Type[T], data: Any) -> T:
    if not isinstance(data, dict):
        raise MalformedModelOutput(f"expected JSON object for {model.__name__}, got {type(data).__name__}")
    cleaned = {k: v for k, v in data.items() if v is not None and k != "used_fallback"}
    missing = [k for k in REQUIRED_KEYS.get(model, ()) if k not in cleaned]
    if missing:
        raise MalformedModelOutput(f"{model.__name__}: missing {', '.join(missing)}")
    try:
        return model.model_validate(cleaned)
    except ValidationError as e:
        raise MalformedModelOutput(f"{model.__name__}: {e.error_count()} invalid fields") from e


def _run(client: AiClient, operation: str, cache_key: str, model: Type[T],
         request: GenerationRequest, shape: Callable[[Any], T], fallback: Callable[[], T]) -> T:
    cached = client.cache.get(cache_key, model)
    if cached is not None:
        logger.debug("cache hit op=%s", operation)
        return cached
    try:
        result = shape(client.generate_json(request))
    except Exception as e:
        _fail(operation, e)
        return fallback()
    client.cache.set(cache_key, result)
    return result


def _item_view(report: ItemReport) -> Dict[str, Any]:
    """Fields that define a report for prompting and cache keys."""
    return {
        "id": report.id,
        "title": report.title,
        "description": report.description,
        "category": report.category.value,
        "specs": report.specs,
        "location": report.location,
        "date": report.date,
        "time": report.time,
        "tags": report.tags,
        "first_image": report.image_urls[0] if report.image_urls else None,
    }


# ---------------------------------------------------------------------------
# Image checks
# ---------------------------------------------------------------------------
def check_image_safety(client: AiClient, image: str) -> ImageSafetyResult:
    return _run(
        client, "image_safety", make_key("image_safety", image), ImageSafetyResult,
        GenerationRequest(prompt=SAFETY_PROMPT, images=[image], json_mode=True),
        shape=lambda data: _validate(ImageSafetyResult, data),
        fallback=lambda: ImageSafetyResult(reason="Check unavailable", used_fallback=True),
    )


def _shape_redaction(data: Any) -> RedactionResult:
    raw = data.get("boxes") if isinstance(data, dict) else data
    if not isinstance(raw, list):
        raise MalformedModelOutput("redaction reply has no box list")
    boxes: List[RedactionBox] = []
    for entry in raw:
        try:
            if isinstance(entry, dict):
                boxes.append(RedactionBox(box=entry.get("box"), label=str(entry.get("label") or "")))
            else:
                boxes.append(RedactionBox(box=entry))
        except ValidationError:
            logger.warning("redaction box skipped: %r", entry)
    return RedactionResult(boxes=boxes)


def detect_redaction_regions(client: AiClient, image: str) -> RedactionResult:
    return _run(
        client, "redaction", make_key("redaction", image), RedactionResult,
        GenerationRequest(prompt=REDACTION_PROMPT, images=[image], json_mode=True),
        shape=_shape_redaction,
        fallback=lambda: RedactionResult(used_fallback=True),
    )


def extract_visual_details(client: AiClient, image: str) -> VisualDetails:
    prompt = VISUAL_PROMPT.format(categories=", ".join(CATEGORY_NAMES))
    return _run(
        client, "visual_details", make_key("visual_details", image), VisualDetails,
        GenerationRequest(prompt=prompt, images=[image], json_mode=True),
        shape=lambda data: _validate(VisualDetails, data),
        fallback=lambda: VisualDetails(used_fallback=True),
    )


# ---------------------------------------------------------------------------
# Report text
# ---------------------------------------------------------------------------
def merge_descriptions(client: AiClient, user_notes: str, visual: Optional[VisualDetails | dict]) -> MergedDescription:
    if isinstance(visual, VisualDetails):
        visual_data = visual.model_dump(mode="json", exclude={"used_fallback"})
    else:
        visual_data = visual or {"note": "No visual data"}
    key = make_key("merge_description", {"notes": user_notes, "visual": visual_data})
    cached = client.cache.get(key, MergedDescription)
    if cached is not None:
        return cached
    prompt = MERGE_PROMPT.format(
        visual=json.dumps(visual_data, ensure_ascii=False),
        notes=json.dumps(user_notes or "", ensure_ascii=False),
        max_chars=MERGED_DESCRIPTION_MAX_CHARS,
    )
    try:
        text = client.generate_text(GenerationRequest(prompt=prompt)).strip()
    except Exception as e:
        _fail("merge_description", e)
        return MergedDescription(description=user_notes, used_fallback=True)
    if not text:
        return MergedDescription(description=user_notes, used_fallback=True)
    result = MergedDescription(description=text)
    client.cache.set(key, result)
    return result


def validate_report(client: AiClient, draft: ReportDraft) -> ReportValidation:
    """Fails open: an unavailable checker never blocks submission."""
    payload = draft.model_dump(mode="json", exclude={"image_urls"})
    return _run(
        client, "validate_report", make_key("validate_report", payload), ReportValidation,
        GenerationRequest(prompt=VALIDATION_PROMPT.format(report=json.dumps(payload, ensure_ascii=False)), json_mode=True),
        shape=lambda data: _validate(ReportValidation, data),
        fallback=lambda: ReportValidation(is_valid=True, reason="", used_fallback=True),
    )


def analyze_report_content(client: AiClient, description: str, images: Optional[List[str]] = None,
                           title: str = "") -> ContentAnalysis:
    limit = client.settings.ANALYSIS_MAX_IMAGES
    images = [img for img in (images or []) if img][:limit]
    summary_default = (description or "")[:client.settings.SUMMARY_FALLBACK_CHARS]

    def shape(data: Any) -> ContentAnalysis:
        result = _validate(ContentAnalysis, data)
        return result.model_copy(update={
            "title": result.title or title,
            "description": result.description or description,
            "summary": result.summary or summary_default,
        })

    prompt = ANALYSIS_PROMPT.format(
        title=json.dumps(title or "", ensure_ascii=False),
        description=json.dumps(description or "", ensure_ascii=False),
        categories=", ".join(CATEGORY_NAMES),
    )
    return _run(
        client, "content_analysis",
        make_key("content_analysis", {"title": title, "description": description, "images": images}),
        ContentAnalysis,
        GenerationRequest(prompt=prompt, images=images, json_mode=True),
        shape=shape,
        fallback=lambda: ContentAnalysis(
            title=title or "Item", description=description, summary=summary_default, used_fallback=True,
        ),
    )


def parse_search_query(client: AiClient, query: str) -> SearchIntent:
    if not (query or "").strip():
        return SearchIntent(refined_query=query or "")

    def shape(data: Any) -> SearchIntent:
        result = _validate(SearchIntent, data)
        if not result.refined_query.strip():
            result = result.model_copy(update={"refined_query": query})
        return result

    return _run(
        client, "search_query", make_key("search_query", query.strip().lower()), SearchIntent,
        GenerationRequest(prompt=SEARCH_PROMPT.format(query=json.dumps(query, ensure_ascii=False)), json_mode=True),
        shape=shape,
        fallback=lambda: SearchIntent(refined_query=query, used_fallback=True),
    )


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------
def _candidate_view(report: ItemReport) -> Dict[str, Any]:
    return {
        "id": report.id,
        "title": report.title,
        "desc": report.description,
        "cat": report.category.value,
        "tags": report.tags,
    }


def find_potential_matches(client: AiClient, query: str, images: Optional[List[str]],
                           candidates: List[ItemReport]) -> List[CandidateScore]:
    """Candidate ids judged relevant by the model, or the lexical scorer's picks."""
    if not candidates:
        return []
    first_image = next((img for img in (images or []) if img), None)
    views = [_candidate_view(c) for c in candidates]
    known_ids = {c.id for c in candidates}
    default_confidence = client.settings.REMOTE_MATCH_DEFAULT_CONFIDENCE
    key = make_key("match_list", {"query": query, "image": first_image, "candidates": views})

    cached = client.cache.get(key, CandidateScoreList)
    if cached is not None:
        return cached.matches

    def lexical() -> List[CandidateScore]:
        return lexical_scorer.score_overlap(query, candidates)

    prompt = MATCH_PROMPT.format(
        source=json.dumps(query, ensure_ascii=False),
        candidates=json.dumps(views, ensure_ascii=False),
    )
    try:
        data = client.generate_json(GenerationRequest(
            prompt=prompt, images=[first_image] if first_image else [], json_mode=True,
        ))
        raw = data.get("matches") if isinstance(data, dict) else data
        if not isinstance(raw, list):
            raise MalformedModelOutput("match reply has no list")
    except Exception as e:
        _fail("match_list", e)
        return lexical()

    seen = set()
    matches: List[CandidateScore] = []
    for entry in raw:
        cid = entry.get("id") if isinstance(entry, dict) else entry
        cid = str(cid) if cid is not None else ""
        if cid not in known_ids or cid in seen:
            continue
        seen.add(cid)
        confidence = entry.get("confidence") if isinstance(entry, dict) else None
        matches.append(CandidateScore(
            id=cid,
            confidence=default_confidence if confidence is None else confidence,
            provenance=Provenance.REMOTE_MODEL,
        ))
    if not matches:
        log_operation_fallback("match_list", "model returned no usable matches", logger=logger)
        return lexical()
    matches.sort(key=lambda m: m.confidence, reverse=True)
    client.cache.set(key, CandidateScoreList(matches=matches))
    return matches


def compare_reports(client: AiClient, item_a: ItemReport, item_b: ItemReport) -> ComparisonResult:
    """Symmetric: compare(a, b) and compare(b, a) share a cache entry and a prompt."""
    view_a, view_b = _item_view(item_a), _item_view(item_b)
    key = make_symmetric_key("compare", view_a, view_b)
    cached = client.cache.get(key, ComparisonResult)
    if cached is not None:
        return cached

    # canonical order so the prompt and the fallback do not depend on argument order
    first, second = sorted(
        [(view_a, item_a), (view_b, item_b)],
        key=lambda pair: json.dumps(pair[0], sort_keys=True, ensure_ascii=False),
    )
    images = [v["first_image"] for v, _ in (first, second) if v["first_image"]]
    image_note = "Images: first belongs to Item A, second to Item B." if len(images) == 2 else ""
    prompt = COMPARE_PROMPT.format(
        a=json.dumps(first[0], ensure_ascii=False),
        b=json.dumps(second[0], ensure_ascii=False),
        image_note=image_note,
    )
    try:
        result = _validate(ComparisonResult, client.generate_json(
            GenerationRequest(prompt=prompt, images=images, json_mode=True),
        ))
    except Exception as e:
        _fail("compare", e)
        return lexical_scorer.compare_reports(first[1], second[1])
    client.cache.set(key, result)
    return result
