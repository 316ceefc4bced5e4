import json

import pytest

from app.domain.report_schema import ItemCategory, Provenance, ReportType, ViolationType
from app.models.ai import VisualDetails
from app.models.reports import ReportDraft
from app.services import ai_operations as ops
from app.services import lexical_scorer
from app.services.ai_errors import ModelCallFailed

from conftest import ScriptedProvider, always_fail, make_client, make_report


def test_image_safety_parses_fenced_reply_and_caches():
    provider = ScriptedProvider([
        '```json\n{"violation_type": "human", "is_staged": false, "reason": "selfie"}\n```',
    ])
    client = make_client(provider)
    first = ops.check_image_safety(client, "data:image/png;base64,AAAA")
    assert first.violation_type == ViolationType.HUMAN
    assert first.used_fallback is False
    second = ops.check_image_safety(client, "data:image/png;base64,AAAA")
    assert second == first
    assert len(provider.calls) == 1
    assert provider.calls[0][1].images == ["data:image/png;base64,AAAA"]


def test_image_safety_fallback_is_not_cached():
    provider = ScriptedProvider(handler=always_fail)
    client = make_client(provider)
    result = ops.check_image_safety(client, "img")
    assert result.used_fallback is True
    assert result.violation_type == ViolationType.NONE
    calls = len(provider.calls)
    ops.check_image_safety(client, "img")
    assert len(provider.calls) == calls * 2


def test_unknown_violation_label_normalizes_to_none():
    client = make_client(ScriptedProvider(['{"violation_type": "MEME", "reason": "x"}']))
    assert ops.check_image_safety(client, "img").violation_type == ViolationType.NONE


def test_redaction_skips_bad_boxes_and_clamps():
    reply = json.dumps({"boxes": [
        {"box": [10, 20, 1200, 400], "label": "face"},
        {"box": [1, 2, 3], "label": "broken"},
        [0, 0, 50, 50],
    ]})
    client = make_client(ScriptedProvider([reply]))
    result = ops.detect_redaction_regions(client, "img")
    assert [b.box for b in result.boxes] == [[10, 20, 1000, 400], [0, 0, 50, 50]]
    assert result.boxes[0].label == "face"


def test_redaction_fallback_is_empty():
    client = make_client(ScriptedProvider(handler=always_fail))
    result = ops.detect_redaction_regions(client, "img")
    assert result.boxes == []
    assert result.used_fallback is True


def test_visual_details_normalizes_category():
    reply = '{"title": "Silver laptop", "category": "laptop", "tags": "silver", "brand": null}'
    client = make_client(ScriptedProvider([reply]))
    result = ops.extract_visual_details(client, "img")
    assert result.category == ItemCategory.ELECTRONICS
    assert result.tags == ["silver"]
    assert result.brand == ""


def test_merge_descriptions_uses_model_text():
    provider = ScriptedProvider(["Silver Dell laptop with a sticker, left in room 204."])
    client = make_client(provider)
    visual = VisualDetails(title="Dell laptop", color="Silver")
    result = ops.merge_descriptions(client, "left it in room 204", visual)
    assert result.description.startswith("Silver Dell")
    assert result.used_fallback is False
    assert '"Silver"' in provider.calls[0][1].prompt


def test_merge_descriptions_falls_back_to_notes():
    client = make_client(ScriptedProvider(handler=always_fail))
    result = ops.merge_descriptions(client, "left it in room 204", None)
    assert result.description == "left it in room 204"
    assert result.used_fallback is True


def test_validate_report_fails_open_on_network_error():
    client = make_client(ScriptedProvider(handler=always_fail))
    draft = ReportDraft(type=ReportType.LOST, title="Keys", description="Three keys on a ring")
    result = ops.validate_report(client, draft)
    assert result.is_valid is True
    assert result.used_fallback is True


def test_validate_report_can_reject():
    client = make_client(ScriptedProvider(['{"is_valid": false, "reason": "spam"}']))
    draft = ReportDraft(type=ReportType.LOST, title="BUY NOW", description="cheap watches")
    result = ops.validate_report(client, draft)
    assert result.is_valid is False
    assert result.reason == "spam"


def test_analysis_caps_images_and_fills_defaults():
    provider = ScriptedProvider(['{"is_violating": false, "category": "phone", "tags": ["black"]}'])
    client = make_client(provider)
    description = "Black phone " * 20
    result = ops.analyze_report_content(client, description, ["i1", "i2", "i3", "i4", ""], "Phone")
    assert len(provider.calls[0][1].images) == 3
    assert result.category == ItemCategory.ELECTRONICS
    assert result.title == "Phone"
    assert result.description == description
    assert result.summary == description[:100]


def test_analysis_fallback():
    client = make_client(ScriptedProvider(handler=always_fail))
    result = ops.analyze_report_content(client, "A blue umbrella", [], "")
    assert result.used_fallback is True
    assert result.is_violating is False
    assert result.title == "Item"
    assert result.summary == "A blue umbrella"


def test_parse_search_query():
    client = make_client(ScriptedProvider(['{"user_status": "lost", "refined_query": "black wallet"}']))
    intent = ops.parse_search_query(client, "I lost my black wallet")
    assert intent.user_status == ReportType.LOST
    assert intent.refined_query == "black wallet"


def test_parse_search_query_fallback_and_empty():
    provider = ScriptedProvider(handler=always_fail)
    client = make_client(provider)
    intent = ops.parse_search_query(client, "umbrella")
    assert intent.user_status is None
    assert intent.refined_query == "umbrella"
    assert intent.used_fallback is True
    calls = len(provider.calls)
    ops.parse_search_query(client, "   ")
    assert len(provider.calls) == calls


def _candidates():
    return [
        make_report(id="f1", type=ReportType.FOUND, title="Black iPhone", reporter_id="u2"),
        make_report(id="f2", type=ReportType.FOUND, title="Red umbrella", description="Umbrella",
                    category=ItemCategory.OTHER, tags=[], reporter_id="u3"),
    ]


def test_find_matches_keeps_known_ids_once():
    reply = json.dumps({"matches": [
        {"id": "f1", "confidence": 130},
        {"id": "ghost", "confidence": 99},
        {"id": "f1", "confidence": 10},
        {"id": "f2"},
    ]})
    client = make_client(ScriptedProvider([reply]))
    scores = ops.find_potential_matches(client, "black iphone", [], _candidates())
    assert [(s.id, s.confidence) for s in scores] == [("f1", 100), ("f2", 75)]
    assert all(s.provenance == Provenance.REMOTE_MODEL for s in scores)


def test_find_matches_empty_remote_list_uses_lexical():
    client = make_client(ScriptedProvider(['{"matches": []}']))
    scores = ops.find_potential_matches(client, "black iphone cracked", [], _candidates())
    assert [s.id for s in scores] == ["f1"]
    assert scores[0].provenance == Provenance.LOCAL_FALLBACK


def test_find_matches_malformed_reply_uses_lexical():
    client = make_client(ScriptedProvider(["I think f1 is a match"]))
    scores = ops.find_potential_matches(client, "black iphone cracked", [], _candidates())
    assert [s.provenance for s in scores] == [Provenance.LOCAL_FALLBACK]


def test_find_matches_without_candidates_makes_no_call():
    provider = ScriptedProvider(["unused"])
    assert ops.find_potential_matches(make_client(provider), "anything", [], []) == []
    assert provider.calls == []


def test_compare_is_symmetric_and_cached():
    provider = ScriptedProvider(['{"confidence": 82, "explanation": "same case", "similarities": ["case"]}'])
    client = make_client(provider)
    a = make_report(id="a")
    b = make_report(id="b", type=ReportType.FOUND, reporter_id="u2")
    ab = ops.compare_reports(client, a, b)
    ba = ops.compare_reports(client, b, a)
    assert ab == ba
    assert ab.confidence == 82
    assert len(provider.calls) == 1


def test_compare_fallback_is_symmetric():
    client = make_client(ScriptedProvider(handler=always_fail))
    a = make_report(id="a")
    b = make_report(id="b", title="iPhone black", category=ItemCategory.OTHER)
    ab = ops.compare_reports(client, a, b)
    ba = ops.compare_reports(client, b, a)
    assert ab.used_fallback is True
    assert ab.confidence <= 90
    assert (ab.confidence, ab.similarities, ab.differences) == (ba.confidence, ba.similarities, ba.differences)


def test_compare_prompt_is_order_independent():
    prompts = []

    def handler(model, request):
        prompts.append(request.prompt)
        raise ModelCallFailed("down", model)

    client = make_client(ScriptedProvider(handler=handler), models=("only",))
    a = make_report(id="a")
    b = make_report(id="b", title="Other phone")
    ops.compare_reports(client, a, b)
    ops.compare_reports(client, b, a)
    assert prompts[0] == prompts[1]


REFUSAL = "Sorry, I can't help with that request."

_DRAFT = ReportDraft(type=ReportType.LOST, title="Keys", description="Three keys on a ring")


@pytest.mark.parametrize("run", [
    pytest.param(lambda c: ops.check_image_safety(c, "abc"), id="image_safety"),
    pytest.param(lambda c: ops.detect_redaction_regions(c, "abc"), id="redaction"),
    pytest.param(lambda c: ops.extract_visual_details(c, "abc"), id="visual_details"),
    pytest.param(lambda c: ops.validate_report(c, _DRAFT), id="validate_report"),
    pytest.param(lambda c: ops.analyze_report_content(c, "Three keys", [], "Keys"), id="content_analysis"),
    pytest.param(lambda c: ops.parse_search_query(c, "lost keys"), id="search_query"),
    pytest.param(lambda c: ops.compare_reports(c, make_report(id="a"), make_report(id="b")), id="compare"),
])
def test_prose_reply_takes_fallback_and_is_not_cached(run):
    provider = ScriptedProvider(handler=lambda model, request: REFUSAL)
    client = make_client(provider, models=("only",))
    assert run(client).used_fallback is True
    assert client.cache.store.keys() == []
    run(client)
    assert len(provider.calls) == 2


def test_compare_reply_without_confidence_uses_lexical_fallback():
    client = make_client(ScriptedProvider(['{"explanation": "cannot tell from the text"}']), models=("only",))
    result = ops.compare_reports(client, make_report(id="a"), make_report(id="b"))
    assert result.used_fallback is True
    assert result.explanation == lexical_scorer.FALLBACK_EXPLANATION
    assert result.confidence == 90
