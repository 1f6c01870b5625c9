"""Request encoding and response decoding for ``/v1/moderation``.

The decoder pulls a fixed set of fields out of the response with
:mod:`moderyo.protocol.scanner`.  Absent sections decode to defaults and
unknown fields are skipped, so newer servers stay readable.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from moderyo.exceptions import ValidationError
from moderyo.ids import generate_id
from moderyo.models import (
    ALL_CATEGORIES,
    Categories,
    CategoryScores,
    DetectedPhrase,
    Highlight,
    LongTextAnalysis,
    LongTextHighlight,
    ModerationRequest,
    ModerationResult,
    PolicyDecision,
    ProcessingInfo,
    ProcessingMode,
    SentenceAnalysis,
    SimplifiedScores,
    TriggeredRule,
)
from moderyo.protocol.scanner import ScannedObject, escape

DEFAULT_MODEL = "omni-moderation-latest"


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _bool(value: bool) -> str:
    return "true" if value else "false"


def encode_request(request: ModerationRequest) -> str:
    """Return the compact JSON body for *request*.

    Only present optional fields are written; ``skip_*`` flags only when true.
    """
    parts = [f'"input":"{escape(request.input)}"']
    if request.model:
        parts.append(f'"model":"{escape(request.model)}"')
    if request.long_text_mode is not None:
        parts.append(f'"long_text_mode":{_bool(request.long_text_mode)}')
    if request.long_text_threshold is not None:
        threshold = float(request.long_text_threshold)
        if not math.isfinite(threshold):
            raise ValidationError(
                "long_text_threshold must be a finite number", field="long_text_threshold"
            )
        parts.append(f'"long_text_threshold":{threshold!r}')
    if request.skip_profanity:
        parts.append('"skip_profanity":true')
    if request.skip_threat:
        parts.append('"skip_threat":true')
    if request.skip_masked_word:
        parts.append('"skip_masked_word":true')
    return "{" + ",".join(parts) + "}"


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def _decode_categories(obj: Optional[ScannedObject]) -> Categories:
    if obj is None:
        return Categories()
    return Categories(tuple(obj.boolean(key.value) for key in ALL_CATEGORIES))


def _decode_category_scores(obj: Optional[ScannedObject]) -> CategoryScores:
    if obj is None:
        return CategoryScores()
    return CategoryScores(tuple(_clamp(obj.number(key.value)) for key in ALL_CATEGORIES))


def _decode_scores(obj: Optional[ScannedObject]) -> SimplifiedScores:
    if obj is None:
        return SimplifiedScores()
    return SimplifiedScores(
        toxicity=obj.number("toxicity"),
        hate=obj.number("hate"),
        harassment=obj.number("harassment"),
        scam=obj.number("scam"),
        violence=obj.number("violence"),
        fraud=obj.number("fraud"),
    )


def _decode_policy_decision(obj: ScannedObject) -> PolicyDecision:
    triggered_rule = None
    rule = obj.object("triggered_rule")
    if rule is not None:
        triggered_rule = TriggeredRule(
            id=rule.string("id"),
            type=rule.string("type"),
            category=rule.string("category"),
            threshold=rule.number("threshold"),
            actual_value=rule.number("actual_value"),
            matched=rule.string("matched"),
        )

    highlights = tuple(
        Highlight(
            text=h.string("text"),
            category=h.string("category"),
            start_index=h.integer("start_index"),
            end_index=h.integer("end_index"),
        )
        for h in obj.objects("highlights")
    )

    return PolicyDecision(
        decision=obj.string("decision"),
        rule_id=obj.string("rule_id"),
        rule_name=obj.string("rule_name"),
        reason=obj.string("reason"),
        confidence=obj.number("confidence"),
        severity=obj.string("severity"),
        triggered_rule=triggered_rule,
        highlights=highlights,
    )


def _decode_long_text(obj: ScannedObject) -> LongTextAnalysis:
    sentences = tuple(
        SentenceAnalysis(
            text=s.string("text"),
            toxicity=s.number("toxicity"),
            flagged=s.boolean("flagged"),
            categories=tuple(s.strings("categories")),
        )
        for s in obj.objects("sentences")
    )
    highlights = tuple(
        LongTextHighlight(
            text=h.string("text"),
            category=h.string("category"),
            sentence_index=h.integer("sentence_index"),
        )
        for h in obj.objects("highlights")
    )

    processing = None
    proc = obj.object("processing")
    if proc is not None:
        processing = ProcessingInfo(
            mode=proc.string("mode"),
            original_char_count=proc.integer("original_char_count"),
            processed_char_count=proc.integer("processed_char_count"),
            truncated=proc.boolean("truncated"),
            inference_time_ms=proc.number("inference_time_ms"),
        )

    return LongTextAnalysis(
        overall_toxicity=obj.number("overall_toxicity"),
        max_toxicity=obj.number("max_toxicity"),
        top3_mean_toxicity=obj.number("top3_mean_toxicity"),
        decision_confidence=obj.number("decision_confidence"),
        signal_confidence=obj.number("signal_confidence"),
        sentences=sentences,
        highlights=highlights,
        processing=processing,
    )


def decode_response(
    text: str,
    default_model: str = DEFAULT_MODEL,
    mode: ProcessingMode = ProcessingMode.NORMAL,
) -> ModerationResult:
    """Decode a moderation response body into a :class:`ModerationResult`.

    Never raises on missing sections; a body that is not a JSON object at
    all decodes to an empty, allowed result with a generated id.
    """
    root = ScannedObject(text)

    flagged = False
    categories_obj = scores_obj = None
    results = root.objects("results")
    if results:
        first = results[0]
        flagged = first.boolean("flagged")
        categories_obj = first.object("categories")
        scores_obj = first.object("category_scores")

    policy = root.object("policy_decision")
    long_text = root.object("long_text_analysis")

    return ModerationResult(
        id=root.optional_string("id") or generate_id(),
        model=root.optional_string("model") or default_model,
        flagged=flagged,
        categories=_decode_categories(categories_obj),
        category_scores=_decode_category_scores(scores_obj),
        scores=_decode_scores(root.object("scores")),
        policy_decision=_decode_policy_decision(policy) if policy is not None else None,
        detected_phrases=tuple(
            DetectedPhrase(text=p.string("text"), label=p.string("label"))
            for p in root.objects("detected_phrases")
        ),
        long_text_analysis=_decode_long_text(long_text) if long_text is not None else None,
        mode=mode,
    )


@dataclass(frozen=True)
class ErrorBody:
    """Fields read from a non-2xx response body."""

    message: Optional[str] = None
    retry_after: Optional[float] = None


def decode_error(text: str) -> ErrorBody:
    """Read ``message`` (or ``error``) and ``retry_after`` from an error body."""
    root = ScannedObject(text)
    message = root.optional_string("message") or root.optional_string("error")
    if message is None:
        # {"error": {"message": "..."}}
        nested = root.object("error")
        if nested is not None:
            message = nested.optional_string("message")
    return ErrorBody(message=message, retry_after=root.optional_number("retry_after"))
