"""Value records exchanged with the Moderyo moderation service.

All records are frozen; a result is built once per call and then owned by
the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Mapping, Optional, Union

from moderyo.exceptions import ValidationError

MAX_INPUT_LENGTH = 10_000


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Decision(Enum):
    """Final verdict of the server-side policy engine."""

    ALLOW = "ALLOW"
    FLAG = "FLAG"
    WARN = "WARN"
    BLOCK = "BLOCK"


class ProcessingMode(Enum):
    """How a result was produced."""

    NORMAL = "normal"
    SHADOW = "shadow"
    DEGRADED = "degraded"  # synthesized without reaching the service


class EnforcementMode(Enum):
    ENFORCE = "enforce"
    SHADOW = "shadow"


class RiskProfile(Enum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


class OfflineMode(Enum):
    """Behaviour when the service cannot be reached."""

    ALLOW_ALL = "allow_all"
    BLOCK_ALL = "block_all"
    USE_LOCAL_FILTER = "use_local_filter"
    QUEUE = "queue"  # no fallback: the network error reaches the caller


class CategoryKey(str, Enum):
    """The 27 category keys, in canonical order."""

    # Standard content categories
    HATE = "hate"
    HATE_THREATENING = "hate/threatening"
    HARASSMENT = "harassment"
    HARASSMENT_THREATENING = "harassment/threatening"
    SELF_HARM = "self-harm"
    SELF_HARM_INTENT = "self-harm/intent"
    SELF_HARM_INSTRUCTIONS = "self-harm/instructions"
    SEXUAL = "sexual"
    SEXUAL_MINORS = "sexual/minors"
    VIOLENCE = "violence"
    VIOLENCE_GRAPHIC = "violence/graphic"

    # Self-harm engine
    SELF_HARM_IDEATION = "self_harm_ideation"
    SELF_HARM_INTENT_ENGINE = "self_harm_intent"
    SELF_HARM_INSTRUCTION = "self_harm_instruction"
    SELF_HARM_SUPPORT = "self_harm_support"

    # Violence engine
    VIOLENCE_GENERAL = "violence_general"
    VIOLENCE_SEVERE = "violence_severe"
    VIOLENCE_INSTRUCTION = "violence_instruction"
    VIOLENCE_GLORIFICATION = "violence_glorification"

    # Child protection
    CHILD_SEXUAL_CONTENT = "child_sexual_content"
    MINOR_SEXUALIZATION = "minor_sexualization"
    CHILD_GROOMING = "child_grooming"
    AGE_MENTION_RISK = "age_mention_risk"

    # Extremism
    EXTREMISM_VIOLENCE_CALL = "extremism_violence_call"
    EXTREMISM_PROPAGANDA = "extremism_propaganda"
    EXTREMISM_SUPPORT = "extremism_support"
    EXTREMISM_SYMBOL_REFERENCE = "extremism_symbol_reference"


ALL_CATEGORIES: tuple[CategoryKey, ...] = tuple(CategoryKey)
_INDEX: dict[CategoryKey, int] = {key: i for i, key in enumerate(ALL_CATEGORIES)}

KeyLike = Union[CategoryKey, str]


def _index_of(key: KeyLike) -> int:
    try:
        return _INDEX[CategoryKey(key)]
    except ValueError:
        raise KeyError(key) from None


# ---------------------------------------------------------------------------
# Category maps
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Categories:
    """Boolean flag per category, stored densely in canonical order."""

    flags: tuple[bool, ...] = (False,) * len(ALL_CATEGORIES)

    def __post_init__(self) -> None:
        if len(self.flags) != len(ALL_CATEGORIES):
            raise ValueError(f"expected {len(ALL_CATEGORIES)} flags, got {len(self.flags)}")

    @classmethod
    def from_mapping(cls, values: Mapping[KeyLike, bool]) -> Categories:
        """Build from a key -> flag mapping; unknown keys are ignored."""
        flags = [False] * len(ALL_CATEGORIES)
        for key, value in values.items():
            try:
                flags[_index_of(key)] = bool(value)
            except KeyError:
                continue
        return cls(tuple(flags))

    def __getitem__(self, key: KeyLike) -> bool:
        return self.flags[_index_of(key)]

    def __iter__(self) -> Iterator[CategoryKey]:
        return iter(ALL_CATEGORIES)

    def items(self) -> Iterator[tuple[CategoryKey, bool]]:
        return zip(ALL_CATEGORIES, self.flags)

    def triggered(self) -> list[CategoryKey]:
        """Keys whose flag is set, in canonical order."""
        return [key for key, flag in self.items() if flag]

    def has_any(self) -> bool:
        return any(self.flags)

    def to_dict(self) -> dict[str, bool]:
        return {key.value: flag for key, flag in self.items()}


@dataclass(frozen=True)
class CategoryScores:
    """Score in [0.0, 1.0] per category, stored densely in canonical order."""

    values: tuple[float, ...] = (0.0,) * len(ALL_CATEGORIES)

    def __post_init__(self) -> None:
        if len(self.values) != len(ALL_CATEGORIES):
            raise ValueError(f"expected {len(ALL_CATEGORIES)} scores, got {len(self.values)}")

    @classmethod
    def from_mapping(cls, values: Mapping[KeyLike, float]) -> CategoryScores:
        """Build from a key -> score mapping; unknown keys are ignored."""
        scores = [0.0] * len(ALL_CATEGORIES)
        for key, value in values.items():
            try:
                scores[_index_of(key)] = float(value)
            except KeyError:
                continue
        return cls(tuple(scores))

    def __getitem__(self, key: KeyLike) -> float:
        return self.values[_index_of(key)]

    def __iter__(self) -> Iterator[CategoryKey]:
        return iter(ALL_CATEGORIES)

    def items(self) -> Iterator[tuple[CategoryKey, float]]:
        return zip(ALL_CATEGORIES, self.values)

    def max(self) -> float:
        return max(self.values, default=0.0)

    def highest(self) -> tuple[CategoryKey, float]:
        """Return the ``(key, score)`` pair with the largest score.

        Ties go to the key that comes first in canonical order, so an
        all-zero map yields ``(HATE, 0.0)``.
        """
        best = (ALL_CATEGORIES[0], self.values[0])
        for key, value in self.items():
            if value > best[1]:
                best = (key, value)
        return best

    def above(self, threshold: float) -> dict[CategoryKey, float]:
        """Categories scoring at or above *threshold*."""
        return {key: value for key, value in self.items() if value >= threshold}

    def to_dict(self) -> dict[str, float]:
        return {key.value: value for key, value in self.items()}


@dataclass(frozen=True)
class SimplifiedScores:
    """Coarse dashboard scores returned at the top level of a response."""

    toxicity: float = 0.0
    hate: float = 0.0
    harassment: float = 0.0
    scam: float = 0.0
    violence: float = 0.0
    fraud: float = 0.0


# ---------------------------------------------------------------------------
# Policy decision
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TriggeredRule:
    """The rule that produced a policy decision."""

    id: str = ""
    type: str = ""
    category: str = ""
    threshold: float = 0.0
    actual_value: float = 0.0
    matched: str = ""


@dataclass(frozen=True)
class Highlight:
    """A span of the input the policy engine considers problematic."""

    text: str = ""
    category: str = ""
    start_index: int = 0
    end_index: int = 0


@dataclass(frozen=True)
class PolicyDecision:
    decision: str = ""  # ALLOW | FLAG | WARN | BLOCK
    rule_id: str = ""
    rule_name: str = ""
    reason: str = ""
    confidence: float = 0.0
    severity: str = ""
    triggered_rule: Optional[TriggeredRule] = None
    highlights: tuple[Highlight, ...] = ()


PHRASE_LABELS = ("profanity", "insult", "scam", "threat", "hate", "violence")


@dataclass(frozen=True)
class DetectedPhrase:
    """A matched substring; ``label`` is one of :data:`PHRASE_LABELS`."""

    text: str = ""
    label: str = ""


# ---------------------------------------------------------------------------
# Long text analysis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SentenceAnalysis:
    text: str = ""
    toxicity: float = 0.0
    flagged: bool = False
    categories: tuple[str, ...] = ()


@dataclass(frozen=True)
class LongTextHighlight:
    text: str = ""
    category: str = ""
    sentence_index: int = 0


@dataclass(frozen=True)
class ProcessingInfo:
    mode: str = ""
    original_char_count: int = 0
    processed_char_count: int = 0
    truncated: bool = False
    inference_time_ms: float = 0.0


@dataclass(frozen=True)
class LongTextAnalysis:
    """Sentence-level breakdown returned for long-text requests."""

    overall_toxicity: float = 0.0
    max_toxicity: float = 0.0
    top3_mean_toxicity: float = 0.0
    decision_confidence: float = 0.0
    signal_confidence: float = 0.0
    sentences: tuple[SentenceAnalysis, ...] = ()
    highlights: tuple[LongTextHighlight, ...] = ()
    processing: Optional[ProcessingInfo] = None


# ---------------------------------------------------------------------------
# Request / options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModerationRequest:
    """Body of ``POST /v1/moderation``.

    Optional fields left as *None* are omitted from the wire body; the
    ``skip_*`` flags are only ever sent when true.
    """

    input: str
    model: Optional[str] = None
    long_text_mode: Optional[bool] = None
    long_text_threshold: Optional[float] = None
    skip_profanity: Optional[bool] = None
    skip_threat: Optional[bool] = None
    skip_masked_word: Optional[bool] = None

    @classmethod
    def of(cls, text: str) -> ModerationRequest:
        return cls(input=text)

    def validate(self) -> None:
        """Raise :class:`ValidationError` for empty or oversized input."""
        if not self.input:
            raise ValidationError("Input is required", field="input")
        if len(self.input) > MAX_INPUT_LENGTH:
            raise ValidationError(
                f"Input must be {MAX_INPUT_LENGTH:,} characters or fewer", field="input"
            )


@dataclass(frozen=True)
class ModerationOptions:
    """Per-call overrides sent as ``X-Moderyo-*`` headers.

    Unset fields fall back to the client defaults.
    """

    mode: Optional[EnforcementMode] = None
    risk: Optional[RiskProfile] = None
    debug: Optional[bool] = None
    player_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


_DECISIONS = {d.value: d for d in Decision}


@dataclass(frozen=True)
class ModerationResult:
    """Full moderation verdict for one input."""

    id: str
    model: str
    flagged: bool = False
    categories: Categories = field(default_factory=Categories)
    category_scores: CategoryScores = field(default_factory=CategoryScores)
    scores: SimplifiedScores = field(default_factory=SimplifiedScores)
    policy_decision: Optional[PolicyDecision] = None
    detected_phrases: tuple[DetectedPhrase, ...] = ()
    long_text_analysis: Optional[LongTextAnalysis] = None
    mode: ProcessingMode = ProcessingMode.NORMAL

    def _decision_value(self) -> str:
        return self.policy_decision.decision if self.policy_decision else ""

    def is_blocked(self) -> bool:
        return self._decision_value() == Decision.BLOCK.value

    def is_flagged(self) -> bool:
        return self._decision_value() == Decision.FLAG.value or self.flagged

    def is_allowed(self) -> bool:
        return not self.is_blocked()

    def triggered_categories(self) -> list[CategoryKey]:
        return self.categories.triggered()

    def highest_risk_category(self) -> CategoryKey:
        return self.category_scores.highest()[0]

    @property
    def action(self) -> Decision:
        """Decision enum; unknown server values map to ALLOW."""
        if self.policy_decision is None:
            return Decision.FLAG if self.flagged else Decision.ALLOW
        return _DECISIONS.get(self.policy_decision.decision, Decision.ALLOW)

    @property
    def explanation(self) -> str:
        return self.policy_decision.reason if self.policy_decision else ""


@dataclass(frozen=True)
class BatchModerationResult:
    """One result per batch input, in input order."""

    results: tuple[ModerationResult, ...] = ()

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[ModerationResult]:
        return iter(self.results)

    def __getitem__(self, index: int) -> ModerationResult:
        return self.results[index]

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def blocked_count(self) -> int:
        return sum(1 for r in self.results if r.is_blocked())

    @property
    def flagged_count(self) -> int:
        return sum(1 for r in self.results if r.is_flagged())

    def has_blocked(self) -> bool:
        return any(r.is_blocked() for r in self.results)

    def blocked(self) -> list[ModerationResult]:
        return [r for r in self.results if r.is_blocked()]

    def flagged(self) -> list[ModerationResult]:
        return [r for r in self.results if r.is_flagged()]
