"""Parsing of semi-structured generation output.

Each strategy is a pure function returning a result or None; the public
entry points run them as an ordered chain where the first success wins:

    marker  →  JSON  →  heuristic split / regex fallback

Nothing in this module raises on malformed model output.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from speecheval.models.evaluation import BenchmarkDimension, BenchmarkScore, EvaluationResult
from speecheval.models.safety import CLEAN_SUMMARY
from speecheval.prompts.defaults import (
    EVALUATION_MARKER,
    KEY_IDEAS_MARKER,
    RUBRIC_DIMENSIONS,
    RUBRIC_MARKER,
    SUMMARY_MARKER,
)
from speecheval.services.scoring_policy import clamp_score

logger = structlog.get_logger(__name__)

EVALUATION_KEYS = (
    "clarity_score",
    "clarity_reasoning",
    "language_score",
    "language_reasoning",
    "safety_flag",
    "safety_notes",
    "overall_feedback",
)

UNPARSED_DIMENSION = "Could not parse evaluation for this dimension."
NO_EXPLANATION = "No explanation provided."

_DASHES = re.compile(r"[‐‑‒–—―−]")


@dataclass(frozen=True)
class SectionPair:
    """Two text sections recovered from one generation.

    Attributes:
        first: Field A (key ideas, or rubric text)
        second: Field B (summary, or evaluation text)
        strategy: "marker", "json" or "heuristic"
    """

    first: str
    second: str
    strategy: str


# ---------------------------------------------------------------------------
# Marker strategy
# ---------------------------------------------------------------------------


def marker_pattern(marker: str) -> re.Pattern:
    """Compile a line pattern matching ``marker`` loosely.

    "===KEY_IDEAS===" also matches "=== Key Ideas ===", "**KEY-IDEAS**"
    or "key_ideas:" on a line of its own. List items such as "- Summary"
    are content, not markers.
    """
    words = [w for w in re.split(r"[^A-Za-z0-9]+", marker) if w]
    core = r"[ _\-]*".join(re.escape(w) for w in words)
    edge = r"(?:[^\w\n]|_)*"
    bullet = r"(?![ \t]*[-*+•][ \t]+)"
    return re.compile(rf"^{bullet}{edge}{core}{edge}$", re.IGNORECASE | re.MULTILINE)


def _find_marker(raw: str, marker: str, pos: int = 0) -> Optional[re.Match]:
    exact = re.compile(rf"^[ \t]*{re.escape(marker)}[ \t]*$", re.MULTILINE).search(raw, pos)
    return exact or marker_pattern(marker).search(raw, pos)


def split_on_markers(raw: str, first_marker: str, second_marker: str) -> Optional[SectionPair]:
    """Text between the markers is field A, text after the second is field B."""
    first = _find_marker(raw, first_marker)
    if first is None:
        return None
    second = _find_marker(raw, second_marker, first.end())
    if second is None:
        return None

    section_a = raw[first.end():second.start()].strip()
    section_b = raw[second.end():].strip()
    if not section_a or not section_b:
        return None
    return SectionPair(section_a, section_b, "marker")


# ---------------------------------------------------------------------------
# JSON strategy
# ---------------------------------------------------------------------------


def extract_json_object(raw: str) -> Optional[dict[str, Any]]:
    """Return the first JSON object embedded anywhere in ``raw``."""
    decoder = json.JSONDecoder()
    start = raw.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(raw, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = raw.find("{", start + 1)
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        lines = [str(item).strip() for item in value if str(item).strip()]
        return "\n".join(line if line.startswith("-") else f"- {line}" for line in lines)
    return str(value).strip()


def sections_from_json(raw: str) -> Optional[SectionPair]:
    """Read ``key_ideas`` and ``summary`` keys from an embedded JSON object."""
    obj = extract_json_object(raw)
    if obj is None or "key_ideas" not in obj or "summary" not in obj:
        return None
    key_ideas = _as_text(obj["key_ideas"])
    summary = _as_text(obj["summary"])
    if not key_ideas or not summary:
        return None
    return SectionPair(key_ideas, summary, "json")


# ---------------------------------------------------------------------------
# Heuristic fallback
# ---------------------------------------------------------------------------

_BOUNDARIES = (
    re.compile(r"\n[ \t]*\n\s*"),  # blank line
    re.compile(r"\n"),
    re.compile(r"\s+"),
)


def split_at_midpoint(raw: str) -> SectionPair:
    """Split at the boundary nearest the middle of the text.

    Prefers blank lines, then line breaks, then any whitespace, then a raw
    character offset. Both halves are non-empty whenever the text holds at
    least two non-whitespace characters, and together they reconstruct the
    input apart from whitespace. Shorter text becomes field A alone.
    """
    text = raw.strip()
    midpoint = len(text) / 2

    for boundary in _BOUNDARIES:
        candidates = [
            m for m in boundary.finditer(text)
            if text[:m.start()].strip() and text[m.end():].strip()
        ]
        if candidates:
            best = min(candidates, key=lambda m: abs(m.start() - midpoint))
            return SectionPair(
                text[:best.start()].strip(), text[best.end():].strip(), "heuristic"
            )

    if len(text) < 2:
        return SectionPair(text, "", "heuristic")
    cut = len(text) // 2
    return SectionPair(text[:cut], text[cut:], "heuristic")


def _first_success(
    raw: str, strategies: list[Callable[[str], Optional[SectionPair]]]
) -> Optional[SectionPair]:
    for strategy in strategies:
        result = strategy(raw)
        if result is not None:
            return result
    return None


def parse_key_ideas_and_summary(raw: str) -> SectionPair:
    """Recover the key-ideas and summary sections of the merged stage output."""
    result = _first_success(
        raw,
        [
            lambda text: split_on_markers(text, KEY_IDEAS_MARKER, SUMMARY_MARKER),
            sections_from_json,
        ],
    )
    if result is None:
        result = split_at_midpoint(raw)
        logger.warning("key_ideas_summary_heuristic_split", content_length=len(raw))
    return result


def split_rubric_and_evaluation(raw: str) -> tuple[str, str]:
    """Separate rubric text from evaluation text.

    Without usable markers both parsers receive the whole text; each one
    locates its own fields anywhere in it.
    """
    pair = split_on_markers(raw, RUBRIC_MARKER, EVALUATION_MARKER)
    if pair is None:
        return raw, raw
    return pair.first, pair.second


# ---------------------------------------------------------------------------
# Evaluation scores
# ---------------------------------------------------------------------------

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def coerce_score(value: Any) -> Optional[int]:
    """Convert an int, float or numeric string ("7", "7/10") into a clamped score."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return clamp_score(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _NUMBER.search(value)
        if match:
            return clamp_score(float(match.group()))
    return None


def _coerce_flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def evaluation_from_json(raw: str) -> Optional[EvaluationResult]:
    """Read the evaluation schema from an embedded JSON object.

    Every key in EVALUATION_KEYS is required.
    """
    obj = extract_json_object(raw)
    if obj is None or any(key not in obj for key in EVALUATION_KEYS):
        return None

    clarity = coerce_score(obj["clarity_score"])
    language = coerce_score(obj["language_score"])
    safety_flag = _coerce_flag(obj["safety_flag"])
    if clarity is None or language is None or safety_flag is None:
        return None

    return EvaluationResult(
        clarity_score=clarity,
        clarity_reasoning=_as_text(obj["clarity_reasoning"]) or NO_EXPLANATION,
        language_score=language,
        language_reasoning=_as_text(obj["language_reasoning"]) or NO_EXPLANATION,
        safety_flag=safety_flag,
        safety_notes=_as_text(obj["safety_notes"]) or CLEAN_SUMMARY,
        overall_feedback=_as_text(obj["overall_feedback"]) or "No feedback provided.",
    )


_CLARITY_LINE = re.compile(r"clarity[^:\n]*:\s*\**\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_LANGUAGE_LINE = re.compile(r"language[^:\n]*:\s*\**\s*(\d+(?:\.\d+)?)", re.IGNORECASE)


def evaluation_from_lines(raw: str) -> Optional[EvaluationResult]:
    """Recover scores from lines such as "Clarity of Thought: 7/10".

    Both a clarity and a language line are required.
    """
    clarity = _CLARITY_LINE.search(raw)
    language = _LANGUAGE_LINE.search(raw)
    if clarity is None or language is None:
        return None

    extracted = "Extracted from unstructured output."
    return EvaluationResult(
        clarity_score=clamp_score(float(clarity.group(1))),
        clarity_reasoning=extracted,
        language_score=clamp_score(float(language.group(1))),
        language_reasoning=extracted,
        overall_feedback=(
            "Scores were extracted from a non-standard model response. "
            "Results may be less reliable."
        ),
    )


def parse_evaluation(raw: str) -> EvaluationResult:
    """Parse clarity/language evaluation output, never fabricating scores."""
    for strategy in (evaluation_from_json, evaluation_from_lines):
        result = strategy(raw)
        if result is not None:
            return result
    logger.warning("evaluation_parse_failed", content_length=len(raw))
    return EvaluationResult.parse_error(raw_output=raw)


# ---------------------------------------------------------------------------
# Rubric dimensions
# ---------------------------------------------------------------------------


def _dimension_pattern(name: str) -> re.Pattern:
    return re.compile(
        rf"{re.escape(name)}[ \t*_]*:[ \t*_]*(good|fair|poor)\b[ \t*_]*-?[ \t*_]*(.*)",
        re.IGNORECASE,
    )


def parse_dimension(raw: str, name: str, description: str) -> BenchmarkDimension:
    """Locate one "<Name>: (Good|Fair|Poor) - <explanation>" line."""
    match = _dimension_pattern(name).search(_DASHES.sub("-", raw))
    if match is None:
        return BenchmarkDimension(
            name=name,
            description=description,
            score=BenchmarkScore.FAIR,
            explanation=UNPARSED_DIMENSION,
        )
    return BenchmarkDimension(
        name=name,
        description=description,
        score=BenchmarkScore(match.group(1).lower()),
        explanation=match.group(2).strip() or NO_EXPLANATION,
    )


def parse_dimensions(
    raw: str, dimensions: dict[str, str] = RUBRIC_DIMENSIONS
) -> list[BenchmarkDimension]:
    """Produce exactly one record per rubric dimension, in rubric order."""
    return [parse_dimension(raw, name, description) for name, description in dimensions.items()]
