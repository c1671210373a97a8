"""Evaluation and benchmark result models.

These models define the structure of:
- EvaluationResult: clarity and language scores for a transcript
- BenchmarkDimension: one rubric dimension of summary quality
- BenchmarkResult: the terminal aggregate of a pipeline run
"""

import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from speecheval.models.safety import CLEAN_SUMMARY, SafetyVerdict
from speecheval.services.scoring_policy import MAX_SCORE, MIN_SCORE, MAX_TOTAL_SCORE, total_to_label

PARSE_ERROR_REASONING = "Could not parse evaluation output."


class EvaluationResult(BaseModel):
    """Clarity of thought and language proficiency scores.

    A parse-error result carries the raw model text and no scores at all;
    scores are never fabricated when the model output cannot be read.
    """

    model_config = ConfigDict(frozen=True)

    clarity_score: Optional[int] = Field(default=None, ge=MIN_SCORE, le=MAX_SCORE)
    clarity_reasoning: str = ""
    language_score: Optional[int] = Field(default=None, ge=MIN_SCORE, le=MAX_SCORE)
    language_reasoning: str = ""
    safety_flag: bool = False
    safety_notes: str = CLEAN_SUMMARY
    overall_feedback: str = ""
    is_parse_error: bool = False
    raw_output: Optional[str] = None

    @model_validator(mode="after")
    def scores_match_variant(self) -> "EvaluationResult":
        """Parse errors have no scores; scored results have both."""
        has_scores = self.clarity_score is not None and self.language_score is not None
        no_scores = self.clarity_score is None and self.language_score is None
        if self.is_parse_error and not no_scores:
            raise ValueError("parse-error evaluation must not carry scores")
        if not self.is_parse_error and not has_scores:
            raise ValueError("evaluation requires both clarity_score and language_score")
        return self

    @classmethod
    def parse_error(cls, raw_output: str) -> "EvaluationResult":
        """Create the distinguished variant for unreadable model output."""
        return cls(
            clarity_reasoning=PARSE_ERROR_REASONING,
            language_reasoning=PARSE_ERROR_REASONING,
            overall_feedback="The model produced an unparseable response. Please try again.",
            is_parse_error=True,
            raw_output=raw_output,
        )

    @property
    def total_score(self) -> Optional[int]:
        """Combined score out of 20, or None for a parse error."""
        if self.is_parse_error:
            return None
        return self.clarity_score + self.language_score

    @property
    def total_percentage(self) -> Optional[float]:
        total = self.total_score
        return None if total is None else total / MAX_TOTAL_SCORE

    @property
    def total_label(self) -> Optional[str]:
        total = self.total_score
        return None if total is None else total_to_label(total)


class BenchmarkScore(str, Enum):
    """Qualitative score for a benchmark dimension."""

    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def numeric_value(self) -> float:
        return {"good": 1.0, "fair": 0.5, "poor": 0.0}[self.value]


class BenchmarkDimension(BaseModel):
    """A single dimension score within the summary-quality rubric."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    score: BenchmarkScore
    explanation: str


_WORD_SPLIT = re.compile(r"\s+")


def _word_count(text: str) -> int:
    return len([w for w in _WORD_SPLIT.split(text) if w])


class BenchmarkResult(BaseModel):
    """Complete outcome of one pipeline run.

    Owned by the run that produced it and immutable once emitted.
    """

    model_config = ConfigDict(frozen=True)

    transcript: str
    key_ideas: str
    summary: str
    dimensions: tuple[BenchmarkDimension, ...] = Field(default_factory=tuple)
    safety_result: SafetyVerdict
    evaluation_result: Optional[EvaluationResult] = None
    recording_duration_seconds: int = Field(default=0, ge=0)
    processing_time_ms: int = Field(default=0, ge=0)
    prompt_used: str
    completed_at: datetime

    @property
    def is_safety_flagged(self) -> bool:
        return not self.safety_result.is_safe

    @property
    def has_evaluation(self) -> bool:
        """Whether evaluation scores exist and may be displayed."""
        return (
            self.evaluation_result is not None
            and not self.evaluation_result.is_parse_error
            and not self.evaluation_result.safety_flag
        )

    @property
    def overall_score(self) -> float:
        """Mean numeric value of the rubric dimensions (0.0-1.0)."""
        if not self.dimensions:
            return 0.0
        return sum(d.score.numeric_value for d in self.dimensions) / len(self.dimensions)

    @property
    def overall_label(self) -> str:
        score = self.overall_score
        if score >= 0.75:
            return "Good"
        if score >= 0.4:
            return "Fair"
        return "Poor"

    @property
    def transcript_word_count(self) -> int:
        return _word_count(self.transcript)

    @property
    def summary_word_count(self) -> int:
        return _word_count(self.summary)

    @property
    def compression_ratio(self) -> float:
        """Summary words divided by transcript words."""
        if self.transcript_word_count == 0:
            return 0.0
        return self.summary_word_count / self.transcript_word_count

    @property
    def processing_time_sec(self) -> float:
        return self.processing_time_ms / 1000.0
