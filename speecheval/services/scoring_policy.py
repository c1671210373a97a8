"""Scoring rubric for clarity of thought and language proficiency.

Pure data and lookups, no I/O. The orchestrator uses the ceiling rules to
instruct the backend; the output parser uses the range to clamp whatever
numbers come back.
"""

from dataclasses import dataclass

MIN_SCORE = 1
MAX_SCORE = 10
MAX_TOTAL_SCORE = 2 * MAX_SCORE

# Combined (0-20) score thresholds, highest first
TOTAL_LABELS: list[tuple[int, str]] = [
    (18, "Excellent"),
    (15, "Good"),
    (12, "Above Average"),
    (9, "Average"),
    (6, "Below Average"),
    (0, "Needs Improvement"),
]


@dataclass(frozen=True)
class CeilingRule:
    """A defect that caps one axis of the score."""

    axis: str  # "clarity" or "language"
    defect: str
    ceiling: int

    def as_instruction(self) -> str:
        name = "Clarity" if self.axis == "clarity" else "Language"
        return f"- If {self.defect} → {name} MUST be {self.ceiling} or below."


CEILING_RULES: tuple[CeilingRule, ...] = (
    CeilingRule(
        axis="clarity",
        defect=(
            "the speaker repeats themselves, uses filler words (um, uh, like, you know), "
            "or rambles without structure"
        ),
        ceiling=5,
    ),
    CeilingRule(
        axis="language",
        defect=(
            "the speaker makes grammar mistakes, uses wrong tenses, or has broken sentences"
        ),
        ceiling=5,
    ),
    CeilingRule(
        axis="clarity",
        defect="the speech lacks a clear introduction and conclusion",
        ceiling=6,
    ),
    CeilingRule(
        axis="language",
        defect="vocabulary is basic and repetitive (same words used again and again)",
        ceiling=6,
    ),
)

# Band descriptions per axis, highest band first
CLARITY_BANDS: tuple[tuple[str, str], ...] = (
    ("9-10", "Exceptionally well-structured, engaging, professional presentation."),
    ("7-8", "Good structure, minor gaps, overall cohesive."),
    ("5-6", "Moderate structure, some disjointed ideas, lacks clear organization."),
    ("3-4", "Poor structure, no logical flow, ideas jump around randomly."),
    ("1-2", "Incoherent, no structure, impossible to follow."),
)

LANGUAGE_BANDS: tuple[tuple[str, str], ...] = (
    ("9-10", "Excellent grammar, rich vocabulary, completely fluent."),
    ("7-8", "Good grammar and vocabulary, minor errors, proficient."),
    ("5-6", "Moderate grammar, noticeable errors, basic but functional vocabulary."),
    ("3-4", "Frequent grammar mistakes, limited vocabulary, halting speech."),
    ("1-2", "Major errors throughout, extremely limited English, hard to understand."),
)


def clamp_score(value: float) -> int:
    """Round a model-supplied score and clamp it into [MIN_SCORE, MAX_SCORE]."""
    return int(min(max(round(value), MIN_SCORE), MAX_SCORE))


def total_to_label(total: float) -> str:
    """Get the qualitative label for a combined 0-20 score."""
    for threshold, label in TOTAL_LABELS:
        if total >= threshold:
            return label
    return TOTAL_LABELS[-1][1]


def ceiling_instructions() -> str:
    """Render every ceiling rule as a prompt bullet list."""
    return "\n".join(rule.as_instruction() for rule in CEILING_RULES)


def band_instructions(bands: tuple[tuple[str, str], ...]) -> str:
    return "\n".join(f"{score_range}: {text}" for score_range, text in bands)
