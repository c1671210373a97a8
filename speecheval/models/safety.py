"""Safety verdict models produced by the safety gate and injection guard."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SafetyCategory(str, Enum):
    """Categories of disallowed transcript content."""

    VULGARITY = "vulgarity"
    HATE_SPEECH = "hateSpeech"
    SELF_HARM = "selfHarm"
    EXPLICIT_CONTENT = "explicitContent"
    ILLEGAL_INSTRUCTIONS = "illegalInstructions"
    PROMPT_INJECTION = "promptInjection"

    @property
    def label(self) -> str:
        """Human-readable category label."""
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    SafetyCategory.VULGARITY: "Vulgarity / Profanity",
    SafetyCategory.HATE_SPEECH: "Hate Speech",
    SafetyCategory.SELF_HARM: "Self-Harm References",
    SafetyCategory.EXPLICIT_CONTENT: "Explicit Content",
    SafetyCategory.ILLEGAL_INSTRUCTIONS: "Illegal Instructions",
    SafetyCategory.PROMPT_INJECTION: "Prompt Injection Attempt",
}


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SafetyViolation(BaseModel):
    """A single detected violation.

    The explanation describes what was detected without repeating the
    offending content.
    """

    model_config = ConfigDict(frozen=True)

    category: SafetyCategory
    explanation: str
    severity: Severity = Severity.HIGH


CLEAN_SUMMARY = "No safety issues detected."


class SafetyVerdict(BaseModel):
    """Outcome of a safety or injection scan.

    Attributes:
        is_safe: True exactly when no violations were found
        violations: Ordered list of violations (local scan first)
        summary: One-sentence description of the outcome
        model_scan_degraded: The optional model scan was requested but the
            backend failed, so only the local scan contributed
    """

    model_config = ConfigDict(frozen=True)

    is_safe: bool
    violations: tuple[SafetyViolation, ...] = Field(default_factory=tuple)
    summary: str = CLEAN_SUMMARY
    model_scan_degraded: bool = False

    @model_validator(mode="after")
    def safe_iff_no_violations(self) -> "SafetyVerdict":
        """Require is_safe to match the absence of violations."""
        if self.is_safe != (len(self.violations) == 0):
            raise ValueError(
                f"is_safe={self.is_safe} does not match {len(self.violations)} violation(s)"
            )
        return self

    @classmethod
    def clean(cls, model_scan_degraded: bool = False) -> "SafetyVerdict":
        """A passing verdict."""
        return cls(is_safe=True, model_scan_degraded=model_scan_degraded)

    @classmethod
    def from_violations(
        cls,
        violations: list[SafetyViolation],
        summary: str | None = None,
        model_scan_degraded: bool = False,
    ) -> "SafetyVerdict":
        """Build a verdict whose safety follows from the violation list."""
        if not violations:
            return cls.clean(model_scan_degraded=model_scan_degraded)
        if summary is None:
            labels = []
            for violation in violations:
                if violation.category.label not in labels:
                    labels.append(violation.category.label)
            summary = f"Content flagged for {', '.join(labels)}."
        return cls(
            is_safe=False,
            violations=tuple(violations),
            summary=summary,
            model_scan_degraded=model_scan_degraded,
        )

    @property
    def categories(self) -> list[SafetyCategory]:
        """Distinct violation categories in detection order."""
        seen: list[SafetyCategory] = []
        for violation in self.violations:
            if violation.category not in seen:
                seen.append(violation.category)
        return seen
