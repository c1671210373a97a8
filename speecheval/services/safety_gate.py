"""Content safety gate for transcripts.

Two tiers:
- Local pattern scan: regex only, no I/O, authoritative for recall
- Optional model scan: one isolated generation call whose findings are
  merged into the local violations

A failing model scan degrades to the local verdict and never fails the
caller; the verdict records the degrade in ``model_scan_degraded``.
"""

import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import structlog

from speecheval.models.generation import GenerationRequest
from speecheval.models.prompt import PromptTemplateSet
from speecheval.models.safety import SafetyCategory, SafetyVerdict, SafetyViolation, Severity
from speecheval.services.backend import GenerationBackend, GenerationError
from speecheval.services.logging_service import content_hash
from speecheval.services.output_parser import extract_json_object

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ContentPattern:
    """A local detection rule."""

    category: SafetyCategory
    pattern: re.Pattern
    explanation: str
    severity: Severity = Severity.HIGH


def content_rule(
    category: SafetyCategory,
    regex: str,
    explanation: str,
    severity: Severity = Severity.HIGH,
) -> ContentPattern:
    return ContentPattern(category, re.compile(regex, re.IGNORECASE), explanation, severity)


_SELF_HARM = "Content contains references to self-harm or harmful behavior."
_HATE = "Content contains language targeting individuals or groups."
_ILLEGAL = "Content contains references to illegal activities or instructions."
_EXPLICIT = "Content contains sexually explicit material."
_VULGAR = "Content contains strong profanity."

_GROUPS = r"(jews|muslims|christians|blacks|whites|asians|gays|immigrants|transgenders?)"

# Checked in this order; one violation per category is reported
CONTENT_PATTERNS: tuple[ContentPattern, ...] = (
    content_rule(
        SafetyCategory.SELF_HARM,
        r"(how\s+to|ways\s+to|methods?\s+(of|for))\s+(kill|hurt|harm)\s+(myself|yourself|oneself)",
        _SELF_HARM,
    ),
    content_rule(
        SafetyCategory.SELF_HARM,
        r"(i\s+want\s+to|going\s+to|plan\s+to)\s+(kill|end|harm)\s+(myself|my\s+life)",
        _SELF_HARM,
    ),
    content_rule(SafetyCategory.SELF_HARM, r"commit\s+suicide", _SELF_HARM),
    content_rule(
        SafetyCategory.SELF_HARM,
        r"(encourage|promote)\s+(self[- ]?harm|suicide|cutting)",
        _SELF_HARM,
    ),
    content_rule(
        SafetyCategory.HATE_SPEECH,
        rf"(kill|eliminate|exterminate|eradicate)\s+(all\s+)?{_GROUPS}",
        _HATE,
    ),
    content_rule(SafetyCategory.HATE_SPEECH, rf"(death\s+to|destroy)\s+(all\s+)?{_GROUPS}", _HATE),
    content_rule(SafetyCategory.HATE_SPEECH, r"(racial|ethnic)\s+cleansing", _HATE),
    content_rule(
        SafetyCategory.HATE_SPEECH,
        r"\b(nigg(er|a)s?|faggots?|kikes?|chinks?|spics?|wetbacks?|ragheads?|trann(y|ies))\b",
        _HATE,
    ),
    content_rule(
        SafetyCategory.ILLEGAL_INSTRUCTIONS,
        r"how\s+to\s+(make|build|create|construct)\s+(a\s+)?(bomb|explosive|weapon|gun)",
        _ILLEGAL,
    ),
    content_rule(
        SafetyCategory.ILLEGAL_INSTRUCTIONS,
        r"how\s+to\s+(hack|break\s+into|exploit)\s+(a\s+)?(bank|system|server|account)",
        _ILLEGAL,
    ),
    content_rule(
        SafetyCategory.ILLEGAL_INSTRUCTIONS,
        r"how\s+to\s+(cook|make|synthesize|produce)\s+(meth|cocaine|heroin|fentanyl)",
        _ILLEGAL,
    ),
    content_rule(
        SafetyCategory.EXPLICIT_CONTENT,
        r"\b(porn(o|ography|ographic)?|blow\s?jobs?|hand\s?jobs?)\b",
        _EXPLICIT,
    ),
    content_rule(
        SafetyCategory.EXPLICIT_CONTENT,
        r"\b(nude|naked)\s+(photos?|pics?|pictures?|videos?)\s+of\b",
        _EXPLICIT,
    ),
    content_rule(
        SafetyCategory.VULGARITY,
        r"\b(motherfuck\w*|fuck\w*|cunts?)\b",
        _VULGAR,
        Severity.MEDIUM,
    ),
)


def parse_category(raw: str) -> SafetyCategory:
    """Map a free-text category name from model output onto a SafetyCategory."""
    normalized = raw.lower().replace("_", " ").replace("-", " ")
    compact = normalized.replace(" ", "")
    if "vulgar" in normalized or "profan" in normalized:
        return SafetyCategory.VULGARITY
    if "hate" in normalized:
        return SafetyCategory.HATE_SPEECH
    if "selfharm" in compact or "suicide" in normalized:
        return SafetyCategory.SELF_HARM
    if "explicit" in normalized or "sexual" in normalized:
        return SafetyCategory.EXPLICIT_CONTENT
    if "illegal" in normalized or "weapon" in normalized or "drug" in normalized:
        return SafetyCategory.ILLEGAL_INSTRUCTIONS
    if "injection" in normalized or "prompt" in normalized:
        return SafetyCategory.PROMPT_INJECTION
    return SafetyCategory.VULGARITY


def parse_severity(raw: object, default: Severity = Severity.HIGH) -> Severity:
    try:
        return Severity(str(raw).strip().lower())
    except ValueError:
        return default


class TwoTierScanner(ABC):
    """Local pattern scan plus an optional model classification pass.

    Stateless apart from its injected collaborators, so one instance can
    serve concurrent runs.
    """

    name = "scan"
    model_scan_max_tokens = 256
    model_scan_temperature = 0.1

    def __init__(
        self,
        backend: Optional[GenerationBackend] = None,
        templates: Optional[PromptTemplateSet] = None,
    ) -> None:
        self.backend = backend
        self.templates = templates or PromptTemplateSet()

    @abstractmethod
    def local_violations(self, transcript: str) -> list[SafetyViolation]:
        """Pattern-match the transcript. Must not perform I/O."""

    @abstractmethod
    def model_request(self, transcript: str) -> GenerationRequest:
        """Build the isolated classification request."""

    @abstractmethod
    def parse_model_output(self, raw: str) -> list[SafetyViolation]:
        """Turn classification output into violations (empty when clean)."""

    def summarize(self, violations: list[SafetyViolation]) -> Optional[str]:
        """Verdict summary; None selects the default category listing."""
        return None

    def scan_local(self, transcript: str) -> SafetyVerdict:
        """Run only the local tier."""
        violations = self.local_violations(transcript)
        return SafetyVerdict.from_violations(violations, summary=self.summarize(violations))

    async def scan(self, transcript: str, use_model_scan: bool = False) -> SafetyVerdict:
        """Scan a transcript, optionally escalating to the model tier.

        The model tier only runs when the local tier passed; it can add
        violations but never removes local ones.
        """
        start_time = time.perf_counter()
        violations = self.local_violations(transcript)
        degraded = False

        if use_model_scan and not violations:
            model_violations = await self._model_scan(transcript)
            if model_violations is None:
                degraded = True
            else:
                violations.extend(model_violations)

        verdict = SafetyVerdict.from_violations(
            violations,
            summary=self.summarize(violations),
            model_scan_degraded=degraded,
        )
        logger.info(
            f"{self.name}_complete",
            content_hash=content_hash(transcript),
            content_length=len(transcript),
            is_safe=verdict.is_safe,
            categories=[c.value for c in verdict.categories],
            model_scan=use_model_scan,
            model_scan_degraded=degraded,
            latency_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return verdict

    async def _model_scan(self, transcript: str) -> Optional[list[SafetyViolation]]:
        """Returns None when the backend is unavailable or fails."""
        if self.backend is None or not self.backend.is_ready():
            logger.warning(f"{self.name}_model_scan_degraded", reason="backend_not_ready")
            return None
        try:
            response = await self.backend.generate(self.model_request(transcript))
        except GenerationError as e:
            logger.warning(
                f"{self.name}_model_scan_degraded",
                reason="generation_error",
                error_message=e.message,
            )
            return None
        return self.parse_model_output(response.text)


class SafetyGate(TwoTierScanner):
    """Scans transcripts for disallowed content categories."""

    name = "safety_scan"

    def local_violations(self, transcript: str) -> list[SafetyViolation]:
        violations: list[SafetyViolation] = []
        flagged: set[SafetyCategory] = set()
        for rule in CONTENT_PATTERNS:
            if rule.category in flagged:
                continue
            if rule.pattern.search(transcript):
                flagged.add(rule.category)
                violations.append(
                    SafetyViolation(
                        category=rule.category,
                        explanation=rule.explanation,
                        severity=rule.severity,
                    )
                )
        return violations

    def model_request(self, transcript: str) -> GenerationRequest:
        return GenerationRequest(
            user_content=f"Analyze this transcript for safety:\n\n{transcript}",
            system_instruction=self.templates.global_safety,
            max_tokens=self.model_scan_max_tokens,
            temperature=self.model_scan_temperature,
            isolated=True,
        )

    def parse_model_output(self, raw: str) -> list[SafetyViolation]:
        obj = extract_json_object(raw)
        if obj is None:
            logger.warning("safety_model_output_unparseable", content_length=len(raw))
            return []
        is_safe = obj.get("is_safe", True)
        if is_safe is True or str(is_safe).strip().lower() == "true":
            return []

        violations = []
        for item in obj.get("violations") or []:
            if not isinstance(item, dict):
                continue
            violations.append(
                SafetyViolation(
                    category=parse_category(str(item.get("type", ""))),
                    explanation=str(item.get("explanation") or "Unsafe content detected."),
                    severity=parse_severity(item.get("severity")),
                )
            )
        if not violations:
            # Flagged without details; keep the model's decision
            violations.append(
                SafetyViolation(
                    category=SafetyCategory.VULGARITY,
                    explanation=str(obj.get("summary") or "Content flagged by safety scan."),
                )
            )
        return violations
