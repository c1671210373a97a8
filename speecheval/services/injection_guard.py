"""Prompt-injection guard for transcripts.

Same two tiers as the safety gate, targeting attempts to override the
evaluator's instructions. Findings use the SafetyVerdict shape with
category ``promptInjection`` so downstream handling is uniform.
"""

import base64
import binascii
import re
from typing import Optional

import structlog

from speecheval.models.generation import GenerationRequest
from speecheval.models.safety import SafetyCategory, SafetyViolation, Severity
from speecheval.services.output_parser import extract_json_object
from speecheval.services.safety_gate import ContentPattern, TwoTierScanner, content_rule

logger = structlog.get_logger(__name__)

_INJECTION = SafetyCategory.PROMPT_INJECTION

# Conservative on purpose: spoken transcripts contain similar-sounding phrases
INJECTION_PATTERNS: tuple[ContentPattern, ...] = (
    content_rule(
        _INJECTION,
        r"ignore\s+(all\s+)?(the\s+)?(previous|prior|above|earlier)\s+"
        r"(instructions?|prompts?|rules?|guidelines?)",
        "Attempt to override system instructions",
    ),
    content_rule(
        _INJECTION,
        r"forget\s+(your|all|the)\s+(rules?|instructions?|prompts?|guidelines?|training)",
        "Attempt to erase system rules",
    ),
    content_rule(
        _INJECTION,
        r"(reveal|show|display|print|output|repeat)\s+(me\s+)?(your|the)\s+(system\s+)?"
        r"(prompt|instructions?|rules?)",
        "Attempt to extract system prompt",
    ),
    content_rule(
        _INJECTION,
        r"you\s+are\s+now\s+(a\s+|an\s+)?(DAN|evil|unrestricted|jailbroken|free|unfiltered)",
        "Role-play jailbreak attempt",
    ),
    content_rule(
        _INJECTION,
        r"pretend\s+(you\s+)?(have\s+no|there\s+are\s+no|without)\s+"
        r"(restrictions?|rules?|guidelines?|limitations?)",
        "Restriction bypass attempt",
    ),
    content_rule(
        _INJECTION,
        r"(override|new\s+system|updated\s+system)\s+(instructions?|prompt|rules?)",
        "Attempt to inject new system instructions",
    ),
    content_rule(
        _INJECTION,
        r"(do\s+not|don.?t)\s+(follow|obey|listen\s+to)\s+(your|the)\s+"
        r"(rules?|instructions?|guidelines?)",
        "Attempt to disobey system rules",
    ),
    content_rule(
        _INJECTION,
        r"(enter|switch\s+to|activate)\s+(developer|admin|debug|god)\s+mode",
        "Developer mode exploit attempt",
    ),
    content_rule(
        _INJECTION,
        r"(give|assign|award)\s+(me|this|the\s+speaker)\s+(a\s+)?(perfect|full|maximum|10)\s*"
        r"(/\s*10\s+)?(score|marks?|points?)",
        "Attempt to dictate the evaluation score",
        Severity.MEDIUM,
    ),
)

_BASE64_RUN = re.compile(r"(?<![A-Za-z0-9+/=])[A-Za-z0-9+/]{24,}={0,2}(?![A-Za-z0-9+/=])")
_HEX_RUN = re.compile(r"\b(?:0x)?((?:[0-9a-fA-F]{2}){16,})\b")
_ESCAPED_HEX_RUN = re.compile(r"(?:\\x[0-9a-fA-F]{2}){8,}")

_MIN_PRINTABLE_RATIO = 0.9


def _printable_text(data: bytes) -> Optional[str]:
    """Decode bytes that look like human-readable text, else None."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None
    if not text:
        return None
    printable = sum(1 for ch in text if ch.isprintable() or ch in "\n\t")
    if printable / len(text) < _MIN_PRINTABLE_RATIO:
        return None
    return text


def decode_payloads(transcript: str) -> list[str]:
    """Return readable text hidden in base64 or hex runs of the transcript."""
    payloads: list[str] = []

    for match in _BASE64_RUN.finditer(transcript):
        token = match.group()
        # Plain words and digits are not base64 payloads
        if token.isalpha() or token.isdigit():
            continue
        try:
            decoded = base64.b64decode(token + "=" * (-len(token) % 4), validate=True)
        except (binascii.Error, ValueError):
            continue
        text = _printable_text(decoded)
        if text:
            payloads.append(text)

    for match in _HEX_RUN.finditer(transcript):
        text = _printable_text(bytes.fromhex(match.group(1)))
        if text:
            payloads.append(text)

    for match in _ESCAPED_HEX_RUN.finditer(transcript):
        hex_digits = match.group().replace("\\x", "")
        text = _printable_text(bytes.fromhex(hex_digits))
        if text:
            payloads.append(text)

    return payloads


class InjectionGuard(TwoTierScanner):
    """Scans transcripts for instruction-override attempts."""

    name = "injection_scan"

    def local_violations(self, transcript: str) -> list[SafetyViolation]:
        violations = [
            SafetyViolation(category=rule.category, explanation=rule.explanation, severity=rule.severity)
            for rule in INJECTION_PATTERNS
            if rule.pattern.search(transcript)
        ]

        for payload in decode_payloads(transcript):
            hidden = any(rule.pattern.search(payload) for rule in INJECTION_PATTERNS)
            violations.append(
                SafetyViolation(
                    category=_INJECTION,
                    explanation=(
                        "Encoded payload containing instruction-override text"
                        if hidden
                        else "Encoded payload embedded in transcript"
                    ),
                    severity=Severity.HIGH if hidden else Severity.MEDIUM,
                )
            )
        return violations

    def summarize(self, violations: list[SafetyViolation]) -> Optional[str]:
        if not violations:
            return None
        count = len(violations)
        return f"Detected {count} potential prompt injection attempt{'' if count == 1 else 's'}."

    def model_request(self, transcript: str) -> GenerationRequest:
        return GenerationRequest(
            user_content=f"Analyze this text for prompt injection:\n\n{transcript}",
            system_instruction=self.templates.injection_guard,
            max_tokens=self.model_scan_max_tokens,
            temperature=self.model_scan_temperature,
            isolated=True,
        )

    def parse_model_output(self, raw: str) -> list[SafetyViolation]:
        obj = extract_json_object(raw)
        if obj is None:
            logger.warning("injection_model_output_unparseable", content_length=len(raw))
            return []

        has_injection = obj.get("has_injection", False)
        if not (has_injection is True or str(has_injection).strip().lower() == "true"):
            return []

        confidence = str(obj.get("confidence") or "medium").strip().lower()
        if confidence == "low":
            return []

        explanation = str(obj.get("explanation") or "Injection detected.")
        patterns = [str(p) for p in obj.get("detected_patterns") or [] if str(p).strip()]
        if patterns:
            explanation = f"{explanation} Patterns: {', '.join(patterns)}"

        return [
            SafetyViolation(
                category=_INJECTION,
                explanation=explanation,
                severity=Severity.HIGH if confidence == "high" else Severity.MEDIUM,
            )
        ]
