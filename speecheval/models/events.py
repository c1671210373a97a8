"""Pipeline stages and the events a run emits to its caller."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional, Union

from speecheval.models.evaluation import BenchmarkResult
from speecheval.models.safety import SafetyVerdict


class Stage(str, Enum):
    """Ordered phases of a pipeline run."""

    TRANSCRIBING = "transcribing"
    SAFETY_SCAN = "safetyScan"
    EXTRACTING_KEY_IDEAS_AND_SUMMARIZING = "extractingKeyIdeasAndSummarizing"
    EVALUATING_SUMMARY_AND_TRANSCRIPT = "evaluatingSummaryAndTranscript"

    @property
    def label(self) -> str:
        """Progress label shown while the stage runs."""
        return _STAGE_LABELS[self]


_STAGE_LABELS = {
    Stage.TRANSCRIBING: "Transcribing audio…",
    Stage.SAFETY_SCAN: "Checking content safety…",
    Stage.EXTRACTING_KEY_IDEAS_AND_SUMMARIZING: "Extracting key ideas and summarizing…",
    Stage.EVALUATING_SUMMARY_AND_TRANSCRIPT: "Evaluating summary and transcript…",
}


@dataclass(frozen=True)
class StageStarted:
    stage: Stage
    kind: Literal["stage_started"] = "stage_started"


@dataclass(frozen=True)
class StageCompleted:
    stage: Stage
    result_summary: str
    kind: Literal["stage_completed"] = "stage_completed"


@dataclass(frozen=True)
class SafetyBlocked:
    """The transcript failed the safety stage; the run ends here.

    This is an intended outcome, not a fault.
    """

    verdict: SafetyVerdict
    kind: Literal["safety_blocked"] = "safety_blocked"


@dataclass(frozen=True)
class Completed:
    result: BenchmarkResult
    kind: Literal["completed"] = "completed"


@dataclass(frozen=True)
class PipelineError:
    message: str
    failed_stage: Optional[Stage] = None
    kind: Literal["error"] = "error"


PipelineEvent = Union[StageStarted, StageCompleted, SafetyBlocked, Completed, PipelineError]


def event_to_dict(event: PipelineEvent) -> dict:
    """Serialize an event into a JSON-compatible dict."""
    if isinstance(event, StageStarted):
        return {"type": event.kind, "stage": event.stage.value, "label": event.stage.label}
    if isinstance(event, StageCompleted):
        return {
            "type": event.kind,
            "stage": event.stage.value,
            "result_summary": event.result_summary,
        }
    if isinstance(event, SafetyBlocked):
        return {"type": event.kind, "verdict": event.verdict.model_dump(mode="json")}
    if isinstance(event, Completed):
        return {"type": event.kind, "result": event.result.model_dump(mode="json")}
    if isinstance(event, PipelineError):
        return {
            "type": event.kind,
            "message": event.message,
            "failed_stage": event.failed_stage.value if event.failed_stage else None,
        }
    raise TypeError(f"Unknown pipeline event: {type(event).__name__}")
