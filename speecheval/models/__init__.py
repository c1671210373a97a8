"""Models package exports."""

from speecheval.models.evaluation import (
    BenchmarkDimension,
    BenchmarkResult,
    BenchmarkScore,
    EvaluationResult,
)
from speecheval.models.events import (
    Completed,
    PipelineError,
    PipelineEvent,
    SafetyBlocked,
    Stage,
    StageCompleted,
    StageStarted,
)
from speecheval.models.generation import GenerationRequest, GenerationResponse, StopReason
from speecheval.models.prompt import BenchmarkPrompt, PipelineOptions, PromptTemplateSet
from speecheval.models.safety import SafetyCategory, SafetyVerdict, SafetyViolation, Severity

__all__ = [
    "BenchmarkDimension",
    "BenchmarkPrompt",
    "BenchmarkResult",
    "BenchmarkScore",
    "Completed",
    "EvaluationResult",
    "GenerationRequest",
    "GenerationResponse",
    "PipelineError",
    "PipelineEvent",
    "PipelineOptions",
    "PromptTemplateSet",
    "SafetyBlocked",
    "SafetyCategory",
    "SafetyVerdict",
    "SafetyViolation",
    "Severity",
    "Stage",
    "StageCompleted",
    "StageStarted",
    "StopReason",
]
