"""Evaluate request model with validation."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from speecheval.config import get_settings
from speecheval.models.prompt import BUILT_IN_PROMPTS, PipelineOptions, get_built_in_prompt


class EvaluateRequest(BaseModel):
    """Incoming request to evaluate a transcript.

    Attributes:
        transcript: Text produced upstream by speech-to-text (max 50000 chars)
        prompt_id: Built-in summarization preset id (optional, defaults to 'general')
        recording_duration_seconds: Length of the source recording
        include_rubric: Override for the summary-quality rubric (optional)
        include_evaluation: Override for clarity/language scoring (optional)
        enable_injection_guard: Override for the injection scan (optional)
        use_model_safety_scan: Override for the model-backed safety scan (optional)
    """

    transcript: str = Field(default="", max_length=50000)
    prompt_id: str = Field(default="general", max_length=64)
    recording_duration_seconds: int = Field(default=0, ge=0)
    include_rubric: Optional[bool] = None
    include_evaluation: Optional[bool] = None
    enable_injection_guard: Optional[bool] = None
    use_model_safety_scan: Optional[bool] = None

    @field_validator("prompt_id")
    @classmethod
    def prompt_id_known(cls, v: str) -> str:
        """Validate prompt_id names a built-in preset."""
        known = [p.id for p in BUILT_IN_PROMPTS]
        if v not in known:
            raise ValueError(f"prompt_id must be one of {known}")
        return v

    def to_options(self) -> PipelineOptions:
        """Build run options, falling back to config defaults."""
        settings = get_settings()

        def pick(value: Optional[bool], default: bool) -> bool:
            return default if value is None else value

        return PipelineOptions(
            include_rubric=pick(self.include_rubric, settings.include_rubric),
            include_evaluation=pick(self.include_evaluation, settings.include_evaluation),
            enable_injection_guard=pick(
                self.enable_injection_guard, settings.enable_injection_guard
            ),
            use_model_safety_scan=pick(self.use_model_safety_scan, settings.use_model_safety_scan),
            use_model_injection_scan=settings.use_model_injection_scan,
            prompt=get_built_in_prompt(self.prompt_id),
            recording_duration_seconds=self.recording_duration_seconds,
        )
