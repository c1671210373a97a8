"""Prompt configuration models: summary presets, template sets, run options."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from speecheval.prompts.defaults import PROMPT_DEFAULTS


class BenchmarkMode(str, Enum):
    """Kind of analysis a summary preset asks for."""

    GENERAL_SUMMARY = "generalSummary"
    GOALS_AND_ACTIONS = "goalsAndActions"
    TECHNICAL_SUMMARY = "technicalSummary"
    EVALUATION = "evaluation"


class BenchmarkPrompt(BaseModel):
    """A summarization preset whose instruction drives the summary task."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., pattern=r"^[a-z0-9-]+$")
    name: str
    instruction: str = Field(..., min_length=1)
    mode: BenchmarkMode
    is_built_in: bool = False
    version: int = Field(default=1, ge=1)


BUILT_IN_PROMPTS: tuple[BenchmarkPrompt, ...] = (
    BenchmarkPrompt(
        id="general",
        name="General Summary",
        instruction=(
            "Summarize the following content clearly and concisely for a general audience. "
            "Preserve the key points and main ideas. Use clear, simple language."
        ),
        mode=BenchmarkMode.GENERAL_SUMMARY,
        is_built_in=True,
    ),
    BenchmarkPrompt(
        id="goals",
        name="Goals & Actions",
        instruction=(
            "Analyze the following content and extract:\n"
            "1. Goals mentioned\n"
            "2. Concerns raised\n"
            "3. Action items identified\n"
            "Present each category clearly with bullet points."
        ),
        mode=BenchmarkMode.GOALS_AND_ACTIONS,
        is_built_in=True,
    ),
    BenchmarkPrompt(
        id="technical",
        name="Technical Summary",
        instruction=(
            "Produce a technical summary of the following content. "
            "Focus on specific details, methodologies, and technical concepts mentioned. "
            "Use precise language and maintain technical accuracy."
        ),
        mode=BenchmarkMode.TECHNICAL_SUMMARY,
        is_built_in=True,
    ),
    BenchmarkPrompt(
        id="evaluation",
        name="Content Evaluation",
        instruction=(
            "Evaluate the following content for:\n"
            "- Coherence: How well-structured is the content?\n"
            "- Relevance: Is the content focused and on-topic?\n"
            "- Clarity: How clearly are ideas expressed?\n"
            "Provide a brief assessment for each dimension."
        ),
        mode=BenchmarkMode.EVALUATION,
        is_built_in=True,
    ),
)


def get_built_in_prompt(prompt_id: str) -> BenchmarkPrompt:
    """Look up a built-in preset by id.

    Raises:
        KeyError: If no built-in preset has that id
    """
    for prompt in BUILT_IN_PROMPTS:
        if prompt.id == prompt_id:
            return prompt
    raise KeyError(f"Unknown benchmark prompt: {prompt_id}")


class PromptTemplateSet(BaseModel):
    """All system prompt text a pipeline run needs.

    Injected into the orchestrator at construction so prompt text can be
    swapped per deployment or per test.
    """

    model_config = ConfigDict(frozen=True)

    key_ideas_summary: str = PROMPT_DEFAULTS["key-ideas-summary"]
    summary_rubric: str = PROMPT_DEFAULTS["summary-rubric"]
    evaluation: str = PROMPT_DEFAULTS["evaluation"]
    merged_evaluation: str = PROMPT_DEFAULTS["merged-evaluation"]
    global_safety: str = PROMPT_DEFAULTS["global-safety"]
    injection_guard: str = PROMPT_DEFAULTS["injection-guard"]
    versions: dict[str, int] = Field(default_factory=dict)


class PipelineOptions(BaseModel):
    """Per-run options.

    Attributes:
        include_rubric: Score summary quality against the five-dimension rubric
        include_evaluation: Score transcript clarity and language proficiency
        enable_injection_guard: Scan for prompt-injection attempts
        use_model_safety_scan: Add a backend classification pass to the safety scan
        use_model_injection_scan: Add a backend classification pass to the injection scan
        prompt: Summarization preset
        recording_duration_seconds: Length of the source recording
    """

    model_config = ConfigDict(frozen=True)

    include_rubric: bool = True
    include_evaluation: bool = True
    enable_injection_guard: bool = True
    use_model_safety_scan: bool = False
    use_model_injection_scan: bool = False
    prompt: BenchmarkPrompt = BUILT_IN_PROMPTS[0]
    recording_duration_seconds: int = Field(default=0, ge=0)

    @property
    def evaluation_requested(self) -> bool:
        return self.include_rubric or self.include_evaluation
