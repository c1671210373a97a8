"""Evaluation pipeline orchestrator.

Turns a transcript into a BenchmarkResult through four ordered stages and
streams progress events to a single consumer:

    transcribing ─► safetyScan ─► extractingKeyIdeasAndSummarizing ─► evaluatingSummaryAndTranscript

Generation calls within a run are strictly sequential. Independent
sub-tasks are merged into one prompt per stage (key ideas + summary, then
rubric + evaluation) to keep the number of round-trips at two.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Optional

import structlog

from speecheval.models.evaluation import BenchmarkDimension, BenchmarkResult, EvaluationResult
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
from speecheval.models.prompt import PipelineOptions, PromptTemplateSet
from speecheval.models.safety import SafetyVerdict
from speecheval.services.backend import GenerationBackend, GenerationError
from speecheval.services.injection_guard import InjectionGuard
from speecheval.services.logging_service import content_hash
from speecheval.services.output_parser import (
    parse_dimensions,
    parse_evaluation,
    parse_key_ideas_and_summary,
    split_rubric_and_evaluation,
)
from speecheval.services.safety_gate import SafetyGate

logger = structlog.get_logger(__name__)

EMPTY_TRANSCRIPT_MESSAGE = "empty transcript"


class EmptyTranscriptError(ValueError):
    """The transcript is empty or whitespace-only."""

    def __init__(self) -> None:
        super().__init__(EMPTY_TRANSCRIPT_MESSAGE)


class RunState(str, Enum):
    IDLE = "idle"
    TRANSCRIBED = "transcribed"
    SAFETY_CHECKED = "safetyChecked"
    IDEAS_AND_SUMMARY_READY = "ideasAndSummaryReady"
    EVALUATED = "evaluated"
    DONE = "done"
    BLOCKED = "blocked"
    FAILED = "failed"


_VALID_TRANSITIONS: dict[RunState, tuple[RunState, ...]] = {
    RunState.IDLE: (RunState.TRANSCRIBED, RunState.FAILED),
    RunState.TRANSCRIBED: (RunState.SAFETY_CHECKED, RunState.FAILED),
    RunState.SAFETY_CHECKED: (
        RunState.IDEAS_AND_SUMMARY_READY,
        RunState.BLOCKED,
        RunState.FAILED,
    ),
    # DONE directly when no evaluation sub-task is enabled
    RunState.IDEAS_AND_SUMMARY_READY: (RunState.EVALUATED, RunState.DONE, RunState.FAILED),
    RunState.EVALUATED: (RunState.DONE, RunState.FAILED),
    RunState.DONE: (),
    RunState.BLOCKED: (),
    RunState.FAILED: (),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a run attempts a transition outside the transition map."""

    def __init__(self, from_state: RunState, to_state: RunState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition {from_state.value} → {to_state.value}")


class PipelineRun:
    """Mutable state of one run. Owned exclusively by that run."""

    def __init__(self, transcript: str, options: PipelineOptions) -> None:
        self.transcript = transcript
        self.options = options
        self.state = RunState.IDLE
        self.stage: Optional[Stage] = None
        self.cancelled = False
        self.generation_calls = 0
        self.started_at = time.perf_counter()

    def transition(self, to_state: RunState) -> None:
        if to_state not in _VALID_TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state, to_state)
        logger.debug("run_transition", from_state=self.state.value, to_state=to_state.value)
        self.state = to_state

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)


def validate_transcript(transcript: str) -> str:
    """Reject empty input before any stage runs.

    Raises:
        EmptyTranscriptError: If the transcript has no non-whitespace text
    """
    if transcript is None or not transcript.strip():
        raise EmptyTranscriptError()
    return transcript


class PipelineOrchestrator:
    """Coordinates safety gating, generation and parsing for transcripts.

    Stateless between runs; each call to ``run`` owns its own PipelineRun.
    Runs sharing one backend must not overlap unless the backend queues.
    """

    key_ideas_max_tokens = 896
    key_ideas_temperature = 0.5
    merged_evaluation_max_tokens = 896
    rubric_max_tokens = 384
    rubric_temperature = 0.3
    evaluation_max_tokens = 512
    evaluation_temperature = 0.2

    def __init__(
        self,
        backend: GenerationBackend,
        templates: Optional[PromptTemplateSet] = None,
        safety_gate: Optional[SafetyGate] = None,
        injection_guard: Optional[InjectionGuard] = None,
    ) -> None:
        self.backend = backend
        self.templates = templates or PromptTemplateSet()
        self.safety_gate = safety_gate or SafetyGate(backend, self.templates)
        self.injection_guard = injection_guard or InjectionGuard(backend, self.templates)
        self._active_runs: set[PipelineRun] = set()

    def cancel(self) -> None:
        """Stop active runs. Their event streams end without a terminal event."""
        for run in self._active_runs:
            run.cancelled = True
        if self._active_runs:
            self.backend.cancel()

    async def run(
        self, transcript: str, options: Optional[PipelineOptions] = None
    ) -> AsyncIterator[PipelineEvent]:
        """Run the pipeline, yielding events in causal order.

        The final event is Completed, SafetyBlocked or PipelineError, unless
        the run is cancelled, in which case the stream simply ends.
        """
        run = PipelineRun(transcript, options or PipelineOptions())

        try:
            validate_transcript(transcript)
        except EmptyTranscriptError as e:
            run.transition(RunState.FAILED)
            logger.warning("pipeline_rejected", reason=str(e))
            yield PipelineError(str(e))
            return

        self._active_runs.add(run)
        structlog.contextvars.bind_contextvars(content_hash=content_hash(transcript))
        logger.info(
            "pipeline_started",
            content_length=len(transcript),
            include_rubric=run.options.include_rubric,
            include_evaluation=run.options.include_evaluation,
            injection_guard=run.options.enable_injection_guard,
            prompt_id=run.options.prompt.id,
        )
        try:
            async for event in self._run_stages(run):
                yield event
        except Exception as e:
            logger.error(
                "pipeline_error",
                stage=run.stage.value if run.stage else None,
                state=run.state.value,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            raise
        finally:
            self._active_runs.discard(run)
            logger.info(
                "pipeline_finished",
                state=run.state.value,
                cancelled=run.cancelled,
                generation_calls=run.generation_calls,
                duration_ms=run.elapsed_ms,
            )
            structlog.contextvars.unbind_contextvars("content_hash")

    async def _run_stages(self, run: PipelineRun) -> AsyncIterator[PipelineEvent]:
        # No event follows cancel(), including one issued while paused at a yield
        options = run.options

        # Stage 1: transcription already happened upstream
        run.stage = Stage.TRANSCRIBING
        yield StageStarted(Stage.TRANSCRIBING)
        if run.cancelled:
            return
        run.transition(RunState.TRANSCRIBED)
        yield StageCompleted(Stage.TRANSCRIBING, run.transcript)
        if run.cancelled:
            return

        # Stage 2: safety gate, absolute
        run.stage = Stage.SAFETY_SCAN
        yield StageStarted(Stage.SAFETY_SCAN)
        if run.cancelled:
            return
        verdict = await self._safety_check(run)
        if run.cancelled:
            return
        run.transition(RunState.SAFETY_CHECKED)
        yield StageCompleted(Stage.SAFETY_SCAN, verdict.summary)
        if run.cancelled:
            return
        if not verdict.is_safe:
            run.transition(RunState.BLOCKED)
            logger.warning(
                "pipeline_blocked",
                categories=[c.value for c in verdict.categories],
                violation_count=len(verdict.violations),
            )
            yield SafetyBlocked(verdict)
            return

        # Stage 3: key ideas + summary in one call; cannot degrade
        run.stage = Stage.EXTRACTING_KEY_IDEAS_AND_SUMMARIZING
        yield StageStarted(run.stage)
        if run.cancelled:
            return
        try:
            response = await self._generate(run, self._key_ideas_request(run))
        except GenerationError as e:
            if run.cancelled:
                return
            run.transition(RunState.FAILED)
            yield PipelineError(
                f"Failed to extract key ideas and summary: {e.message}",
                failed_stage=run.stage,
            )
            return
        if run.cancelled or response.stop_reason == StopReason.CANCELLED:
            return
        sections = parse_key_ideas_and_summary(response.text)
        key_ideas, summary = sections.first, sections.second
        logger.info("key_ideas_summary_parsed", strategy=sections.strategy)
        run.transition(RunState.IDEAS_AND_SUMMARY_READY)
        yield StageCompleted(run.stage, summary)
        if run.cancelled:
            return

        # Stage 4: merged rubric / evaluation; degrades instead of failing
        dimensions: list[BenchmarkDimension] = []
        evaluation: Optional[EvaluationResult] = None
        if options.evaluation_requested:
            run.stage = Stage.EVALUATING_SUMMARY_AND_TRANSCRIPT
            yield StageStarted(run.stage)
            if run.cancelled:
                return
            try:
                response = await self._generate(run, self._evaluation_request(run, summary))
            except GenerationError as e:
                if run.cancelled:
                    return
                logger.warning("evaluation_degraded", error_message=e.message)
                if options.include_evaluation:
                    evaluation = EvaluationResult.parse_error(
                        raw_output=f"Generation failed: {e.message}"
                    )
            else:
                if run.cancelled or response.stop_reason == StopReason.CANCELLED:
                    return
                dimensions, evaluation = self._parse_evaluation_stage(options, response.text)
            run.transition(RunState.EVALUATED)
            yield StageCompleted(run.stage, _evaluation_summary(dimensions, evaluation))
            if run.cancelled:
                return

        # Stage 5: assemble
        result = BenchmarkResult(
            transcript=run.transcript,
            key_ideas=key_ideas,
            summary=summary,
            dimensions=tuple(dimensions),
            safety_result=verdict,
            evaluation_result=evaluation,
            recording_duration_seconds=options.recording_duration_seconds,
            processing_time_ms=run.elapsed_ms,
            prompt_used=options.prompt.instruction,
            completed_at=datetime.now(timezone.utc),
        )
        run.transition(RunState.DONE)
        yield Completed(result)

    async def _safety_check(self, run: PipelineRun) -> SafetyVerdict:
        """Injection guard (when enabled) then content gate, folded into one verdict."""
        options = run.options
        injection = SafetyVerdict.clean()
        if options.enable_injection_guard:
            injection = await self.injection_guard.scan(
                run.transcript, use_model_scan=options.use_model_injection_scan
            )
            if run.cancelled:
                return injection

        # Already blocked: the content model scan cannot change the outcome
        content = await self.safety_gate.scan(
            run.transcript,
            use_model_scan=options.use_model_safety_scan and injection.is_safe,
        )

        degraded = injection.model_scan_degraded or content.model_scan_degraded
        if injection.is_safe:
            return content.model_copy(update={"model_scan_degraded": degraded})
        if content.is_safe:
            return injection.model_copy(update={"model_scan_degraded": degraded})
        return SafetyVerdict.from_violations(
            list(injection.violations) + list(content.violations),
            model_scan_degraded=degraded,
        )

    async def _generate(self, run: PipelineRun, request: GenerationRequest) -> GenerationResponse:
        if not self.backend.is_ready():
            raise GenerationError("Generation backend is not ready")
        run.generation_calls += 1
        response = await self.backend.generate(request)
        if response.stop_reason != StopReason.CANCELLED and not response.text.strip():
            raise GenerationError("Generation returned no text")
        return response

    def _key_ideas_request(self, run: PipelineRun) -> GenerationRequest:
        system_instruction = self.templates.key_ideas_summary.replace(
            "{summary_instruction}", run.options.prompt.instruction
        )
        return GenerationRequest(
            user_content=f"Content to process:\n\n{run.transcript}",
            system_instruction=system_instruction,
            max_tokens=self.key_ideas_max_tokens,
            temperature=self.key_ideas_temperature,
            isolated=True,
        )

    def _evaluation_request(self, run: PipelineRun, summary: str) -> GenerationRequest:
        options = run.options
        rubric_input = f"Original text:\n{run.transcript}\n\nSummary to evaluate:\n{summary}"

        if options.include_rubric and options.include_evaluation:
            system_instruction = self.templates.merged_evaluation.replace(
                "{rubric_prompt}", self.templates.summary_rubric
            ).replace("{evaluation_prompt}", self.templates.evaluation)
            return GenerationRequest(
                user_content=rubric_input,
                system_instruction=system_instruction,
                max_tokens=self.merged_evaluation_max_tokens,
                temperature=self.evaluation_temperature,
                isolated=True,
            )
        if options.include_rubric:
            return GenerationRequest(
                user_content=rubric_input,
                system_instruction=self.templates.summary_rubric,
                max_tokens=self.rubric_max_tokens,
                temperature=self.rubric_temperature,
                isolated=True,
            )
        return GenerationRequest(
            user_content=f"Evaluate the following spoken transcript:\n\n{run.transcript}",
            system_instruction=self.templates.evaluation,
            max_tokens=self.evaluation_max_tokens,
            temperature=self.evaluation_temperature,
            isolated=True,
        )

    @staticmethod
    def _parse_evaluation_stage(
        options: PipelineOptions, raw: str
    ) -> tuple[list[BenchmarkDimension], Optional[EvaluationResult]]:
        if options.include_rubric and options.include_evaluation:
            rubric_text, evaluation_text = split_rubric_and_evaluation(raw)
            return parse_dimensions(rubric_text), parse_evaluation(evaluation_text)
        if options.include_rubric:
            return parse_dimensions(raw), None
        return [], parse_evaluation(raw)


def _evaluation_summary(
    dimensions: list[BenchmarkDimension], evaluation: Optional[EvaluationResult]
) -> str:
    parts = []
    if dimensions:
        parts.append(
            "Rubric: " + ", ".join(f"{d.name} {d.score.label}" for d in dimensions)
        )
    if evaluation is not None:
        if evaluation.is_parse_error:
            parts.append("Evaluation unavailable")
        else:
            parts.append(
                f"Clarity {evaluation.clarity_score}/10, "
                f"Language {evaluation.language_score}/10 ({evaluation.total_label})"
            )
    return "; ".join(parts) or "Evaluation unavailable"
