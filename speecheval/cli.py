"""Click CLI for running the evaluation pipeline on transcript files."""

from __future__ import annotations

import asyncio
import json
import sys

import click

from speecheval.config import get_settings
from speecheval.models.evaluation import BenchmarkResult
from speecheval.models.events import (
    Completed,
    PipelineError,
    PipelineEvent,
    SafetyBlocked,
    StageStarted,
    event_to_dict,
)
from speecheval.models.prompt import BUILT_IN_PROMPTS, PipelineOptions, get_built_in_prompt
from speecheval.models.safety import SafetyVerdict
from speecheval.prompts.defaults import PROMPT_DEFAULTS
from speecheval.services.backend import OpenAIBackend
from speecheval.services.logging_service import configure_logging
from speecheval.services.orchestrator import PipelineOrchestrator

EXIT_COMPLETED = 0
EXIT_BLOCKED = 1
EXIT_ERROR = 2


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this invocation.")
def cli(log_level: str | None) -> None:
    """Safety-gated transcript summarization and evaluation."""
    configure_logging(log_level or get_settings().log_level)


def build_orchestrator() -> PipelineOrchestrator:
    from speecheval.services.prompt_service import load_prompt_templates

    return PipelineOrchestrator(OpenAIBackend(), templates=load_prompt_templates())


async def collect_events(
    orchestrator: PipelineOrchestrator,
    transcript: str,
    options: PipelineOptions,
    on_event,
) -> PipelineEvent | None:
    """Drive one run, passing each event to ``on_event``; return the last one."""
    last = None
    async for event in orchestrator.run(transcript, options):
        on_event(event)
        last = event
    return last


# ---------------------------------------------------------------------------
# evaluate command
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("transcript_file", type=click.File("r", encoding="utf-8"), default="-")
@click.option(
    "--prompt",
    "prompt_id",
    default="general",
    type=click.Choice([p.id for p in BUILT_IN_PROMPTS]),
    help="Summarization preset.",
)
@click.option("--rubric/--no-rubric", default=None, help="Score the summary against the rubric.")
@click.option(
    "--evaluation/--no-evaluation", default=None, help="Score clarity and language."
)
@click.option(
    "--injection-guard/--no-injection-guard", default=None, help="Scan for prompt injection."
)
@click.option(
    "--model-safety-scan/--no-model-safety-scan",
    default=None,
    help="Add a model classification pass to the safety scan.",
)
@click.option("--duration", default=0, type=click.IntRange(min=0), help="Recording length in seconds.")
@click.option(
    "--format",
    "output_format",
    default="text",
    type=click.Choice(["text", "json", "events"]),
    help="Output format.",
)
def evaluate(
    transcript_file,
    prompt_id: str,
    rubric: bool | None,
    evaluation: bool | None,
    injection_guard: bool | None,
    model_safety_scan: bool | None,
    duration: int,
    output_format: str,
) -> None:
    """Evaluate TRANSCRIPT_FILE (or stdin).

    Exit codes: 0 completed, 1 blocked by the safety gate, 2 error.
    """
    settings = get_settings()

    def pick(value: bool | None, default: bool) -> bool:
        return default if value is None else value

    options = PipelineOptions(
        include_rubric=pick(rubric, settings.include_rubric),
        include_evaluation=pick(evaluation, settings.include_evaluation),
        enable_injection_guard=pick(injection_guard, settings.enable_injection_guard),
        use_model_safety_scan=pick(model_safety_scan, settings.use_model_safety_scan),
        use_model_injection_scan=settings.use_model_injection_scan,
        prompt=get_built_in_prompt(prompt_id),
        recording_duration_seconds=duration,
    )
    transcript = transcript_file.read()

    if output_format == "events":
        on_event = lambda event: click.echo(json.dumps(event_to_dict(event)))
    elif output_format == "text":
        on_event = _print_progress
    else:
        on_event = lambda event: None

    last = asyncio.run(collect_events(build_orchestrator(), transcript, options, on_event))

    if output_format == "json" and last is not None:
        click.echo(json.dumps(event_to_dict(last), indent=2))
    elif output_format == "text":
        if isinstance(last, Completed):
            _print_result(last.result)
        elif isinstance(last, SafetyBlocked):
            _print_blocked(last.verdict)
        elif isinstance(last, PipelineError):
            click.echo(f"Error: {last.message}", err=True)

    if isinstance(last, SafetyBlocked):
        sys.exit(EXIT_BLOCKED)
    if not isinstance(last, Completed):
        sys.exit(EXIT_ERROR)


def _print_progress(event: PipelineEvent) -> None:
    if isinstance(event, StageStarted):
        click.echo(event.stage.label)


def _print_blocked(verdict: SafetyVerdict) -> None:
    click.echo()
    click.echo("Content blocked")
    click.echo("=" * 60)
    click.echo(verdict.summary)
    for violation in verdict.violations:
        click.echo(
            f"  [{violation.severity.value.upper()}] {violation.category.label}: "
            f"{violation.explanation}"
        )


def _print_result(result: BenchmarkResult) -> None:
    """Print a completed result in table format."""
    click.echo()
    click.echo("Key Ideas")
    click.echo("=" * 60)
    click.echo(result.key_ideas)
    click.echo()
    click.echo("Summary")
    click.echo("=" * 60)
    click.echo(result.summary)
    click.echo()

    if result.dimensions:
        click.echo(f"Summary Quality: {result.overall_label} ({result.overall_score:.0%})")
        for d in result.dimensions:
            click.echo(f"  {d.name:<14} {d.score.label:<6} {d.explanation}")
        click.echo()

    evaluation = result.evaluation_result
    if evaluation is not None:
        if evaluation.is_parse_error:
            click.echo("Evaluation: unavailable (could not parse model output)")
        else:
            click.echo(
                f"Evaluation: {evaluation.total_score}/20 {evaluation.total_label}"
            )
            click.echo(f"  Clarity   {evaluation.clarity_score}/10  {evaluation.clarity_reasoning}")
            click.echo(f"  Language  {evaluation.language_score}/10  {evaluation.language_reasoning}")
            click.echo(f"  {evaluation.overall_feedback}")
        click.echo()

    click.echo(
        f"Words: {result.transcript_word_count} -> {result.summary_word_count} "
        f"(ratio {result.compression_ratio:.2f}), {result.processing_time_sec:.1f}s"
    )


# ---------------------------------------------------------------------------
# prompt registry commands
# ---------------------------------------------------------------------------


@cli.group()
def prompts() -> None:
    """Manage versioned system prompts in the MLflow registry."""
    pass


@prompts.command("seed")
def seed() -> None:
    """Register bundled defaults missing from the registry."""
    from speecheval.services.prompt_service import seed_prompts

    seeded = seed_prompts()
    if not seeded:
        click.echo("Nothing seeded (all prompts exist or registry unreachable).")
        return
    for name, version in seeded.items():
        click.echo(f"Seeded {name} v{version}")


@prompts.command("show")
@click.argument("name", type=click.Choice(list(PROMPT_DEFAULTS)))
@click.option("--alias", default=None, help="Registry alias (default: PROMPT_ALIAS).")
def show(name: str, alias: str | None) -> None:
    """Print the active template for NAME."""
    from speecheval.services.prompt_service import load_prompt_version

    info = load_prompt_version(name, alias)
    source = "bundled default" if info.is_fallback else f"v{info.version}@{info.alias}"
    click.echo(f"# {info.name} ({source})")
    click.echo(info.template)


@prompts.command("reset")
@click.argument("name", type=click.Choice(list(PROMPT_DEFAULTS)))
def reset(name: str) -> None:
    """Register the bundled default as the newest version of NAME."""
    from speecheval.services.prompt_service import reset_prompt

    version = reset_prompt(name)
    click.echo(f"Reset {name} to bundled default (v{version})")


# ---------------------------------------------------------------------------
# serve command
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", default=8000, type=int, help="Bind port.")
def serve(host: str, port: int) -> None:
    """Run the HTTP API (GET /health, POST /evaluate)."""
    import uvicorn

    uvicorn.run("speecheval.main:app", host=host, port=port)
