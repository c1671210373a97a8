"""Prompt registry service — seed, version and load prompts via MLflow.

The registry is optional. When it is disabled or unreachable every prompt
falls back to the bundled default, so a template set can always be built.
"""

from dataclasses import dataclass

import mlflow
import structlog

from speecheval.config import get_settings
from speecheval.models.prompt import PromptTemplateSet
from speecheval.prompts.defaults import PROMPT_DEFAULTS

logger = structlog.get_logger(__name__)


@dataclass
class PromptVersionInfo:
    """A loaded prompt with its registry version (0 for the bundled default)."""

    name: str
    version: int
    alias: str
    template: str
    is_fallback: bool = False


def _field_name(prompt_name: str) -> str:
    return prompt_name.replace("-", "_")


def seed_prompts() -> dict[str, int]:
    """Register bundled defaults that are missing from the registry.

    Returns:
        Dict mapping prompt name to version number for each newly seeded prompt.
        Empty dict if all prompts already exist or on connection failure.
    """
    settings = get_settings()
    seeded: dict[str, int] = {}
    skipped = 0

    try:
        mlflow.set_tracking_uri(settings.mlflow_tracking_uri)
        for name, template in PROMPT_DEFAULTS.items():
            existing = mlflow.genai.load_prompt(name, allow_missing=True)
            if existing is not None:
                skipped += 1
                continue
            version = mlflow.genai.register_prompt(name=name, template=template)
            mlflow.genai.set_prompt_alias(
                name=name,
                alias=settings.prompt_alias,
                version=version.version,
            )
            seeded[name] = version.version
    except Exception as e:
        logger.warning("prompt_seeding_failed", error_type=type(e).__name__)
        return {}

    logger.info("prompt_seeding_complete", seeded=len(seeded), skipped=skipped)
    return seeded


def load_prompt_version(name: str, alias: str | None = None) -> PromptVersionInfo:
    """Load one prompt from the registry, falling back to the bundled default."""
    settings = get_settings()
    resolved_alias = alias or settings.prompt_alias

    try:
        pv = mlflow.genai.load_prompt(
            f"prompts:/{name}@{resolved_alias}",
            cache_ttl_seconds=settings.prompt_cache_ttl_seconds,
        )
        logger.info(
            "prompt_loaded",
            prompt_name=name,
            version=pv.version,
            alias=resolved_alias,
            is_fallback=False,
        )
        return PromptVersionInfo(
            name=name,
            version=pv.version,
            alias=resolved_alias,
            template=pv.template,
        )
    except Exception as e:
        logger.warning(
            "prompt_load_fallback",
            prompt_name=name,
            alias=resolved_alias,
            error_type=type(e).__name__,
            is_fallback=True,
        )
        return PromptVersionInfo(
            name=name,
            version=0,
            alias=resolved_alias,
            template=PROMPT_DEFAULTS[name],
            is_fallback=True,
        )


def load_prompt_templates(alias: str | None = None) -> PromptTemplateSet:
    """Build the template set a pipeline run is constructed with."""
    settings = get_settings()
    if not settings.prompt_registry_enabled:
        return PromptTemplateSet()

    mlflow.set_tracking_uri(settings.mlflow_tracking_uri)
    loaded = [load_prompt_version(name, alias) for name in PROMPT_DEFAULTS]
    return PromptTemplateSet(
        **{_field_name(info.name): info.template for info in loaded},
        versions={info.name: info.version for info in loaded},
    )


def register_prompt(name: str, template: str, commit_message: str | None = None) -> int:
    """Register a new version of a prompt and point the configured alias at it.

    Returns:
        New version number.

    Raises:
        KeyError: If ``name`` is not a known prompt
    """
    if name not in PROMPT_DEFAULTS:
        raise KeyError(f"Unknown prompt: {name}")
    settings = get_settings()
    mlflow.set_tracking_uri(settings.mlflow_tracking_uri)
    version = mlflow.genai.register_prompt(
        name=name,
        template=template,
        commit_message=commit_message,
    )
    mlflow.genai.set_prompt_alias(name=name, alias=settings.prompt_alias, version=version.version)
    logger.info("prompt_registered", prompt_name=name, version=version.version)
    return version.version


def reset_prompt(name: str) -> int:
    """Register the bundled default as the newest version of ``name``."""
    return register_prompt(name, PROMPT_DEFAULTS[name], commit_message="Reset to bundled default")
