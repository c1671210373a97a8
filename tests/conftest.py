"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator, Callable, Optional, Union
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "sk-test-key-for-testing")
os.environ.setdefault("PROMPT_REGISTRY_ENABLED", "false")

from speecheval.models.generation import GenerationRequest, GenerationResponse, StopReason
from speecheval.models.prompt import PipelineOptions
from speecheval.services.backend import GenerationBackend, GenerationError

ScriptedReply = Union[str, GenerationResponse, Exception]

KEY_IDEAS_OUTPUT = """===KEY_IDEAS===
- Remote work saves commuting time
- Teams need clear communication habits
===SUMMARY===
The speaker argues remote work boosts productivity when teams communicate deliberately."""

EVALUATION_OUTPUT = """===RUBRIC===
Relevance: Good - Captures the main argument.
Coverage: Fair - Omits the point about meetings.
Coherence: Good - Flows logically.
Conciseness: Good - One sentence.
Faithfulness: Good - Nothing invented.
===EVALUATION===
{"clarity_score": 6, "clarity_reasoning": "Some structure, a few digressions.", "language_score": 7, "language_reasoning": "Minor tense slips.", "safety_flag": false, "safety_notes": "None", "overall_feedback": "Solid talk; tighten the conclusion."}"""

CLEAN_TRANSCRIPT = (
    "Today I want to talk about remote work. It saves commuting time and, "
    "when teams agree on how to communicate, it makes us more productive."
)


class FakeBackend(GenerationBackend):
    """Scripted backend that records every request it receives.

    Replies are consumed in order; an Exception reply is raised instead of
    returned. ``on_generate`` runs before each reply and may call cancel().
    """

    def __init__(self, replies: Optional[list[ScriptedReply]] = None, ready: bool = True):
        self.replies = list(replies or [])
        self.ready = ready
        self.requests: list[GenerationRequest] = []
        self.cancel_calls = 0
        self.on_generate: Optional[Callable[[GenerationRequest], None]] = None

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def is_ready(self) -> bool:
        return self.ready

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        if not self.ready:
            raise GenerationError("not ready")
        self.requests.append(request)
        if self.on_generate is not None:
            self.on_generate(request)
        if not self.replies:
            raise GenerationError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, GenerationResponse):
            return reply
        return GenerationResponse(text=reply, stop_reason=StopReason.END_OF_TEXT)

    def cancel(self) -> None:
        self.cancel_calls += 1


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Backend scripted with a well-formed stage 3 and stage 4 reply."""
    return FakeBackend([KEY_IDEAS_OUTPUT, EVALUATION_OUTPUT])


@pytest.fixture
def default_options() -> PipelineOptions:
    return PipelineOptions()


@pytest.fixture
def mock_settings() -> MagicMock:
    """Mock settings for tests without real environment variables."""
    settings = MagicMock()
    settings.openai_api_key = "sk-test-key-for-testing"
    settings.openai_base_url = None
    settings.openai_model = "gpt-4.1-mini"
    settings.generation_timeout_seconds = 5
    settings.use_model_safety_scan = False
    settings.use_model_injection_scan = False
    settings.enable_injection_guard = True
    settings.include_rubric = True
    settings.include_evaluation = True
    settings.prompt_registry_enabled = False
    settings.prompt_alias = "production"
    settings.prompt_cache_ttl_seconds = 300
    settings.mlflow_tracking_uri = "http://localhost:5000"
    settings.log_level = "INFO"
    return settings


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for integration tests."""
    from speecheval.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def backend_factory() -> type[FakeBackend]:
    """The FakeBackend class, for tests that script their own replies."""
    return FakeBackend


@pytest.fixture
def key_ideas_output() -> str:
    return KEY_IDEAS_OUTPUT


@pytest.fixture
def evaluation_output() -> str:
    return EVALUATION_OUTPUT


@pytest.fixture
def clean_transcript() -> str:
    return CLEAN_TRANSCRIPT
