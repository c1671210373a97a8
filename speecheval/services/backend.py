"""Generation backend contract and the OpenAI-compatible implementation.

The orchestrator only depends on ``GenerationBackend``. The bundled
``OpenAIBackend`` talks to any server that speaks the OpenAI chat
completions protocol, which covers hosted APIs as well as locally hosted
models (llama.cpp server, Ollama, vLLM) through ``openai_base_url``.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from openai import AsyncOpenAI, OpenAIError

from speecheval.config import get_settings
from speecheval.models.generation import GenerationRequest, GenerationResponse, StopReason

logger = structlog.get_logger(__name__)


class GenerationError(Exception):
    """Any backend failure: not ready, timeout, transport or inference error.

    Attributes:
        message: Human-readable description
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class GenerationBackend(ABC):
    """Contract every text-generation backend fulfils.

    At most one generation is in flight per instance; overlapping calls
    queue behind the one already running.
    """

    @abstractmethod
    def is_ready(self) -> bool:
        """Whether a generate() call can currently succeed."""

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Run one generation to completion.

        Raises:
            GenerationError: On not-ready, timeout, or transport/inference failure
        """

    @abstractmethod
    def cancel(self) -> None:
        """Stop the in-flight generation, if any. Idempotent."""


_FINISH_REASONS = {
    "length": StopReason.LENGTH_LIMIT,
}


LOCAL_SERVER_API_KEY = "not-needed"


class OpenAIBackend(GenerationBackend):
    """Backend for OpenAI-compatible chat completion servers.

    Every request is sent as a fresh system + user message pair, so the
    backend never holds conversation state and ``isolated`` requests are
    isolated by construction.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.base_url = base_url if base_url is not None else settings.openai_base_url
        self.model = model or settings.openai_model
        self.timeout_seconds = timeout_seconds or settings.generation_timeout_seconds
        self._client = client
        self._lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Future] = None
        self._cancel_requested = False
        self._partial: list[str] = []

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-load the API client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key or LOCAL_SERVER_API_KEY, base_url=self.base_url
            )
        return self._client

    def is_ready(self) -> bool:
        # Local OpenAI-compatible servers accept any key
        return self._client is not None or bool(self.api_key) or bool(self.base_url)

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        if not self.is_ready():
            raise GenerationError(
                "Generation backend not ready: no API key or base URL configured"
            )

        async with self._lock:
            self._cancel_requested = False
            self._partial = []
            start_time = time.perf_counter()
            self._inflight = asyncio.ensure_future(self._complete(request))

            try:
                return await asyncio.wait_for(self._inflight, timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                logger.warning(
                    "generation_timeout",
                    model=self.model,
                    timeout_seconds=self.timeout_seconds,
                )
                raise GenerationError(
                    f"Generation timed out after {self.timeout_seconds}s"
                ) from e
            except asyncio.CancelledError:
                if not self._cancel_requested:
                    raise
                logger.info("generation_cancelled", model=self.model)
                return GenerationResponse(
                    text="".join(self._partial),
                    total_time_ms=int((time.perf_counter() - start_time) * 1000),
                    stop_reason=StopReason.CANCELLED,
                )
            except OpenAIError as e:
                logger.error(
                    "generation_failed",
                    model=self.model,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                raise GenerationError(f"Generation failed: {e}") from e
            finally:
                self._inflight = None

    def cancel(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            self._cancel_requested = True
            self._inflight.cancel()

    async def _complete(self, request: GenerationRequest) -> GenerationResponse:
        start_time = time.perf_counter()
        messages = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        messages.append({"role": "user", "content": request.user_content})

        if request.streaming:
            text, finish_reason = await self._stream(request, messages)
            prompt_tokens = completion_tokens = 0
        else:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
            choice = response.choices[0]
            text = choice.message.content or ""
            finish_reason = choice.finish_reason
            usage = response.usage
            prompt_tokens = usage.prompt_tokens if usage else 0
            completion_tokens = usage.completion_tokens if usage else 0

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "generation_complete",
            model=self.model,
            isolated=request.isolated,
            streaming=request.streaming,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency_ms,
            finish_reason=finish_reason,
        )

        return GenerationResponse(
            text=text,
            prompt_token_count=prompt_tokens or 0,
            completion_token_count=completion_tokens or 0,
            total_time_ms=latency_ms,
            stop_reason=_FINISH_REASONS.get(finish_reason, StopReason.END_OF_TEXT),
        )

    async def _stream(
        self, request: GenerationRequest, messages: list[dict]
    ) -> tuple[str, Optional[str]]:
        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
            stream=True,
        )
        finish_reason = None
        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            if choice.delta and choice.delta.content:
                self._partial.append(choice.delta.content)
            if choice.finish_reason:
                finish_reason = choice.finish_reason
        return "".join(self._partial), finish_reason
