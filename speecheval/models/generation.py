"""Generation request/response models shared by every backend."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StopReason(str, Enum):
    """Why a generation call stopped producing tokens."""

    END_OF_TEXT = "end_of_text"
    CANCELLED = "cancelled"
    LENGTH_LIMIT = "length_limit"


class GenerationRequest(BaseModel):
    """A single call to a generation backend.

    Attributes:
        user_content: Text placed in the user turn
        system_instruction: Text placed in the system turn
        max_tokens: Completion token budget
        temperature: Sampling temperature (0.0-2.0)
        streaming: Whether the backend should stream tokens
        isolated: Do not read or mutate any persistent conversation state
    """

    model_config = ConfigDict(frozen=True)

    user_content: str
    system_instruction: str = ""
    max_tokens: int = Field(default=512, ge=1)
    temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    streaming: bool = False
    isolated: bool = True


class GenerationResponse(BaseModel):
    """Completed generation with usage and timing metadata."""

    model_config = ConfigDict(frozen=True)

    text: str
    prompt_token_count: int = Field(default=0, ge=0)
    completion_token_count: int = Field(default=0, ge=0)
    total_time_ms: int = Field(default=0, ge=0)
    stop_reason: StopReason = StopReason.END_OF_TEXT
