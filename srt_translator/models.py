"""Data models for subtitle translation runs."""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


TIMESTAMP_PATTERN = re.compile(
    r'^\s*(\d{2}:\d{2}:\d{2}[,.]\d{3})\s*-->\s*(\d{2}:\d{2}:\d{2}[,.]\d{3})\s*$'
)


class Segment(BaseModel):
    """Represents a single subtitle cue."""

    id: Optional[int] = Field(None, description="Subtitle sequence number (None when missing)")
    timestamp: str = Field("", description="Time range line, e.g. 00:00:01,000 --> 00:00:02,000")
    text: str = Field("", description="Subtitle text content, line breaks preserved")

    def is_valid(self) -> bool:
        """A segment is valid when its timestamp parses and it carries text."""
        return bool(TIMESTAMP_PATTERN.match(self.timestamp)) and bool(self.text.strip())

    def __str__(self) -> str:
        return f"{self.id}: {self.timestamp} | {self.text}"


class OutputBlock(BaseModel):
    """A translated segment bound to its original id and timestamp."""

    id: int = Field(..., description="Original subtitle sequence number")
    timestamp: str = Field(..., description="Original time range line")
    text: str = Field(..., description="Translated text")

    def to_srt(self) -> str:
        """Serialize the block, including its trailing blank-line separator."""
        return f"{self.id}\n{self.timestamp}\n{self.text}\n\n"


class Chunk(BaseModel):
    """A decoded block emitted while reading a translation stream."""

    index: int = Field(..., description="Subtitle sequence number")
    start: str = Field(..., description="Start time")
    end: str = Field(..., description="End time")
    text: str = Field(..., description="Subtitle text")


class RunStatus(str, Enum):
    """Lifecycle of a translation run."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class TranslationRequestContext(BaseModel):
    """Diagnostic and backend options for one group request."""

    run_id: str = Field(..., description="Run identifier used in log lines")
    batch_label: str = Field("unknown", description="Caller supplied batch sequence label")
    group_index: int = Field(1, description="1-based index of the group within the run")
    total_groups: int = Field(1, description="Number of groups in the run")
    model_name: str = Field(..., description="Backend model name")
    thinking_level: str = Field("low", description="Reasoning effort for models that support it")
    is_gemini3_model: bool = Field(False, description="Whether thinking options are sent")


class ChatCompletionRequest(BaseModel):
    """Request payload for OpenAI compatible chat completion APIs."""

    model: str = Field(..., description="Model name to use")
    messages: list[dict] = Field(..., description="Chat messages")
    temperature: float = Field(0.3, description="Temperature for translation")
    max_tokens: Optional[int] = Field(None, description="Maximum tokens to generate")
