"""Pydantic models for the neutral (OpenAI-style) wire shapes.

The format adapter reads loosely-shaped JSON and builds its output through
these models, so everything the relay emits has a known schema.
"""

import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


def new_tool_call_id() -> str:
    """Return a fresh tool call id (``call_`` + 24 hex chars)."""
    return f"call_{uuid.uuid4().hex[:24]}"


class ToolCallFunction(BaseModel):
    """Function name plus JSON-encoded arguments."""

    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    """A provider's request to invoke a tool."""

    id: str = Field(default_factory=new_tool_call_id)
    type: Literal["function"] = "function"
    function: ToolCallFunction


class Turn(BaseModel):
    """A single conversation turn.

    ``name`` is only set on tool turns and ``tool_calls`` only on assistant
    turns that requested tools; both are dropped from dumps when unset.
    """

    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None

    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True)


class FunctionSpec(BaseModel):
    """Callable tool description."""

    name: str
    description: str = ""
    parameters: dict = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class CompletionChoice(BaseModel):
    """A single completion choice."""

    index: int = 0
    message: dict
    finish_reason: str = "stop"


class ChatCompletion(BaseModel):
    """OpenAI-compatible chat completion envelope."""

    id: str = Field(default_factory=lambda: f"chatcmpl-{uuid.uuid4().hex}")
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[CompletionChoice]
