"""
OpenAI-compatible Pydantic schemas for the API.

Requests and responses follow the OpenAI Chat API so that any
OpenAI-compatible client can talk to the proxy unchanged.
"""

import time
import uuid
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class ContentPart(BaseModel):
    """A single part of multimodal content."""

    type: Literal["text", "image_url"] = Field(
        ..., description="The type of content part"
    )
    text: Optional[str] = Field(default=None, description="Text content (for type='text')")
    image_url: Optional[dict] = Field(
        default=None, description="Image URL object (for type='image_url')"
    )


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    role: Literal["system", "user", "assistant", "tool"] = Field(
        ..., description="The role of the message author"
    )
    content: Union[str, list[ContentPart]] = Field(
        default="", description="The content of the message (string or list of content parts)"
    )
    name: Optional[str] = Field(default=None, description="Optional author name")
    tool_call_id: Optional[str] = Field(
        default=None, description="Tool call answered by a 'tool' message"
    )

    @field_validator("content", mode="before")
    @classmethod
    def normalize_content(cls, v):
        """Accept null content (assistant tool-call turns) as empty text."""
        if v is None:
            return ""
        if isinstance(v, list):
            return [ContentPart(**item) if isinstance(item, dict) else item for item in v]
        return v

    def get_text_content(self) -> str:
        """Extract text content regardless of format."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            part.text for part in self.content if part.type == "text" and part.text
        )

    def to_upstream(self) -> dict:
        """The message as sent to the upstream completion service."""
        message = {"role": self.role, "content": self.get_text_content()}
        if self.name:
            message["name"] = self.name
        if self.tool_call_id:
            message["tool_call_id"] = self.tool_call_id
        return message


class ChatCompletionRequest(BaseModel):
    """Request body for /v1/chat/completions endpoint."""

    model: str = Field(
        default="",
        description="Upstream model ID; the configured default when empty",
    )
    messages: list[ChatMessage] = Field(
        ..., description="List of messages in the conversation", min_length=1
    )
    stream: Optional[bool] = Field(
        default=False, description="Stream the response as server-sent events"
    )
    include_trace: Optional[bool] = Field(
        default=False, description="Include executed actions in the response"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "model": "llama3-70b-8192",
                "messages": [{"role": "user", "content": "Turn on the bedroom light"}],
                "stream": True,
            }
        }
    }


class TraceStep(BaseModel):
    """An action executed while answering the request."""

    round: int = Field(..., description="Upstream round the action was found in")
    action: str = Field(..., description="Tool name that was invoked")
    arguments: Optional[dict] = Field(default=None, description="Arguments passed to the tool")
    success: bool = Field(default=False, description="Whether the tool succeeded")
    observation: Optional[str] = Field(default=None, description="Raw tool result")
    summary: Optional[str] = Field(default=None, description="Summary relayed to the caller")


class ChatCompletionMessage(BaseModel):
    """Message in a chat completion response."""

    role: Literal["assistant"] = "assistant"
    content: str


class ChatCompletionChoice(BaseModel):
    """A single choice in a chat completion response."""

    index: int = 0
    message: ChatCompletionMessage
    finish_reason: Literal["stop", "length", "error"] = "stop"


class ChatCompletionResponse(BaseModel):
    """Response body for a non-streamed /v1/chat/completions call."""

    id: str = Field(default_factory=lambda: f"chatcmpl-{uuid.uuid4().hex[:12]}")
    object: Literal["chat.completion"] = "chat.completion"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    system_fingerprint: Optional[str] = None
    choices: list[ChatCompletionChoice]
    trace: Optional[list[TraceStep]] = Field(
        default=None, description="Executed actions (when include_trace=True)"
    )


class ModelInfo(BaseModel):
    """Information about an available model."""

    id: str
    object: Literal["model"] = "model"
    created: int = Field(default_factory=lambda: int(time.time()))
    owned_by: str = "toolstream"


class ModelListResponse(BaseModel):
    """Response body for /v1/models endpoint."""

    object: Literal["list"] = "list"
    data: list[ModelInfo]


class HealthResponse(BaseModel):
    """Response body for /health endpoint."""

    status: Literal["healthy", "unhealthy"]
    version: str
    model: str


class ErrorDetail(BaseModel):
    """Error detail in OpenAI format."""

    message: str
    type: str = "server_error"
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response in OpenAI format."""

    error: ErrorDetail
