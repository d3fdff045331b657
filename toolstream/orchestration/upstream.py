"""
Upstream streaming completion client.

Wraps the OpenAI SDK's streamed chat completions and converts each chunk
into a ``StreamDelta``. Any SDK or transport failure, at start or
mid-stream, is raised as ``UpstreamError``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

import httpx
from openai import OpenAI, OpenAIError

from ..errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class ToolCallFragment:
    """Part of a structured tool call; arguments arrive split across deltas."""

    index: int = 0
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


@dataclass
class StreamDelta:
    """One incremental unit of an upstream streamed response."""

    id: str = ""
    created: int = 0
    model: str = ""
    system_fingerprint: Optional[str] = None
    content: str = ""
    tool_calls: list[ToolCallFragment] = field(default_factory=list)
    finish_reason: Optional[str] = None

    @classmethod
    def from_chunk(cls, chunk: Any) -> "StreamDelta":
        """Convert an OpenAI ``ChatCompletionChunk``."""
        delta = cls(
            id=chunk.id or "",
            created=chunk.created or 0,
            model=chunk.model or "",
            system_fingerprint=getattr(chunk, "system_fingerprint", None),
        )
        if not chunk.choices:
            return delta

        # Only the first choice is relayed
        choice = chunk.choices[0]
        delta.finish_reason = choice.finish_reason
        if choice.delta is None:
            return delta

        delta.content = choice.delta.content or ""
        for tool_call in choice.delta.tool_calls or []:
            function = tool_call.function
            delta.tool_calls.append(
                ToolCallFragment(
                    index=tool_call.index or 0,
                    id=tool_call.id,
                    name=function.name if function else None,
                    arguments=(function.arguments or "") if function else "",
                )
            )
        return delta


class UpstreamClient:
    """Streams chat completions from an OpenAI-compatible endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        temperature: Optional[float] = None,
        client: Optional[OpenAI] = None,
    ):
        self.base_url = base_url
        self.temperature = temperature
        self._client = client or OpenAI(
            base_url=base_url,
            api_key=api_key or "not-needed",  # local endpoints do not require auth
        )

    def stream_chat(
        self,
        model: str,
        messages: list[dict],
        tools: Optional[list[dict]] = None,
    ) -> Iterator[StreamDelta]:
        """
        Open a streamed completion and yield its deltas.

        Closing the returned generator closes the HTTP stream.

        Args:
            model: Upstream model identifier.
            messages: Role-tagged conversation.
            tools: OpenAI tool definitions to attach, if any.

        Raises:
            UpstreamError: If the call fails to start or fails mid-stream.
        """
        create_kwargs: dict = {
            "model": model,
            "messages": messages,
            "stream": True,
        }
        if self.temperature is not None:
            create_kwargs["temperature"] = self.temperature
        if tools:
            create_kwargs["tools"] = tools
            create_kwargs["tool_choice"] = "auto"

        try:
            stream = self._client.chat.completions.create(**create_kwargs)
        except (OpenAIError, httpx.HTTPError) as e:
            logger.error(f"Upstream call to {self.base_url} failed: {e}")
            raise UpstreamError(f"upstream call failed: {e}") from e

        try:
            for chunk in stream:
                yield StreamDelta.from_chunk(chunk)
        except (OpenAIError, httpx.HTTPError) as e:
            logger.error(f"Upstream stream from {self.base_url} failed: {e}")
            raise UpstreamError(f"upstream stream failed: {e}") from e
        finally:
            stream.close()

    def close(self) -> None:
        """Close the underlying OpenAI client."""
        try:
            self._client.close()
        except Exception as e:
            logger.debug("Error closing OpenAI client: %s", e)
