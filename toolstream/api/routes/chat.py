"""
OpenAI-compatible chat completion endpoints.

Every completion request gets its own orchestration thread and relay.
Streamed requests hand the relay to the response; non-streamed requests
drain it into a single ``chat.completion`` body.
"""

import logging
import time
import uuid
from typing import Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ...config import config
from ...orchestration import OrchestrationEngine, Relay, build_engine, run_in_thread
from ...orchestration.upstream import UpstreamClient
from ...tools.registry import ToolRegistry
from ...tracing import TracingContext, get_tracing_client
from ..dependencies import get_registry, get_upstream_client
from ..schemas import (
    ChatCompletionChoice,
    ChatCompletionMessage,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ErrorResponse,
    ModelInfo,
    ModelListResponse,
    TraceStep,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MODEL_CREATED = int(time.time())


@router.get(
    "/v1/models",
    response_model=ModelListResponse,
    summary="List models",
    description="List available models. Returns the configured upstream model.",
)
def list_models() -> ModelListResponse:
    return ModelListResponse(data=[ModelInfo(id=config.upstream.model, created=MODEL_CREATED)])


@router.get(
    "/v1/models/{model_id}",
    response_model=ModelInfo,
    summary="Get model",
    description="Get information about a specific model.",
)
def get_model(model_id: str) -> ModelInfo:
    if model_id != config.upstream.model:
        raise HTTPException(
            status_code=404,
            detail=f"Model '{model_id}' not found. Available model: {config.upstream.model}",
        )
    return ModelInfo(id=model_id, created=MODEL_CREATED)


def _stream_frames(
    relay: Relay,
    tracing_context: TracingContext,
    execution_id: str,
) -> Iterator[str]:
    """
    Yield the relay's SSE frames.

    A fatal orchestration error ends the stream without the ``[DONE]``
    sentinel, which is how the caller learns the answer is incomplete.
    """
    frames = iter(relay)
    status = "success"
    try:
        for frame in frames:
            yield frame
    except Exception as e:
        status = "error"
        logger.error(f"[{execution_id}] Stream aborted: {e}")
    finally:
        frames.close()
        tracing_context.end_trace(status=status)
        _flush_tracing()


def _collect(relay: Relay) -> tuple[str, Optional[dict]]:
    """Drain the relay into one string. Re-raises the run's fatal error."""
    parts: list[str] = []
    last_chunk = None
    for chunk in relay.chunks():
        parts.append(chunk["choices"][0]["delta"].get("content") or "")
        last_chunk = chunk
    return "".join(parts), last_chunk


@router.post(
    "/v1/chat/completions",
    response_model=ChatCompletionResponse,
    responses={
        500: {"model": ErrorResponse, "description": "Orchestration failed"},
    },
    summary="Create chat completion",
    description=(
        "Forward the conversation to the upstream model, execute any command or "
        "light action it asks for and stream back the model text with action "
        "summaries in place of raw tool output."
    ),
)
def create_chat_completion(
    request: ChatCompletionRequest,
    upstream: UpstreamClient = Depends(get_upstream_client),
    registry: ToolRegistry = Depends(get_registry),
):
    """Run one orchestration for the request."""
    execution_id = f"exec-{uuid.uuid4().hex[:8]}"
    model = request.model or config.upstream.model
    messages = [message.to_upstream() for message in request.messages]

    prompt = next(
        (m.get_text_content() for m in reversed(request.messages) if m.role == "user"),
        "",
    )
    logger.info(f"[{execution_id}] Chat completion ({model}, stream={request.stream}): {prompt[:100]}")

    tracing_context = TracingContext(execution_id=execution_id)
    tracing_context.start_trace(
        name="chat_completion",
        prompt=prompt,
        metadata={"model": model, "stream": request.stream},
    )

    engine = build_engine(
        config,
        upstream=upstream,
        registry=registry,
        tracing_context=tracing_context,
        execution_id=execution_id,
    )
    relay = Relay()
    run_in_thread(engine, model, messages, relay)

    if request.stream:
        return StreamingResponse(
            _stream_frames(relay, tracing_context, execution_id),
            media_type="text/event-stream",
        )

    try:
        answer, last_chunk = _collect(relay)
    except Exception as e:
        logger.error(f"[{execution_id}] Chat completion failed: {e}")
        tracing_context.end_trace(output=str(e), status="error")
        _flush_tracing()
        raise HTTPException(status_code=500, detail=str(e))

    tracing_context.end_trace(output=answer, status="success")
    _flush_tracing()
    return _build_response(model, answer, last_chunk, engine, request.include_trace)


def _build_response(
    model: str,
    answer: str,
    last_chunk: Optional[dict],
    engine: OrchestrationEngine,
    include_trace: Optional[bool],
) -> ChatCompletionResponse:
    identifiers = {}
    if last_chunk is not None:
        identifiers = {
            "id": last_chunk["id"],
            "created": last_chunk["created"],
            "system_fingerprint": last_chunk.get("system_fingerprint"),
        }

    trace = None
    if include_trace:
        trace = [
            TraceStep(
                round=step.round,
                action=step.action,
                arguments=step.arguments,
                success=step.success,
                observation=step.observation,
                summary=step.summary,
            )
            for step in engine.steps
        ]

    return ChatCompletionResponse(
        model=model,
        choices=[
            ChatCompletionChoice(
                message=ChatCompletionMessage(content=answer),
                finish_reason="stop",
            )
        ],
        trace=trace,
        **identifiers,
    )


def _flush_tracing() -> None:
    client = get_tracing_client()
    if client:
        client.flush()
