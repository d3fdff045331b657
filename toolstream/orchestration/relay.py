"""
Stream relay between the orchestration thread and the HTTP response.

A capacity-zero (rendezvous) channel: ``send`` blocks until the reader has
taken the frame, which gives backpressure all the way to the upstream
read loop. The writer closes the relay exactly once, either cleanly (the
reader then emits the ``[DONE]`` sentinel) or with an error (the reader
raises it and no sentinel is produced).
"""

import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Iterator, Optional

from ..errors import OrchestrationCancelled, RelayClosedError

logger = logging.getLogger(__name__)

DONE_FRAME = "data: [DONE]\n"

# A blocked send re-checks the cancel event this often (seconds)
CANCEL_POLL_INTERVAL = 0.1


@dataclass
class Envelope:
    """Identifiers copied from the upstream round into every relayed chunk."""

    id: str
    created: int
    model: str
    system_fingerprint: Optional[str] = None

    @classmethod
    def new(cls, model: str) -> "Envelope":
        """An envelope for frames that precede any upstream delta."""
        return cls(
            id=f"chatcmpl-{uuid.uuid4().hex[:12]}",
            created=int(time.time()),
            model=model,
        )


def build_chunk(content: str, envelope: Envelope) -> dict:
    """Wrap text in a ``chat.completion.chunk`` object."""
    return {
        "id": envelope.id,
        "object": "chat.completion.chunk",
        "created": envelope.created,
        "model": envelope.model,
        "system_fingerprint": envelope.system_fingerprint,
        "choices": [
            {
                "index": 0,
                "delta": {"content": content},
                "finish_reason": None,
            }
        ],
    }


def format_frame(chunk: dict) -> str:
    """Server-sent-event framing of one chunk."""
    return f"data: {json.dumps(chunk)}\n"


class Relay:
    """Single-writer, single-reader rendezvous channel of completion chunks."""

    def __init__(self, cancel_event: Optional[threading.Event] = None) -> None:
        self.cancel_event = cancel_event or threading.Event()
        self._cond = threading.Condition()
        self._pending: Optional[dict] = None
        self._closed = False
        self._error: Optional[BaseException] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def send(self, content: str, envelope: Envelope) -> None:
        """
        Frame ``content`` and block until the reader accepts it.

        Raises:
            RelayClosedError: If the relay was already closed.
            OrchestrationCancelled: If the reader went away.
        """
        chunk = build_chunk(content, envelope)
        with self._cond:
            if self._closed:
                raise RelayClosedError("send on closed relay")
            self._wait_for(lambda: self._pending is None)
            self._pending = chunk
            self._cond.notify_all()
            self._wait_for(lambda: self._pending is not chunk)

    def close(self, error: Optional[BaseException] = None) -> None:
        """
        Close the relay. Must be called exactly once by the writer.

        Args:
            error: None for a clean end of stream, else the first fatal error.

        Raises:
            RelayClosedError: On a second close.
        """
        with self._cond:
            if self._closed:
                raise RelayClosedError("relay closed twice")
            self._closed = True
            self._error = error
            self._cond.notify_all()
        if error is not None:
            logger.debug(f"Relay closed with error: {error}")

    def cancel(self) -> None:
        """Reader-side abort: unblocks and fails any pending ``send``."""
        with self._cond:
            self.cancel_event.set()
            self._cond.notify_all()

    def chunks(self) -> Iterator[dict]:
        """
        Yield chunks in send order until the relay is closed.

        Raises:
            The writer's close error, after all frames sent before it.
        """
        completed = False
        try:
            while True:
                with self._cond:
                    while self._pending is None and not self._closed:
                        self._cond.wait()
                    if self._pending is not None:
                        chunk = self._pending
                        self._pending = None
                        self._cond.notify_all()
                    elif self._error is not None:
                        completed = True
                        raise self._error
                    else:
                        completed = True
                        return
                yield chunk
        finally:
            if not completed:
                # Reader stopped early (client disconnected)
                self.cancel()

    def __iter__(self) -> Iterator[str]:
        """Yield SSE frames, ending with the ``[DONE]`` sentinel on success."""
        chunks = self.chunks()
        try:
            for chunk in chunks:
                yield format_frame(chunk)
        finally:
            chunks.close()
        yield DONE_FRAME

    def _wait_for(self, predicate) -> None:
        while not predicate():
            if self.cancel_event.is_set():
                raise OrchestrationCancelled("reader disconnected")
            self._cond.wait(CANCEL_POLL_INTERVAL)
        if self.cancel_event.is_set():
            raise OrchestrationCancelled("reader disconnected")
