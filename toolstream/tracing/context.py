"""
Request-scoped tracing.

A ``TracingContext`` holds the root span of one request. Child spans and
generations are linked to it through an explicit ``TraceContext`` so that
nesting survives the hop from the HTTP worker to the orchestration thread.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from langfuse.types import TraceContext

from .client import get_tracing_client

logger = logging.getLogger(__name__)


@dataclass
class Observation:
    """A span or generation; every method is a no-op when tracing is off."""

    name: str
    as_type: str = "span"
    start_kwargs: dict = field(default_factory=dict)
    trace_context: Optional[TraceContext] = None
    _manager: Any = field(default=None, repr=False)
    _handle: Any = field(default=None, repr=False)
    _started: float = field(default=0.0, repr=False)
    _output: Any = field(default=None, repr=False)
    _status: str = field(default="success", repr=False)

    def start(self) -> None:
        client = get_tracing_client()
        if client is None or client.client is None:
            return
        self._started = time.time()
        try:
            self._manager = client.client.start_as_current_observation(
                trace_context=self.trace_context,
                as_type=self.as_type,
                name=self.name,
                **self.start_kwargs,
            )
            self._handle = self._manager.__enter__()
        except Exception as e:
            logger.warning(f"Failed to start {self.as_type} '{self.name}': {e}")
            self._handle = None

    def end(self) -> None:
        if self._handle is None:
            return
        update: dict[str, Any] = {
            "metadata": {
                "status": self._status,
                "duration_ms": round((time.time() - self._started) * 1000, 2),
            }
        }
        if self._output is not None:
            update["output"] = self._output
        try:
            self._handle.update(**update)
            self._manager.__exit__(None, None, None)
        except Exception as e:
            logger.warning(f"Failed to end {self.as_type} '{self.name}': {e}")

    def set_output(self, output: Any) -> None:
        self._output = output

    def set_status(self, status: str) -> None:
        self._status = status

    @property
    def recording(self) -> bool:
        return self._handle is not None


@dataclass
class TracingContext:
    """
    Tracing state of a single chat completion request.

    Create one per request, call ``start_trace`` before orchestration and
    ``end_trace`` after the relay is closed.
    """

    execution_id: str
    user_id: Optional[str] = None
    _root: Optional[Observation] = field(default=None, repr=False)
    _trace_context: Optional[TraceContext] = field(default=None, repr=False)

    @property
    def enabled(self) -> bool:
        client = get_tracing_client()
        return client is not None and client.enabled

    def start_trace(
        self,
        name: str = "chat_completion",
        prompt: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        if not self.enabled:
            logger.debug(f"[{self.execution_id}] Tracing disabled, trace not started")
            return

        root = Observation(
            name=name,
            start_kwargs={
                "input": {"prompt": prompt} if prompt else None,
                "metadata": {"execution_id": self.execution_id, **(metadata or {})},
            },
        )
        root.start()
        if not root.recording:
            return

        self._root = root
        trace_id = getattr(root._handle, "trace_id", None)
        span_id = getattr(root._handle, "id", None)
        if trace_id and span_id:
            self._trace_context = TraceContext(trace_id=trace_id, parent_span_id=span_id)
        try:
            root._handle.update_trace(user_id=self.user_id, session_id=self.execution_id)
        except Exception as e:
            logger.warning(f"[{self.execution_id}] Failed to set trace attributes: {e}")

    def end_trace(self, output: Optional[str] = None, status: str = "success") -> None:
        if self._root is None:
            return
        self._root.set_output(output)
        self._root.set_status(status)
        self._root.end()
        self._root = None

    @contextmanager
    def span(
        self,
        name: str,
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
    ) -> Iterator[Observation]:
        """Trace a block of work, e.g. a tool execution."""
        observation = Observation(
            name=name,
            start_kwargs={"input": input, "metadata": metadata},
            trace_context=self._trace_context,
        )
        yield from self._observe(observation)

    @contextmanager
    def generation(
        self,
        name: str,
        model: str,
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
    ) -> Iterator[Observation]:
        """Trace a model call."""
        observation = Observation(
            name=name,
            as_type="generation",
            start_kwargs={"model": model, "input": input, "metadata": metadata},
            trace_context=self._trace_context,
        )
        yield from self._observe(observation)

    def _observe(self, observation: Observation) -> Iterator[Observation]:
        if self._root is not None:
            observation.start()
        try:
            yield observation
        except BaseException:
            observation.set_status("error")
            raise
        finally:
            observation.end()
