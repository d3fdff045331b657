"""
Langfuse tracing for toolstream.

Records each request, upstream round, tool execution and summary call.
"""

from .client import (
    TracingClient,
    get_tracing_client,
    init_tracing_client,
    shutdown_tracing,
)
from .context import Observation, TracingContext

__all__ = [
    "TracingClient",
    "init_tracing_client",
    "get_tracing_client",
    "shutdown_tracing",
    "TracingContext",
    "Observation",
]
