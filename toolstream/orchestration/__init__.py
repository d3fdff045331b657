"""
Streaming tool orchestration: upstream rounds, action detection, tool
execution, summaries and the relay to the HTTP response.
"""

from .engine import OrchestrationEngine, build_engine, run_in_thread
from .markers import ActionMarker, find_action_marker
from .relay import DONE_FRAME, Envelope, Relay
from .state import EngineState, OrchestrationState, OrchestrationStep
from .summarizer import Summarizer, build_narrative
from .upstream import StreamDelta, ToolCallFragment, UpstreamClient

__all__ = [
    "OrchestrationEngine",
    "build_engine",
    "run_in_thread",
    "ActionMarker",
    "find_action_marker",
    "DONE_FRAME",
    "Envelope",
    "Relay",
    "EngineState",
    "OrchestrationState",
    "OrchestrationStep",
    "Summarizer",
    "build_narrative",
    "StreamDelta",
    "ToolCallFragment",
    "UpstreamClient",
]
