"""
Exception hierarchy for toolstream.

Fatal errors end the request: they are passed to the relay's ``close`` and
surface to the caller as an aborted stream (no ``[DONE]`` sentinel).
Tool-level failures are never raised; they travel as ``ToolResult`` values.
"""


class ToolStreamError(Exception):
    """Base class for all toolstream errors."""


class UpstreamError(ToolStreamError):
    """The upstream completion call failed to start or failed mid-stream."""


class ToolArgumentError(ToolStreamError):
    """Tool-call arguments could not be decoded or validated."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"invalid arguments for '{tool_name}': {message}")
        self.tool_name = tool_name


class SummarizerError(ToolStreamError):
    """The summarizer sub-call failed."""


class RoundLimitExceeded(ToolStreamError):
    """The request needed more upstream rounds than allowed."""

    def __init__(self, max_rounds: int):
        super().__init__(f"exceeded maximum of {max_rounds} action rounds")
        self.max_rounds = max_rounds


class RelayClosedError(ToolStreamError):
    """A frame was sent to, or close was called on, an already closed relay."""


class OrchestrationCancelled(ToolStreamError):
    """The reader went away; the orchestration run must stop."""
