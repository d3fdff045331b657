"""
Per-request orchestration state.

Owned by the request's orchestration thread; nothing here is shared.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .markers import ActionMarker
from .relay import Envelope
from .upstream import StreamDelta, ToolCallFragment

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    STREAMING = "streaming"
    AWAITING_ACTION = "awaiting_action"
    EXECUTING = "executing"
    SUMMARIZING = "summarizing"
    DONE = "done"


# Every state may fail straight to DONE.
TRANSITIONS: dict[EngineState, frozenset[EngineState]] = {
    EngineState.STREAMING: frozenset({EngineState.AWAITING_ACTION, EngineState.DONE}),
    EngineState.AWAITING_ACTION: frozenset(
        {EngineState.EXECUTING, EngineState.STREAMING, EngineState.DONE}
    ),
    EngineState.EXECUTING: frozenset({EngineState.SUMMARIZING, EngineState.DONE}),
    EngineState.SUMMARIZING: frozenset({EngineState.STREAMING, EngineState.DONE}),
    EngineState.DONE: frozenset(),
}


class InvalidTransition(RuntimeError):
    """A state change not allowed by ``TRANSITIONS``."""


@dataclass
class PendingToolCall:
    """A structured tool call assembled from streamed fragments."""

    index: int
    id: Optional[str] = None
    name: str = ""
    arguments: str = ""

    def absorb(self, fragment: ToolCallFragment) -> None:
        if fragment.id:
            self.id = fragment.id
        if fragment.name:
            self.name += fragment.name
        self.arguments += fragment.arguments


@dataclass
class OrchestrationStep:
    """One executed (or rejected) action of a run."""

    round: int
    action: str
    arguments: Optional[dict] = None
    success: bool = False
    observation: Optional[str] = None
    summary: Optional[str] = None


@dataclass
class OrchestrationState:
    """Mutable context of a single orchestration run."""

    model: str
    conversation: list[dict]
    active_tools: list[str]
    user_prompt: str = ""
    envelope: Optional[Envelope] = None
    state: EngineState = EngineState.STREAMING
    history: list[EngineState] = field(default_factory=list)
    round: int = 0
    buffer: str = ""
    tool_call: Optional[PendingToolCall] = None
    marker: Optional[ActionMarker] = None
    # Assistant text up to the marker; anything the model wrote after PAUSE is dropped
    marker_text: str = ""
    relayed: bool = False
    ignored_indexes: set[int] = field(default_factory=set)

    def __post_init__(self):
        if self.envelope is None:
            self.envelope = Envelope.new(self.model)
        self.history.append(self.state)

    @property
    def pending(self) -> Optional[Union[PendingToolCall, ActionMarker]]:
        """The action the current round will act on; structured calls win."""
        return self.tool_call or self.marker

    def transition(self, target: EngineState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def begin_round(self) -> None:
        """Reset the per-round accumulators and count the new round."""
        self.round += 1
        self.buffer = ""
        self.tool_call = None
        self.marker = None
        self.marker_text = ""
        self.relayed = False
        self.ignored_indexes.clear()

    @property
    def assistant_text(self) -> str:
        """The assistant turn to carry into the next round."""
        return self.marker_text if self.marker is not None else self.buffer

    def update_envelope(self, delta: StreamDelta) -> None:
        """Carry the round's identifiers; the model name stays the request's."""
        if delta.id:
            self.envelope = Envelope(
                id=delta.id,
                created=delta.created or self.envelope.created,
                model=self.model,
                system_fingerprint=delta.system_fingerprint,
            )

    def absorb_fragment(self, fragment: ToolCallFragment) -> bool:
        """
        Add a tool-call fragment to the pending call.

        Returns:
            False when the fragment belongs to a second tool call and was
            dropped.
        """
        if self.tool_call is None:
            self.tool_call = PendingToolCall(index=fragment.index)
        elif fragment.index != self.tool_call.index:
            self.ignored_indexes.add(fragment.index)
            return False
        self.tool_call.absorb(fragment)
        return True
