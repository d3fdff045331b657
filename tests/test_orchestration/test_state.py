"""Tests for per-request orchestration state."""

import pytest

from toolstream.orchestration.markers import ActionMarker
from toolstream.orchestration.state import (
    EngineState,
    InvalidTransition,
    OrchestrationState,
)
from toolstream.orchestration.upstream import ToolCallFragment

from conftest import content_delta


def _state():
    return OrchestrationState(model="llama3", conversation=[], active_tools=["command"])


class TestOrchestrationState:
    """Tests for transitions and per-round accumulators."""

    def test_initial_state(self):
        state = _state()
        assert state.state is EngineState.STREAMING
        assert state.history == [EngineState.STREAMING]
        assert state.envelope.model == "llama3"

    def test_invalid_transition(self):
        state = _state()
        with pytest.raises(InvalidTransition):
            state.transition(EngineState.EXECUTING)

    def test_done_is_terminal(self):
        state = _state()
        state.transition(EngineState.DONE)
        with pytest.raises(InvalidTransition):
            state.transition(EngineState.STREAMING)

    def test_fragments_accumulate(self):
        state = _state()
        state.absorb_fragment(ToolCallFragment(index=0, id="call_1", name="execute_command", arguments='{"comm'))
        state.absorb_fragment(ToolCallFragment(index=0, arguments='and": "ls"}'))
        assert state.tool_call.id == "call_1"
        assert state.tool_call.name == "execute_command"
        assert state.tool_call.arguments == '{"command": "ls"}'

    def test_second_index_dropped(self):
        state = _state()
        state.absorb_fragment(ToolCallFragment(index=0, name="execute_command"))
        assert state.absorb_fragment(ToolCallFragment(index=1, name="control_lights")) is False
        assert state.tool_call.name == "execute_command"
        assert state.ignored_indexes == {1}

    def test_begin_round_resets(self):
        state = _state()
        state.buffer = "text"
        state.absorb_fragment(ToolCallFragment(index=0, name="x"))
        state.begin_round()
        assert state.round == 1
        assert state.buffer == ""
        assert state.tool_call is None
        assert state.pending is None
        assert state.marker_text == ""
        assert state.relayed is False

    def test_assistant_text_stops_at_marker(self):
        """Test that a marker round carries only the text up to PAUSE."""
        state = _state()
        state.buffer = "Action: Command[ls]\nPAUSE\nObservation: made up"
        assert state.assistant_text == state.buffer
        state.marker = ActionMarker("Command", "ls")
        state.marker_text = "Action: Command[ls]\nPAUSE"
        assert state.assistant_text == "Action: Command[ls]\nPAUSE"

    def test_envelope_keeps_request_model(self):
        state = _state()
        state.update_envelope(content_delta("x", id="chatcmpl-9", created=42))
        assert state.envelope.id == "chatcmpl-9"
        assert state.envelope.created == 42
        assert state.envelope.model == "llama3"
