"""
Pytest configuration and fixtures for toolstream tests.
"""

import copy
from typing import Optional
from unittest.mock import MagicMock

import pytest

from toolstream.models import CommandToolConfig, LightsToolConfig, ToolsConfig
from toolstream.orchestration.upstream import StreamDelta, ToolCallFragment
from toolstream.tools.executor import build_default_registry
from toolstream.tools.lights import LightController


def content_delta(text: str, id: str = "chatcmpl-round1", created: int = 1700000000) -> StreamDelta:
    """An upstream delta carrying text."""
    return StreamDelta(
        id=id,
        created=created,
        model="upstream-model",
        system_fingerprint="fp_test",
        content=text,
    )


def tool_call_delta(
    name: Optional[str] = None,
    arguments: str = "",
    index: int = 0,
    call_id: Optional[str] = None,
    id: str = "chatcmpl-round1",
) -> StreamDelta:
    """An upstream delta carrying one tool-call fragment."""
    return StreamDelta(
        id=id,
        created=1700000000,
        model="upstream-model",
        system_fingerprint="fp_test",
        tool_calls=[ToolCallFragment(index=index, id=call_id, name=name, arguments=arguments)],
    )


class FakeUpstream:
    """
    Scripted stand-in for UpstreamClient.

    Each call to ``stream_chat`` consumes the next scripted round: a list of
    deltas, where an exception instance is raised at its position.
    """

    def __init__(self, rounds: list[list]):
        self.rounds = list(rounds)
        self.calls: list[dict] = []
        self.closed_streams = 0

    def stream_chat(self, model, messages, tools=None):
        self.calls.append(
            {"model": model, "messages": copy.deepcopy(messages), "tools": tools}
        )
        if not self.rounds:
            raise AssertionError("unexpected upstream call")
        items = self.rounds.pop(0)
        return self._stream(items)

    def _stream(self, items):
        try:
            for item in items:
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.closed_streams += 1

    def close(self):
        pass


@pytest.fixture
def mock_light():
    """A LIFX light whose group label is 'Bedroom'."""
    light = MagicMock()
    light.get_group_label.return_value = "Bedroom"
    return light


@pytest.fixture
def mock_lan(mock_light):
    """A LifxLAN stand-in that discovers ``mock_light``."""
    lan = MagicMock()
    lan.get_lights.return_value = [mock_light]
    return lan


@pytest.fixture
def tools_config():
    """Unrestricted commands so tests can run plain shell utilities."""
    return ToolsConfig(
        command=CommandToolConfig(allowed_commands=["*"]),
        lights=LightsToolConfig(fixtures=["bedroom", "living room"]),
    )


@pytest.fixture
def registry(tools_config, mock_lan):
    """The default dispatch table backed by the mocked LAN."""
    return build_default_registry(tools_config, light_controller=LightController(lan=mock_lan))


@pytest.fixture
def summarizer():
    """A summarizer returning a fixed summary."""
    mock = MagicMock()
    mock.summarize.return_value = "Summary of the action."
    return mock
