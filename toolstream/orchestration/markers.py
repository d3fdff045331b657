"""
Textual action markers of the Thought / Action / PAUSE / Observation protocol.

A model following the protocol ends a reasoning step with::

    Thought: I should check the pods.
    Action: Command[kubectl get pods]
    PAUSE

Detection needs the accumulated text of the round, since markers are
split across deltas.
"""

import re
from dataclasses import dataclass
from typing import Optional

PAUSE_SENTINEL = "PAUSE"

# The argument ends at the first "]" followed by PAUSE, a newline or the end
ACTION_PATTERN = re.compile(
    r"Action:\s*(?P<name>\w+)\[(?P<argument>.*?)\][ \t]*(?=PAUSE|\r?\n|\Z)"
)


@dataclass(frozen=True)
class ActionMarker:
    """An ``Action: Name[argument]`` marker found in model text."""

    name: str
    argument: str


def find_action_marker(text: str) -> Optional[ActionMarker]:
    """
    Find the action the model paused for.

    Returns:
        The first marker in ``text`` once the pause sentinel is present,
        otherwise None.
    """
    if PAUSE_SENTINEL not in text:
        return None
    match = ACTION_PATTERN.search(text)
    if not match:
        return None
    return ActionMarker(name=match.group("name"), argument=match.group("argument"))


def text_through_pause(text: str) -> str:
    """Cut ``text`` after the pause sentinel that follows the first action."""
    match = ACTION_PATTERN.search(text)
    index = text.find(PAUSE_SENTINEL, match.end() if match else 0)
    if index < 0:
        return text
    return text[: index + len(PAUSE_SENTINEL)]
