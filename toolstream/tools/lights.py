"""
Light control tool.

Finds a LIFX fixture on the local network by its group label and switches
its power. A missing fixture is reported in the result text, not raised.
"""

import json
import logging
import re
import threading
from typing import Any, Optional

from lifxlan import LifxLAN
from lifxlan.errors import WorkflowException

from ..errors import ToolArgumentError
from .registry import ParameterSpec, ToolDefinition, ToolResult, ToolSchema

logger = logging.getLogger(__name__)

# "bedroom, on" / "living room: off" / "bedroom=true"
TEXT_ARGUMENT_PATTERN = re.compile(
    r"^\s*['\"]?(?P<name>[^,:=]+?)['\"]?\s*[,:=]\s*['\"]?(?P<state>on|off|true|false)['\"]?\s*$",
    re.IGNORECASE,
)

STATE_WORDS = {"on": True, "true": True, "off": False, "false": False}

# Accepted spellings of the fixture parameter
NAME_KEYS = ("device_name", "deviceName", "light_name")


def build_lights_schema(fixtures: list[str]) -> ToolSchema:
    return ToolSchema(
        name="control_lights",
        description="Control lifx lights with given parameters to turn them on or off",
        parameters={
            "device_name": ParameterSpec(
                type="string",
                description="The name of the light fixture to control",
                enum=tuple(fixtures),
            ),
            "state": ParameterSpec(
                type="boolean",
                description="The state to set the light to on (true) or off (false)",
            ),
        },
    )


class LightController:
    """
    Looks up fixtures on the LAN and sets their power state.

    The LifxLAN handle is created on first use so that processes which
    never touch a light do not open discovery sockets.
    """

    def __init__(self, lan: Optional[Any] = None) -> None:
        self._lan = lan
        self._lock = threading.Lock()

    @property
    def lan(self) -> Any:
        with self._lock:
            if self._lan is None:
                self._lan = LifxLAN()
            return self._lan

    def find_light(self, name: str) -> Optional[tuple[Any, str]]:
        """
        Find a light whose group label matches ``name`` (case-insensitive).

        Returns:
            (light, group_label) or None when no fixture matches.
        """
        lights = self.lan.get_lights()
        logger.debug(f"{len(lights)} lights discovered")

        for light in lights:
            try:
                label = light.get_group_label()
            except WorkflowException as e:
                logger.warning(f"Error getting group for light: {e}")
                continue
            if label and label.casefold() == name.casefold():
                return light, label
        return None

    def set_power(self, name: str, state: bool) -> ToolResult:
        """Switch the named fixture on or off."""
        try:
            found = self.find_light(name)
        except WorkflowException as e:
            logger.error(f"Light discovery failed: {e}")
            return ToolResult(
                output="", success=False, error=f"Unable to find {name}: {e}"
            )

        if found is None:
            logger.info(f"No light found for '{name}'")
            return ToolResult(output="", success=False, error=f"Unable to find {name}")

        light, label = found
        try:
            light.set_power(state)
        except WorkflowException as e:
            logger.error(f"Setting power on '{label}' failed: {e}")
            return ToolResult(
                output="", success=False, error=f"Unable to set {label} light: {e}"
            )

        return ToolResult(
            output=f"{label} light has been set to {str(state).lower()}",
            success=True,
        )


def _coerce_state(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return STATE_WORDS.get(value.strip().lower())
    return None


def validate_lights_arguments(arguments: dict) -> dict:
    """Validate structured arguments for the lights tool."""
    name = next(
        (arguments[key] for key in NAME_KEYS if isinstance(arguments.get(key), str)),
        None,
    )
    if not name or not name.strip():
        raise ToolArgumentError("control_lights", "device_name is required")

    state = _coerce_state(arguments.get("state"))
    if state is None:
        raise ToolArgumentError(
            "control_lights", f"state must be a boolean, got {arguments.get('state')!r}"
        )
    return {"device_name": name.strip(), "state": state}


def parse_lights_text(text: str) -> dict:
    """
    Parse the bracketed argument of ``Action: Lights[...]``.

    Accepts a JSON object or ``<fixture>, <on|off>``.
    """
    text = text.strip()
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ToolArgumentError("control_lights", str(e)) from e
        if not isinstance(data, dict):
            raise ToolArgumentError("control_lights", "expected a JSON object")
        return validate_lights_arguments(data)

    match = TEXT_ARGUMENT_PATTERN.match(text)
    if not match:
        raise ToolArgumentError("control_lights", f"cannot parse {text!r}")
    return {
        "device_name": match.group("name").strip(),
        "state": STATE_WORDS[match.group("state").lower()],
    }


def describe_lights(arguments: dict) -> str:
    state = str(arguments["state"]).lower()
    return f"Action: set {arguments['device_name']} light to {state}"


def build_lights_tool(
    controller: LightController,
    fixtures: list[str],
) -> ToolDefinition:
    """Create the dispatch table entry for light control."""
    known = {fixture.casefold() for fixture in fixtures}

    def handler(arguments: dict, cancel_event: threading.Event) -> ToolResult:
        name = arguments["device_name"]
        if name.casefold() not in known:
            return ToolResult(
                output="",
                success=False,
                error=f"Unable to find {name} (known fixtures: {', '.join(fixtures)})",
            )
        return controller.set_power(name, arguments["state"])

    return ToolDefinition(
        name="lights",
        schema=build_lights_schema(fixtures),
        handler=handler,
        validate=validate_lights_arguments,
        parse_text=parse_lights_text,
        describe=describe_lights,
        aliases=("lifx", "controlLights", "light"),
    )
