"""
Tool executor: runs a dispatch table entry for one request.
"""

import logging
import threading
from typing import Optional

from ..errors import OrchestrationCancelled
from ..models import ToolsConfig
from .command import build_command_tool
from .lights import LightController, build_lights_tool
from .registry import ToolRegistry, ToolResult

logger = logging.getLogger(__name__)


def build_default_registry(
    tools_config: ToolsConfig,
    light_controller: Optional[LightController] = None,
) -> ToolRegistry:
    """
    Build the two-entry dispatch table (shell command, light control).

    Args:
        tools_config: Tool settings (command allow-list, known fixtures).
        light_controller: Device network handle; a LAN-backed controller
            is created when omitted.
    """
    registry = ToolRegistry()
    registry.register(
        build_command_tool(
            allowed_commands=tools_config.command.allowed_commands,
            timeout=tools_config.command.timeout,
        )
    )
    registry.register(
        build_lights_tool(
            controller=light_controller or LightController(),
            fixtures=tools_config.lights.fixtures,
        )
    )
    return registry


class ToolExecutor:
    """Executes registry tools on behalf of a single request.

    The cancellation event is shared with the request's relay; handlers
    that block on external processes poll it.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        cancel_event: Optional[threading.Event] = None,
        execution_id: Optional[str] = None,
    ) -> None:
        self.registry = registry
        self.cancel_event = cancel_event or threading.Event()
        self.execution_id = execution_id

    def execute(self, action_name: str, arguments: dict) -> ToolResult:
        """
        Run a tool with already validated arguments.

        Args:
            action_name: Tool name or alias.
            arguments: Validated argument mapping for the tool.

        Returns:
            ToolResult; handler failures are converted into failed results.

        Raises:
            OrchestrationCancelled: If the request was cancelled.
        """
        id_prefix = f"[{self.execution_id}] " if self.execution_id else ""

        tool = self.registry.get(action_name)
        if tool is None:
            logger.warning(f"{id_prefix}Unsupported action: {action_name}")
            return ToolResult(
                output="", success=False, error=f"unsupported action '{action_name}'"
            )

        if self.cancel_event.is_set():
            raise OrchestrationCancelled(f"cancelled before running {tool.name}")

        logger.info(f"{id_prefix}Executing {tool.describe(arguments)}")
        try:
            result = tool.handler(arguments, self.cancel_event)
        except OrchestrationCancelled:
            raise
        except Exception as e:
            logger.exception(f"{id_prefix}Tool '{tool.name}' raised: {e}")
            result = ToolResult(output="", success=False, error=str(e))

        logger.debug(
            f"{id_prefix}Tool '{tool.name}' finished: success={result.success}"
        )
        return result
