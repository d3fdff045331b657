"""
toolstream tools package

Available tools:
- command: shell command execution behind an allow-list
- lights: LIFX light power control on the local network
"""

from .registry import ParameterSpec, ToolSchema, ToolResult, ToolDefinition, ToolRegistry
from .command import execute_command, check_command
from .lights import LightController
from .executor import ToolExecutor, build_default_registry

__all__ = [
    "ParameterSpec",
    "ToolSchema",
    "ToolResult",
    "ToolDefinition",
    "ToolRegistry",
    "execute_command",
    "check_command",
    "LightController",
    "ToolExecutor",
    "build_default_registry",
]
