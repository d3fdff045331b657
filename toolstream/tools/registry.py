"""
Tool registry - the fixed dispatch table of local actions.

Each tool is defined once with its schema (what the model sees), its
argument handling (structured and textual) and its handler (what runs).
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional


@dataclass(frozen=True)
class ParameterSpec:
    """A single parameter of a tool schema."""

    type: str
    description: str = ""
    enum: Optional[tuple[str, ...]] = None
    required: bool = True


@dataclass(frozen=True)
class ToolSchema:
    """Named, versionless description of a tool as advertised to the model."""

    name: str
    description: str
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)

    def to_openai(self) -> dict:
        """Render as an OpenAI function-calling tool definition."""
        properties: dict = {}
        required: list[str] = []
        for param_name, param in self.parameters.items():
            prop: dict = {"type": param.type}
            if param.description:
                prop["description"] = param.description
            if param.enum:
                prop["enum"] = list(param.enum)
            properties[param_name] = prop
            if param.required:
                required.append(param_name)

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        }


@dataclass
class ToolResult:
    """Outcome of a tool execution. Failures are values, not exceptions."""

    output: str
    success: bool
    error: Optional[str] = None

    @property
    def text(self) -> str:
        """The text handed to the summarizer: output, or the error detail."""
        if self.success:
            return self.output
        if self.output and self.error and self.output not in self.error:
            return f"{self.error}\n{self.output}"
        return self.error or self.output


@dataclass
class ToolDefinition:
    """A dispatch table entry."""

    name: str
    schema: ToolSchema
    handler: Callable[[dict, threading.Event], ToolResult]
    validate: Callable[[dict], dict]
    parse_text: Callable[[str], dict]
    describe: Callable[[dict], str]
    aliases: tuple[str, ...] = ()


class ToolRegistry:
    """Dispatch table keyed by tool name, schema name and aliases.

    Lookups are case-insensitive. The table is filled once at startup and
    read concurrently afterwards.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._index: dict[str, str] = {}

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool under its name, schema name and aliases."""
        self._tools[tool.name] = tool
        for key in (tool.name, tool.schema.name, *tool.aliases):
            self._index[key.casefold()] = tool.name

    def get(self, name: str) -> Optional[ToolDefinition]:
        """Resolve a tool by any of its names."""
        key = self._index.get(name.strip().casefold())
        return self._tools.get(key) if key else None

    def all_tools(self) -> dict[str, ToolDefinition]:
        """Get a copy of all registered tools."""
        return self._tools.copy()

    def schemas(self, names: Optional[list[str]] = None) -> list[dict]:
        """OpenAI tool definitions for the given tools (all when None).

        Unknown names are skipped.
        """
        if names is None:
            tools = list(self._tools.values())
        else:
            tools = [tool for tool in (self.get(name) for name in names) if tool]
        return [tool.schema.to_openai() for tool in tools]

    def get_tools_summary(self) -> str:
        """Get formatted summary of all tools for prompts."""
        lines = []
        for name, tool in self._tools.items():
            lines.append(f"- {name}: {tool.schema.description}")
        return "\n".join(lines)
