"""
Shell command tool.

Runs a command line through the host shell with stdout and stderr
combined. Execution failures are returned as ``ToolResult`` values so the
summarizer can explain them; only cancellation is raised.
"""

import logging
import re
import shlex
import subprocess
import threading
import time
from typing import Optional

from ..errors import OrchestrationCancelled, ToolArgumentError
from .registry import ParameterSpec, ToolDefinition, ToolResult, ToolSchema

logger = logging.getLogger(__name__)

# How often a running command checks for cancellation
POLL_INTERVAL = 0.1

# Shell operators that would let a command escape the allow-list
SHELL_CONTROL_PATTERN = re.compile(r"[;&|`<>\n]|\$\(")

COMMAND_SCHEMA = ToolSchema(
    name="execute_command",
    description="Execute a server command and return its combined output",
    parameters={
        "command": ParameterSpec(
            type="string",
            description="The complete command line to execute",
        ),
    },
)


def check_command(command: str, allowed_commands: list[str]) -> Optional[str]:
    """
    Check a command line against the allow-list.

    Args:
        command: The command line as given by the model.
        allowed_commands: Permitted executable names. A ``*`` entry
            permits everything.

    Returns:
        None when allowed, otherwise the rejection reason.
    """
    if "*" in allowed_commands:
        return None

    if SHELL_CONTROL_PATTERN.search(command):
        return f"unsupported command: {command} (shell operators are not allowed)"

    try:
        words = shlex.split(command)
    except ValueError as e:
        return f"unsupported command: {command} ({e})"

    if not words or words[0] not in allowed_commands:
        return (
            f"unsupported command: {command} "
            f"(allowed: {', '.join(allowed_commands) or 'none'})"
        )
    return None


def execute_command(
    command: str,
    allowed_commands: list[str],
    timeout: float = 0.0,
    cancel_event: Optional[threading.Event] = None,
) -> ToolResult:
    """
    Execute a command line via ``sh -c``.

    Args:
        command: Command line to run, passed to the shell unmodified.
        allowed_commands: Allow-list of executable names (``*`` for any).
        timeout: Seconds before the process is killed; 0 waits forever.
        cancel_event: When set, the process is killed and the call raises.

    Returns:
        ToolResult with the trimmed combined output.

    Raises:
        OrchestrationCancelled: If cancel_event was set while running.
    """
    rejection = check_command(command, allowed_commands)
    if rejection:
        logger.warning(f"Rejected command: {command!r}")
        return ToolResult(output="", success=False, error=rejection)

    try:
        proc = subprocess.Popen(
            ["sh", "-c", command],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except OSError as e:
        logger.error(f"Failed to start command {command!r}: {e}")
        return ToolResult(output="", success=False, error=str(e))

    deadline = time.monotonic() + timeout if timeout > 0 else None
    while True:
        try:
            output, _ = proc.communicate(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if cancel_event is not None and cancel_event.is_set():
                proc.kill()
                proc.communicate()
                raise OrchestrationCancelled(f"command cancelled: {command}")
            if deadline is not None and time.monotonic() >= deadline:
                proc.kill()
                output, _ = proc.communicate()
                logger.warning(f"Command timed out after {timeout}s: {command!r}")
                return ToolResult(
                    output=(output or "").strip(),
                    success=False,
                    error=f"command timed out after {timeout:g} seconds",
                )

    output = (output or "").strip()
    if proc.returncode != 0:
        logger.info(f"Command {command!r} exited with status {proc.returncode}")
        return ToolResult(
            output=output,
            success=False,
            error=f"exit status {proc.returncode}",
        )
    return ToolResult(output=output, success=True)


def validate_command_arguments(arguments: dict) -> dict:
    """Validate structured arguments for the command tool."""
    command = arguments.get("command")
    if not isinstance(command, str) or not command.strip():
        raise ToolArgumentError(
            COMMAND_SCHEMA.name, "command not found in function call arguments"
        )
    return {"command": command}


def parse_command_text(text: str) -> dict:
    """The bracketed argument of ``Action: Command[...]`` is the command line."""
    return validate_command_arguments({"command": text.strip()})


def describe_command(arguments: dict) -> str:
    return f"Command: {arguments['command']}"


def build_command_tool(
    allowed_commands: list[str],
    timeout: float = 0.0,
) -> ToolDefinition:
    """Create the dispatch table entry for shell commands."""

    def handler(arguments: dict, cancel_event: threading.Event) -> ToolResult:
        return execute_command(
            arguments["command"],
            allowed_commands=allowed_commands,
            timeout=timeout,
            cancel_event=cancel_event,
        )

    return ToolDefinition(
        name="command",
        schema=COMMAND_SCHEMA,
        handler=handler,
        validate=validate_command_arguments,
        parse_text=parse_command_text,
        describe=describe_command,
        aliases=("executeCommand",),
    )
