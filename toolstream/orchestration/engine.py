"""
Streaming tool-orchestration engine.

Consumes the upstream stream round by round, relays content to the
caller, and when the model asks for an action (a structured tool call or
a textual ``Action: Name[argument]`` followed by ``PAUSE``) runs the tool,
summarizes the result and relays the summary in place of the raw output.

Per round:
    1. Open a streamed upstream call with the active tool schemas
    2. Relay content until an action is pending, accumulate the rest
    3. Drain the round; a structured tool call beats a textual marker
    4. Structured call: execute, summarize, relay the summary, finish
    5. Textual marker: execute, summarize, relay the summary, append the
       observation and start the next round with that tool's schema
    6. Unknown action: append an observation and start the next round
    7. Nothing pending: finish
"""

import json
import logging
import threading
from contextlib import nullcontext
from typing import Optional

from ..errors import (
    OrchestrationCancelled,
    RoundLimitExceeded,
    ToolArgumentError,
)
from ..models import AppConfig
from ..tools.executor import ToolExecutor
from ..tools.registry import ToolDefinition, ToolRegistry
from ..tracing import TracingContext
from .markers import find_action_marker, text_through_pause
from .prompts import TOOL_FOLLOWUP_PROMPT, build_system_prompt
from .relay import Relay
from .state import EngineState, OrchestrationState, OrchestrationStep
from .summarizer import Summarizer, build_narrative
from .upstream import StreamDelta, UpstreamClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 5


def last_user_prompt(messages: list[dict]) -> str:
    """Text of the most recent user message, empty when there is none."""
    for message in reversed(messages):
        if message.get("role") == "user" and isinstance(message.get("content"), str):
            return message["content"]
    return ""


class OrchestrationEngine:
    """
    Runs one request's orchestration loop and writes it to a relay.

    Collaborators are injected so that every request (and every test) can
    use its own upstream client, dispatch table and summarizer.
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        registry: ToolRegistry,
        summarizer: Summarizer,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        initial_tools: Optional[list[str]] = None,
        system_prompt: Optional[str] = None,
        summarizer_model: str = "",
        tracing_context: Optional[TracingContext] = None,
        execution_id: Optional[str] = None,
    ):
        self.upstream = upstream
        self.registry = registry
        self.summarizer = summarizer
        self.max_rounds = max_rounds
        self.initial_tools = list(initial_tools or [])
        self.system_prompt = system_prompt
        self.summarizer_model = summarizer_model
        self.tracing_context = tracing_context
        self.execution_id = execution_id
        self._log_prefix = f"[{execution_id}] " if execution_id else ""

        self.state: Optional[OrchestrationState] = None
        self.steps: list[OrchestrationStep] = []

    def run(self, model: str, messages: list[dict], relay: Relay) -> None:
        """
        Orchestrate a request, closing ``relay`` exactly once.

        The relay is closed cleanly when the model produced a final answer,
        and with the first fatal error otherwise. Nothing is raised.

        Args:
            model: Model name for upstream calls and relayed chunks.
            messages: The caller's conversation, not modified.
            relay: Output channel of this request.
        """
        error: Optional[BaseException] = None
        try:
            self._run(model, messages, relay)
        except OrchestrationCancelled as e:
            logger.info(f"{self._log_prefix}Request cancelled: {e}")
            error = e
        except Exception as e:
            logger.error(f"{self._log_prefix}Orchestration failed: {e}")
            error = e
        if error is not None and self.state is not None:
            if self.state.state is not EngineState.DONE:
                self.state.transition(EngineState.DONE)
        relay.close(error)

    def _run(self, model: str, messages: list[dict], relay: Relay) -> None:
        conversation = [dict(message) for message in messages]
        if self.system_prompt and not any(
            message.get("role") == "system" for message in conversation
        ):
            conversation.insert(0, {"role": "system", "content": self.system_prompt})

        state = OrchestrationState(
            model=model,
            conversation=conversation,
            active_tools=list(self.initial_tools),
            user_prompt=last_user_prompt(messages),
        )
        self.state = state
        self.steps = []
        executor = ToolExecutor(
            self.registry,
            cancel_event=relay.cancel_event,
            execution_id=self.execution_id,
        )

        while state.state is not EngineState.DONE:
            if state.round >= self.max_rounds:
                raise RoundLimitExceeded(self.max_rounds)
            state.begin_round()
            logger.debug(
                f"{self._log_prefix}Round {state.round} with tools {state.active_tools}"
            )
            self._stream_round(state, relay)

            if state.tool_call is not None:
                self._handle_tool_call(state, relay, executor)
            elif state.marker is not None:
                self._handle_marker(state, relay, executor)
            else:
                state.transition(EngineState.DONE)

        logger.info(
            f"{self._log_prefix}Completed in {state.round} round(s), "
            f"{len(self.steps)} action(s)"
        )

    def _stream_round(self, state: OrchestrationState, relay: Relay) -> None:
        """Drain one upstream round into the state, relaying content."""
        tools = self.registry.schemas(state.active_tools) or None
        with self._generation(
            f"upstream_round_{state.round}",
            state.model,
            input=state.conversation,
            metadata={"tools": state.active_tools},
        ) as generation:
            deltas = self.upstream.stream_chat(state.model, state.conversation, tools)
            try:
                for delta in deltas:
                    if relay.cancelled:
                        raise OrchestrationCancelled("cancelled while streaming")
                    self._absorb(state, delta, relay)
            finally:
                close = getattr(deltas, "close", None)
                if close is not None:
                    close()
            if generation is not None:
                generation.set_output(state.buffer)

        if state.ignored_indexes:
            logger.warning(
                f"{self._log_prefix}Ignored additional tool calls at indexes "
                f"{sorted(state.ignored_indexes)}"
            )

    def _absorb(self, state: OrchestrationState, delta: StreamDelta, relay: Relay) -> None:
        state.update_envelope(delta)

        for fragment in delta.tool_calls:
            state.absorb_fragment(fragment)
        if state.tool_call is not None and state.state is EngineState.STREAMING:
            state.transition(EngineState.AWAITING_ACTION)

        if not delta.content:
            return
        state.buffer += delta.content
        if state.pending is not None:
            return

        relay.send(delta.content, state.envelope)
        state.relayed = True
        marker = find_action_marker(state.buffer)
        if marker is not None:
            logger.debug(f"{self._log_prefix}Found action marker {marker.name}")
            state.marker = marker
            state.marker_text = text_through_pause(state.buffer)
            state.transition(EngineState.AWAITING_ACTION)

    def _handle_tool_call(
        self, state: OrchestrationState, relay: Relay, executor: ToolExecutor
    ) -> None:
        """A structured tool call ends the request with its summary."""
        call = state.tool_call
        tool = self.registry.get(call.name) if call.name else None
        if tool is None:
            self._unsupported(state, call.name)
            return

        try:
            arguments = json.loads(call.arguments or "{}")
        except json.JSONDecodeError as e:
            raise ToolArgumentError(tool.schema.name, str(e)) from e
        if not isinstance(arguments, dict):
            raise ToolArgumentError(tool.schema.name, "arguments must be a JSON object")
        arguments = tool.validate(arguments)

        self._act(state, relay, executor, tool, arguments)
        state.transition(EngineState.DONE)

    def _handle_marker(
        self, state: OrchestrationState, relay: Relay, executor: ToolExecutor
    ) -> None:
        """A textual action continues the conversation with its observation."""
        marker = state.marker
        tool = self.registry.get(marker.name)
        if tool is None:
            self._unsupported(state, marker.name)
            return

        try:
            arguments = tool.parse_text(marker.argument)
        except ToolArgumentError as e:
            # Ask again with only this tool attached so the answer is structured
            logger.info(f"{self._log_prefix}Escalating {marker.name}[...]: {e}")
            state.conversation.append({"role": "assistant", "content": state.assistant_text})
            state.conversation.append({"role": "user", "content": TOOL_FOLLOWUP_PROMPT})
            state.active_tools = [tool.name]
            state.transition(EngineState.STREAMING)
            return

        step = self._act(state, relay, executor, tool, arguments)
        state.conversation.append({"role": "assistant", "content": state.assistant_text})
        state.conversation.append(
            {"role": "user", "content": f"Observation: {step.observation}"}
        )
        state.active_tools = [tool.name]
        state.transition(EngineState.STREAMING)

    def _act(
        self,
        state: OrchestrationState,
        relay: Relay,
        executor: ToolExecutor,
        tool: ToolDefinition,
        arguments: dict,
    ) -> OrchestrationStep:
        """Execute, summarize and relay the summary of one action."""
        state.transition(EngineState.EXECUTING)
        with self._span(f"tool_{tool.name}", input=arguments) as span:
            result = executor.execute(tool.name, arguments)
            if span is not None:
                span.set_output({"success": result.success, "text": result.text[:500]})
                if not result.success:
                    span.set_status("error")

        state.transition(EngineState.SUMMARIZING)
        if relay.cancelled:
            raise OrchestrationCancelled("cancelled before summary")

        narrative = build_narrative(state.user_prompt, tool.describe(arguments), result)
        summary_model = self.summarizer_model or state.model
        with self._generation("summarize", summary_model, input=narrative) as generation:
            summary = self.summarizer.summarize(
                summary_model, narrative, cancel_event=relay.cancel_event
            )
            if generation is not None:
                generation.set_output(summary)

        step = OrchestrationStep(
            round=state.round,
            action=tool.name,
            arguments=arguments,
            success=result.success,
            observation=result.text,
            summary=summary,
        )
        self.steps.append(step)

        # Keep the summary off the line of the relayed text
        relay.send("\n" + summary if state.relayed else summary, state.envelope)
        return step

    def _unsupported(self, state: OrchestrationState, name: str) -> None:
        logger.warning(f"{self._log_prefix}Unsupported action '{name}'")
        self.steps.append(
            OrchestrationStep(
                round=state.round,
                action=name,
                observation=f"unsupported action '{name}'",
            )
        )
        if state.assistant_text:
            state.conversation.append({"role": "assistant", "content": state.assistant_text})
        state.conversation.append(
            {"role": "user", "content": f"Observation: unsupported action '{name}'"}
        )
        state.transition(EngineState.STREAMING)

    def _span(self, name: str, **kwargs):
        if self.tracing_context is None:
            return nullcontext()
        return self.tracing_context.span(name, **kwargs)

    def _generation(self, name: str, model: str, **kwargs):
        if self.tracing_context is None:
            return nullcontext()
        return self.tracing_context.generation(name, model, **kwargs)


def build_engine(
    app_config: AppConfig,
    upstream: UpstreamClient,
    registry: ToolRegistry,
    tracing_context: Optional[TracingContext] = None,
    execution_id: Optional[str] = None,
) -> OrchestrationEngine:
    """Create an engine wired from the application configuration."""
    system_prompt = None
    if app_config.orchestrator.system_prompt_enabled:
        system_prompt = build_system_prompt(app_config.tools.lights.fixtures)

    return OrchestrationEngine(
        upstream=upstream,
        registry=registry,
        summarizer=Summarizer(upstream),
        max_rounds=app_config.orchestrator.max_rounds,
        initial_tools=app_config.orchestrator.initial_tools,
        system_prompt=system_prompt,
        summarizer_model=app_config.summarizer.model,
        tracing_context=tracing_context,
        execution_id=execution_id,
    )


def run_in_thread(
    engine: OrchestrationEngine,
    model: str,
    messages: list[dict],
    relay: Relay,
) -> threading.Thread:
    """Start ``engine.run`` on a daemon thread owned by one request."""
    thread = threading.Thread(
        target=engine.run,
        args=(model, messages, relay),
        name=f"orchestration-{engine.execution_id or 'request'}",
        daemon=True,
    )
    thread.start()
    return thread
