"""
Tests for Langfuse tracing integration (SDK v3).

Tests cover:
- Client disabled states (credentials, auth check, init failure)
- Context managers as no-ops when disabled
- Trace, span and generation lifecycle with a mocked Langfuse
- Engine rounds, tool executions and summaries being traced
"""

from unittest.mock import MagicMock, patch

import pytest

from toolstream.models import LangfuseConfig
from toolstream.tracing import (
    TracingClient,
    TracingContext,
    get_tracing_client,
    init_tracing_client,
    shutdown_tracing,
)

CREDENTIALS = LangfuseConfig(public_key="pk-test", secret_key="sk-test")


@pytest.fixture
def mock_langfuse():
    """Patch the Langfuse class and install an enabled tracing client."""
    with patch("toolstream.tracing.client.Langfuse") as mock_class:
        instance = MagicMock()
        instance.auth_check.return_value = True
        mock_class.return_value = instance
        init_tracing_client(CREDENTIALS)
        try:
            yield instance
        finally:
            shutdown_tracing()


def _observation_names(instance):
    return [c.kwargs["name"] for c in instance.start_as_current_observation.call_args_list]


class TestTracingClient:
    """Tests for TracingClient."""

    def test_disabled_without_credentials(self):
        client = TracingClient(LangfuseConfig())
        assert client.enabled is False
        assert "credentials not configured" in client.error.lower()

    def test_disabled_with_partial_credentials(self):
        client = TracingClient(LangfuseConfig(public_key="pk-test"))
        assert client.enabled is False

    def test_flush_and_shutdown_no_op_when_disabled(self):
        client = TracingClient(LangfuseConfig())
        client.flush()
        client.shutdown()

    @patch("toolstream.tracing.client.Langfuse")
    def test_enabled_with_valid_credentials(self, mock_langfuse_class):
        mock_langfuse_class.return_value.auth_check.return_value = True
        client = TracingClient(LangfuseConfig(public_key="pk", secret_key="sk", host="http://lf:3000"))

        assert client.enabled is True
        assert client.error is None
        assert mock_langfuse_class.call_args.kwargs["host"] == "http://lf:3000"

    @patch("toolstream.tracing.client.Langfuse")
    def test_failed_auth_check_disables(self, mock_langfuse_class):
        mock_langfuse_class.return_value.auth_check.return_value = False
        client = TracingClient(CREDENTIALS)
        assert client.enabled is False
        assert "auth_check" in client.error

    @patch("toolstream.tracing.client.Langfuse")
    def test_init_failure_disables(self, mock_langfuse_class):
        mock_langfuse_class.side_effect = RuntimeError("unreachable")
        client = TracingClient(CREDENTIALS)
        assert client.enabled is False
        assert "unreachable" in client.error

    @patch("toolstream.tracing.client.Langfuse")
    def test_flush_handles_exception(self, mock_langfuse_class):
        instance = mock_langfuse_class.return_value
        instance.auth_check.return_value = True
        instance.flush.side_effect = RuntimeError("network")
        TracingClient(CREDENTIALS).flush()
        instance.flush.assert_called_once()

    def test_singleton_lifecycle(self, mock_langfuse):
        assert get_tracing_client().enabled is True
        shutdown_tracing()
        assert get_tracing_client() is None
        mock_langfuse.shutdown.assert_called_once()


class TestTracingContextDisabled:
    """Context managers are no-ops without a client."""

    def test_span_and_generation_yield_idle_observations(self):
        context = TracingContext(execution_id="exec-test")
        context.start_trace(prompt="hi")
        with context.span("tool_command") as span:
            span.set_output({"ok": True})
            assert span.recording is False
        with context.generation("summarize", "llama3") as generation:
            generation.set_output("text")
        context.end_trace(output="done")


class TestTracingContextEnabled:
    """Trace lifecycle against a mocked Langfuse."""

    def test_start_trace_creates_root_span(self, mock_langfuse):
        context = TracingContext(execution_id="exec-1")
        context.start_trace(name="chat_completion", prompt="hi", metadata={"model": "llama3"})

        kwargs = mock_langfuse.start_as_current_observation.call_args.kwargs
        assert kwargs["as_type"] == "span"
        assert kwargs["name"] == "chat_completion"
        assert kwargs["input"] == {"prompt": "hi"}
        assert kwargs["metadata"]["execution_id"] == "exec-1"
        assert kwargs["metadata"]["model"] == "llama3"

    def test_children_are_skipped_without_root(self, mock_langfuse):
        context = TracingContext(execution_id="exec-1")
        with context.span("orphan"):
            pass
        mock_langfuse.start_as_current_observation.assert_not_called()

    def test_generation_records_model_and_output(self, mock_langfuse):
        context = TracingContext(execution_id="exec-1")
        context.start_trace()
        with context.generation("summarize", "llama3", input="Prompt: x") as generation:
            generation.set_output("summary")

        kwargs = mock_langfuse.start_as_current_observation.call_args.kwargs
        assert kwargs["as_type"] == "generation"
        assert kwargs["model"] == "llama3"
        assert kwargs["trace_context"] is not None
        handle = mock_langfuse.start_as_current_observation.return_value.__enter__.return_value
        assert handle.update.call_args.kwargs["output"] == "summary"

    def test_exception_marks_span_as_error(self, mock_langfuse):
        context = TracingContext(execution_id="exec-1")
        context.start_trace()
        handle = mock_langfuse.start_as_current_observation.return_value.__enter__.return_value

        with pytest.raises(ValueError):
            with context.span("tool_command"):
                raise ValueError("boom")

        assert handle.update.call_args.kwargs["metadata"]["status"] == "error"

    def test_span_start_failure_is_tolerated(self, mock_langfuse):
        context = TracingContext(execution_id="exec-1")
        context.start_trace()
        mock_langfuse.start_as_current_observation.side_effect = RuntimeError("exporter down")

        with context.span("tool_command") as span:
            assert span.recording is False


class TestEngineTracing:
    """The engine traces rounds, tools and summaries."""

    def test_engine_observations(self, mock_langfuse, registry, summarizer):
        from toolstream.orchestration import OrchestrationEngine, Relay, run_in_thread

        from conftest import FakeUpstream, tool_call_delta

        context = TracingContext(execution_id="exec-1")
        context.start_trace()
        upstream = FakeUpstream(
            [[tool_call_delta(name="execute_command", arguments='{"command": "echo hi"}')]]
        )
        engine = OrchestrationEngine(
            upstream=upstream,
            registry=registry,
            summarizer=summarizer,
            tracing_context=context,
            execution_id="exec-1",
        )
        relay = Relay()
        thread = run_in_thread(engine, "llama3", [{"role": "user", "content": "hi"}], relay)
        list(relay)
        thread.join(timeout=5)
        context.end_trace(output="done")

        assert _observation_names(mock_langfuse) == [
            "chat_completion",
            "upstream_round_1",
            "tool_command",
            "summarize",
        ]
