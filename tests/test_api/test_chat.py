"""Tests for OpenAI-compatible chat endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from toolstream.api.dependencies import get_registry, get_upstream_client
from toolstream.api.main import app
from toolstream.config import config
from toolstream.errors import UpstreamError

from conftest import FakeUpstream, content_delta, tool_call_delta

client = TestClient(app)


@pytest.fixture
def scripted_upstream(registry):
    """Install a scripted upstream and the mocked-LAN registry."""

    def install(rounds):
        upstream = FakeUpstream(rounds)
        app.dependency_overrides[get_upstream_client] = lambda: upstream
        app.dependency_overrides[get_registry] = lambda: registry
        return upstream

    yield install
    app.dependency_overrides.clear()


def _sse_payloads(body: str) -> list:
    return [line[len("data: "):] for line in body.split("\n") if line.startswith("data: ")]


class TestModelsEndpoint:
    """Tests for /v1/models endpoint."""

    def test_list_models(self):
        response = client.get("/v1/models")
        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "list"
        assert [m["id"] for m in data["data"]] == [config.upstream.model]
        assert data["data"][0]["object"] == "model"

    def test_get_model(self):
        response = client.get(f"/v1/models/{config.upstream.model}")
        assert response.status_code == 200
        assert response.json()["id"] == config.upstream.model

    def test_get_model_not_found(self):
        response = client.get("/v1/models/unknown-model")
        assert response.status_code == 404


class TestStreamingCompletions:
    """Tests for stream=true requests."""

    def test_streams_frames_then_done(self, scripted_upstream):
        scripted_upstream([[content_delta("Hello"), content_delta(" there")]])

        response = client.post(
            "/v1/chat/completions",
            json={"model": "llama3", "stream": True, "messages": [{"role": "user", "content": "hi"}]},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        payloads = _sse_payloads(response.text)
        assert payloads[-1] == "[DONE]"
        chunks = [json.loads(p) for p in payloads[:-1]]
        assert [c["choices"][0]["delta"]["content"] for c in chunks] == ["Hello", " there"]
        assert all(c["model"] == "llama3" for c in chunks)

    def test_frames_are_single_newline_terminated(self, scripted_upstream):
        scripted_upstream([[content_delta("x")]])
        response = client.post(
            "/v1/chat/completions",
            json={"stream": True, "messages": [{"role": "user", "content": "hi"}]},
        )
        assert response.text.endswith("\ndata: [DONE]\n")
        assert "\n\n" not in response.text

    def test_tool_call_streams_summary(self, scripted_upstream, mock_light):
        upstream = scripted_upstream(
            [
                [tool_call_delta(name="control_lights", arguments='{"device_name": "bedroom", "state": true}')],
                [content_delta("The bedroom light is now on.")],
            ]
        )

        response = client.post(
            "/v1/chat/completions",
            json={"stream": True, "messages": [{"role": "user", "content": "bedroom light on"}]},
        )

        payloads = _sse_payloads(response.text)
        assert payloads[-1] == "[DONE]"
        assert json.loads(payloads[0])["choices"][0]["delta"]["content"] == "The bedroom light is now on."
        mock_light.set_power.assert_called_once_with(True)
        # Second upstream call is the summarizer sub-call
        assert upstream.calls[1]["tools"] is None

    def test_default_model_from_config(self, scripted_upstream):
        upstream = scripted_upstream([[content_delta("ok")]])
        client.post(
            "/v1/chat/completions",
            json={"stream": True, "messages": [{"role": "user", "content": "hi"}]},
        )
        assert upstream.calls[0]["model"] == config.upstream.model

    def test_upstream_failure_has_no_done(self, scripted_upstream):
        scripted_upstream([[content_delta("partial"), UpstreamError("reset")]])

        response = client.post(
            "/v1/chat/completions",
            json={"stream": True, "messages": [{"role": "user", "content": "hi"}]},
        )

        payloads = _sse_payloads(response.text)
        assert "[DONE]" not in payloads
        assert json.loads(payloads[0])["choices"][0]["delta"]["content"] == "partial"


class TestNonStreamingCompletions:
    """Tests for stream=false requests."""

    def test_aggregated_response(self, scripted_upstream):
        scripted_upstream([[content_delta("The answer", id="chatcmpl-agg"), content_delta(" is 42", id="chatcmpl-agg")]])

        response = client.post(
            "/v1/chat/completions",
            json={"model": "llama3", "messages": [{"role": "user", "content": "What is 6 * 7?"}]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "chat.completion"
        assert data["id"] == "chatcmpl-agg"
        assert data["model"] == "llama3"
        assert data["choices"][0]["message"] == {"role": "assistant", "content": "The answer is 42"}
        assert data["choices"][0]["finish_reason"] == "stop"
        assert data["trace"] is None

    def test_include_trace(self, scripted_upstream):
        scripted_upstream(
            [
                [tool_call_delta(name="execute_command", arguments='{"command": "echo traced"}')],
                [content_delta("It printed traced.")],
            ]
        )

        response = client.post(
            "/v1/chat/completions",
            json={
                "include_trace": True,
                "messages": [{"role": "user", "content": "echo traced"}],
            },
        )

        trace = response.json()["trace"]
        assert len(trace) == 1
        assert trace[0]["action"] == "command"
        assert trace[0]["observation"] == "traced"
        assert trace[0]["summary"] == "It printed traced."

    def test_failure_returns_500(self, scripted_upstream):
        scripted_upstream([[UpstreamError("connection refused")]])
        response = client.post(
            "/v1/chat/completions",
            json={"messages": [{"role": "user", "content": "hi"}]},
        )
        assert response.status_code == 500
        assert "connection refused" in response.json()["detail"]

    def test_content_parts_are_flattened(self, scripted_upstream):
        upstream = scripted_upstream([[content_delta("ok")]])
        client.post(
            "/v1/chat/completions",
            json={
                "messages": [
                    {"role": "user", "content": [{"type": "text", "text": "part one"}, {"type": "text", "text": "part two"}]}
                ]
            },
        )
        assert upstream.calls[0]["messages"][-1] == {"role": "user", "content": "part one\npart two"}


class TestInputValidation:
    """Invalid requests are answered with 400."""

    def test_missing_messages(self):
        response = client.post("/v1/chat/completions", json={"model": "llama3"})
        assert response.status_code == 400

    def test_empty_messages(self):
        response = client.post("/v1/chat/completions", json={"messages": []})
        assert response.status_code == 400

    def test_unknown_role(self):
        response = client.post(
            "/v1/chat/completions",
            json={"messages": [{"role": "wizard", "content": "hi"}]},
        )
        assert response.status_code == 400
