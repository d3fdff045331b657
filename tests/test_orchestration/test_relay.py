"""Tests for the rendezvous relay and SSE framing."""

import json
import threading
import time

import pytest

from toolstream.errors import OrchestrationCancelled, RelayClosedError, UpstreamError
from toolstream.orchestration.relay import (
    DONE_FRAME,
    Envelope,
    Relay,
    build_chunk,
    format_frame,
)

ENVELOPE = Envelope(id="chatcmpl-abc", created=1700000000, model="llama3", system_fingerprint="fp_1")


def _write(relay, texts, error=None):
    """Send texts from a background thread, then close the relay."""
    outcome = {}

    def writer():
        try:
            for text in texts:
                relay.send(text, ENVELOPE)
        except Exception as e:
            outcome["error"] = e
            return
        relay.close(error)

    thread = threading.Thread(target=writer, daemon=True)
    thread.start()
    return thread, outcome


class TestFraming:
    """Tests for chunk construction and SSE frames."""

    def test_chunk_carries_envelope(self):
        chunk = build_chunk("hi", ENVELOPE)
        assert chunk["id"] == "chatcmpl-abc"
        assert chunk["object"] == "chat.completion.chunk"
        assert chunk["created"] == 1700000000
        assert chunk["model"] == "llama3"
        assert chunk["system_fingerprint"] == "fp_1"
        assert chunk["choices"] == [{"index": 0, "delta": {"content": "hi"}, "finish_reason": None}]

    def test_frame_is_single_line(self):
        frame = format_frame(build_chunk("a\nb", ENVELOPE))
        assert frame.startswith("data: ")
        assert frame.endswith("}\n")
        assert frame.count("\n") == 1
        assert json.loads(frame[len("data: "):])["choices"][0]["delta"]["content"] == "a\nb"

    def test_done_frame(self):
        assert DONE_FRAME == "data: [DONE]\n"

    def test_new_envelope(self):
        envelope = Envelope.new("llama3")
        assert envelope.id.startswith("chatcmpl-")
        assert envelope.model == "llama3"
        assert envelope.created > 0


class TestRelay:
    """Tests for the single-writer, single-reader channel."""

    def test_frames_in_order_then_done(self):
        relay = Relay()
        thread, outcome = _write(relay, ["Hel", "lo"])
        frames = list(relay)
        thread.join(timeout=2)

        assert "error" not in outcome
        assert len(frames) == 3
        assert [json.loads(f[6:])["choices"][0]["delta"]["content"] for f in frames[:2]] == ["Hel", "lo"]
        assert frames[-1] == DONE_FRAME

    def test_error_close_has_no_done(self):
        relay = Relay()
        thread, _ = _write(relay, ["partial"], error=UpstreamError("boom"))
        received = []
        with pytest.raises(UpstreamError, match="boom"):
            for frame in relay:
                received.append(frame)
        thread.join(timeout=2)

        assert len(received) == 1
        assert DONE_FRAME not in received

    def test_send_blocks_until_read(self):
        relay = Relay()
        thread, _ = _write(relay, ["one"])
        time.sleep(0.2)
        assert thread.is_alive()

        chunks = relay.chunks()
        assert next(chunks)["choices"][0]["delta"]["content"] == "one"
        with pytest.raises(StopIteration):
            next(chunks)
        thread.join(timeout=2)
        assert not thread.is_alive()

    def test_close_twice_raises(self):
        relay = Relay()
        relay.close()
        with pytest.raises(RelayClosedError):
            relay.close()

    def test_send_after_close_raises(self):
        relay = Relay()
        relay.close()
        with pytest.raises(RelayClosedError):
            relay.send("late", ENVELOPE)

    def test_reader_disconnect_cancels_writer(self):
        relay = Relay()
        thread, outcome = _write(relay, ["a", "b", "c"])
        frames = iter(relay)
        next(frames)
        frames.close()
        thread.join(timeout=2)

        assert relay.cancelled
        assert isinstance(outcome["error"], OrchestrationCancelled)

    def test_cancel_unblocks_pending_send(self):
        relay = Relay()
        thread, outcome = _write(relay, ["never read"])
        time.sleep(0.1)
        relay.cancel()
        thread.join(timeout=2)

        assert not thread.is_alive()
        assert isinstance(outcome["error"], OrchestrationCancelled)
