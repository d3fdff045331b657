"""
Result summarizer.

Turns the narrative of an executed action (user prompt, action, raw result)
into a short answer with a secondary model call. The sub-call is streamed
upstream and drained here, so callers see a plain string.
"""

import logging
import threading
from typing import Optional

from ..errors import OrchestrationCancelled, SummarizerError, UpstreamError
from ..tools.registry import ToolResult
from .prompts import SUMMARY_SYSTEM_PROMPT
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)


def build_narrative(prompt: str, action: str, result: ToolResult) -> str:
    """
    Combine the user prompt, the executed action and its outcome.

    Args:
        prompt: The original user prompt.
        action: Description of the action, e.g. ``Command: kubectl get pods``.
        result: Tool outcome; failures contribute their error text.
    """
    return f"Prompt: {prompt}\n\n{action}\n\nResult: {result.text}"


class Summarizer:
    """
    Summarizes action results through the upstream model.

    Failures are raised as ``SummarizerError``; there is no fallback to the
    raw result.
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        system_prompt: str = SUMMARY_SYSTEM_PROMPT,
    ) -> None:
        """
        Initialize the summarizer.

        Args:
            upstream: Client used for the summary sub-call.
            system_prompt: Instruction sent as the system turn.
        """
        self._upstream = upstream
        self._system_prompt = system_prompt

    def summarize(
        self,
        model: str,
        narrative: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Generate a concise answer for a narrative.

        Args:
            model: Model used for the sub-call.
            narrative: Output of ``build_narrative``.
            cancel_event: Checked between deltas of the sub-call.

        Returns:
            All content fragments of the sub-call, concatenated.

        Raises:
            SummarizerError: If the sub-call fails.
            OrchestrationCancelled: If cancel_event was set.
        """
        messages = [
            {"role": "system", "content": self._system_prompt},
            {"role": "user", "content": narrative},
        ]

        parts: list[str] = []
        deltas = self._upstream.stream_chat(model, messages)
        try:
            for delta in deltas:
                if cancel_event is not None and cancel_event.is_set():
                    raise OrchestrationCancelled("cancelled during summary")
                if delta.content:
                    parts.append(delta.content)
        except UpstreamError as e:
            raise SummarizerError(f"summary call failed: {e}") from e
        finally:
            close = getattr(deltas, "close", None)
            if close is not None:
                close()

        summary = "".join(parts)
        logger.debug("Generated summary (%d chars)", len(summary))
        return summary
