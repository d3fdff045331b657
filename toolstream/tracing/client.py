"""
Process-wide Langfuse client (SDK v3).

Tracing degrades to a no-op when credentials are missing or the server
cannot be reached; the proxy itself never fails because of it.
"""

import logging
from typing import Optional

from langfuse import Langfuse

from ..models import LangfuseConfig

logger = logging.getLogger(__name__)


class TracingClient:
    """Owns the Langfuse client and whether tracing is active."""

    def __init__(self, settings: LangfuseConfig, langfuse: Optional[Langfuse] = None):
        """
        Args:
            settings: Langfuse section of the application config.
            langfuse: Prebuilt client, skips construction and the auth check.
        """
        self._client: Optional[Langfuse] = None
        self._error: Optional[str] = None

        if langfuse is not None:
            self._client = langfuse
            return

        if not settings.is_configured:
            self._error = "Langfuse credentials not configured"
            logger.debug(f"Tracing disabled: {self._error}")
            return

        if settings.host and not settings.host.startswith(("http://", "https://")):
            logger.warning(
                f"LANGFUSE_HOST '{settings.host}' has no scheme, "
                "expected http://hostname:port or https://hostname:port"
            )

        kwargs = {
            "public_key": settings.public_key,
            "secret_key": settings.secret_key,
            "debug": settings.debug,
        }
        if settings.host:
            kwargs["host"] = settings.host

        try:
            client = Langfuse(**kwargs)
            if not client.auth_check():
                self._error = "Langfuse auth_check() failed, check LANGFUSE_HOST and keys"
                logger.warning(f"Tracing disabled: {self._error}")
                return
        except Exception as e:
            self._error = f"Langfuse unavailable: {e}"
            logger.warning(f"Tracing disabled: {self._error}")
            return

        self._client = client
        logger.info(f"Langfuse tracing enabled (host: {settings.host or 'default'})")

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def client(self) -> Optional[Langfuse]:
        return self._client

    def flush(self) -> None:
        if self._client is None:
            return
        try:
            self._client.flush()
        except Exception as e:
            logger.warning(f"Failed to flush tracing events: {e}")

    def shutdown(self) -> None:
        """Flush remaining events and stop the exporter."""
        if self._client is None:
            return
        try:
            self._client.shutdown()
            logger.info("Langfuse tracing client shut down")
        except Exception as e:
            logger.warning(f"Error during tracing shutdown: {e}")


_tracing_client: Optional[TracingClient] = None


def init_tracing_client(
    settings: LangfuseConfig, langfuse: Optional[Langfuse] = None
) -> TracingClient:
    """Create the process-wide tracing client."""
    global _tracing_client
    _tracing_client = TracingClient(settings, langfuse=langfuse)
    return _tracing_client


def get_tracing_client() -> Optional[TracingClient]:
    return _tracing_client


def shutdown_tracing() -> None:
    global _tracing_client
    if _tracing_client:
        _tracing_client.shutdown()
        _tracing_client = None
