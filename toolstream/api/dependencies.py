"""
Process-wide collaborators of the chat route.

Built lazily from configuration on first use; tests replace them through
``app.dependency_overrides``.
"""

from functools import lru_cache

from ..config import config
from ..orchestration.upstream import UpstreamClient
from ..tools.executor import build_default_registry
from ..tools.registry import ToolRegistry


@lru_cache(maxsize=1)
def get_upstream_client() -> UpstreamClient:
    return UpstreamClient(
        base_url=config.upstream.base_url,
        api_key=config.upstream.api_key,
        temperature=config.upstream.temperature,
    )


@lru_cache(maxsize=1)
def get_registry() -> ToolRegistry:
    return build_default_registry(config.tools)
