"""
Data models for toolstream.
"""

from .config import (
    UpstreamConfig,
    OrchestratorConfig,
    SummarizerConfig,
    CommandToolConfig,
    LightsToolConfig,
    ToolsConfig,
    ServerConfig,
    LoggingConfig,
    LangfuseConfig,
    AppConfig,
)

__all__ = [
    "UpstreamConfig",
    "OrchestratorConfig",
    "SummarizerConfig",
    "CommandToolConfig",
    "LightsToolConfig",
    "ToolsConfig",
    "ServerConfig",
    "LoggingConfig",
    "LangfuseConfig",
    "AppConfig",
]
