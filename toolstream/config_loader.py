"""
Configuration loader for toolstream.

Loads configuration from a YAML file with support for
environment variable interpolation. A ``.env`` file in the working
directory is loaded first so its values take part in interpolation.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from .models import (
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
from .models.config import DEFAULT_FIXTURES

load_dotenv()

logger = logging.getLogger(__name__)

# Default config path relative to project root
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"

# Regex for environment variable interpolation: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

# Singleton cache for app config
_app_config: Optional[AppConfig] = None


def resolve_env_vars(value: str) -> str:
    """
    Resolve environment variable references in a string.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: String potentially containing env var references

    Returns:
        String with env vars resolved
    """

    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any) -> Any:
    """Recursively substitute environment variables in a data structure."""
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _as_bool(value: Any, default: bool = False) -> bool:
    """Interpret YAML booleans and interpolated "true"/"false" strings."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_list(value: Any, default: list[str]) -> list[str]:
    """Accept a YAML list or a comma-separated (interpolated) string."""
    if value is None or value == "":
        return list(default)
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


def _parse_upstream_config(data: dict) -> UpstreamConfig:
    """Parse upstream connection configuration from dict."""
    return UpstreamConfig(
        base_url=data.get("base_url") or "https://api.groq.com/openai/v1",
        api_key=data.get("api_key", ""),
        model=data.get("model") or "llama3-70b-8192",
        temperature=float(data.get("temperature", 0.2)),
    )


def _parse_orchestrator_config(data: dict) -> OrchestratorConfig:
    """Parse orchestrator configuration from dict."""
    max_rounds = int(data.get("max_rounds", 5))
    if max_rounds < 1:
        raise ValueError(f"orchestrator.max_rounds must be positive, got {max_rounds}")

    return OrchestratorConfig(
        max_rounds=max_rounds,
        system_prompt_enabled=_as_bool(data.get("system_prompt_enabled"), True),
        initial_tools=_as_list(data.get("initial_tools"), ["command", "lights"]),
    )


def _parse_summarizer_config(data: dict) -> SummarizerConfig:
    """Parse summarizer configuration from dict."""
    return SummarizerConfig(model=data.get("model", "") or "")


def _parse_tools_config(data: dict) -> ToolsConfig:
    """Parse tools configuration from dict."""
    command_data = data.get("command", {}) or {}
    lights_data = data.get("lights", {}) or {}

    return ToolsConfig(
        command=CommandToolConfig(
            allowed_commands=_as_list(command_data.get("allowed_commands"), ["kubectl"]),
            timeout=float(command_data.get("timeout", 0) or 0),
        ),
        lights=LightsToolConfig(
            fixtures=_as_list(lights_data.get("fixtures"), DEFAULT_FIXTURES),
        ),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server configuration from dict."""
    return ServerConfig(
        host=data.get("host", "0.0.0.0"),
        port=int(data.get("port", 8080)),
        workers=int(data.get("workers", 1)),
        reload=_as_bool(data.get("reload"), False),
    )


def _parse_logging_config(data: dict) -> LoggingConfig:
    """Parse logging configuration from dict."""
    return LoggingConfig(level=data.get("level") or "INFO")


def _parse_langfuse_config(data: dict) -> LangfuseConfig:
    """Parse Langfuse configuration from dict."""
    return LangfuseConfig(
        public_key=data.get("public_key", ""),
        secret_key=data.get("secret_key", ""),
        host=data.get("host", ""),
        debug=_as_bool(data.get("debug"), False),
    )


def parse_app_config(raw_config: dict) -> AppConfig:
    """
    Build an AppConfig from an already loaded (raw) YAML mapping.

    Environment variables are substituted before parsing.
    """
    raw_config = _substitute_env_vars_recursive(raw_config)

    return AppConfig(
        version=str(raw_config.get("version", "1.0")),
        upstream=_parse_upstream_config(raw_config.get("upstream", {}) or {}),
        orchestrator=_parse_orchestrator_config(raw_config.get("orchestrator", {}) or {}),
        summarizer=_parse_summarizer_config(raw_config.get("summarizer", {}) or {}),
        tools=_parse_tools_config(raw_config.get("tools", {}) or {}),
        server=_parse_server_config(raw_config.get("server", {}) or {}),
        logging=_parse_logging_config(raw_config.get("logging", {}) or {}),
        langfuse=_parse_langfuse_config(raw_config.get("langfuse", {}) or {}),
    )


def load_app_config(path: Optional[str] = None, reload: bool = False) -> AppConfig:
    """
    Load application configuration from a YAML file.

    Uses a singleton pattern - subsequent calls return the cached config
    unless reload=True is specified.

    Args:
        path: Path to the YAML configuration file. If None, uses
              CONFIG_PATH env var or the default path (config/config.yaml).
        reload: If True, force reload from disk instead of using cache.

    Returns:
        AppConfig with all configuration loaded. Defaults are used when
        the file does not exist.

    Raises:
        ValueError: If the config is invalid
    """
    global _app_config

    if _app_config is not None and not reload:
        return _app_config

    if path is None:
        path = os.environ.get("CONFIG_PATH", str(DEFAULT_CONFIG_PATH))

    config_path = Path(path)

    if not config_path.exists():
        logger.warning(f"Config not found at {config_path}, using defaults")
        _app_config = parse_app_config({})
        return _app_config

    logger.debug(f"Loading configuration from {config_path}")

    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raise ValueError(f"Configuration file {config_path} is empty")

    _app_config = parse_app_config(raw_config)

    logger.debug(
        f"Configuration loaded: version={_app_config.version}, "
        f"model={_app_config.upstream.model}"
    )
    return _app_config


def reset_config_cache() -> None:
    """Reset the configuration cache, forcing a reload on next access."""
    global _app_config
    _app_config = None
    logger.debug("Configuration cache reset")
