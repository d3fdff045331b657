"""
Configuration models for toolstream.

Defines dataclasses for the YAML configuration file.
"""

from dataclasses import dataclass, field

DEFAULT_FIXTURES = ["bedroom", "living room"]


@dataclass
class UpstreamConfig:
    """Connection to the OpenAI-compatible completion service."""
    base_url: str = "https://api.groq.com/openai/v1"
    api_key: str = ""
    model: str = "llama3-70b-8192"
    temperature: float = 0.2


@dataclass
class OrchestratorConfig:
    """Configuration for the orchestration loop."""
    max_rounds: int = 5
    system_prompt_enabled: bool = True
    initial_tools: list[str] = field(default_factory=lambda: ["command", "lights"])


@dataclass
class SummarizerConfig:
    """Configuration for the summarizer sub-call.

    An empty model means "use the model named in the request".
    """
    model: str = ""


@dataclass
class CommandToolConfig:
    """Configuration for the shell command tool."""
    allowed_commands: list[str] = field(default_factory=lambda: ["kubectl"])
    timeout: float = 0.0

    @property
    def unrestricted(self) -> bool:
        """A single ``*`` entry turns the allow-list off."""
        return "*" in self.allowed_commands


@dataclass
class LightsToolConfig:
    """Configuration for the light control tool."""
    fixtures: list[str] = field(default_factory=lambda: list(DEFAULT_FIXTURES))


@dataclass
class ToolsConfig:
    """Configuration for the local tools."""
    command: CommandToolConfig = field(default_factory=CommandToolConfig)
    lights: LightsToolConfig = field(default_factory=LightsToolConfig)


@dataclass
class ServerConfig:
    """Configuration for the FastAPI server."""
    host: str = "0.0.0.0"
    port: int = 8080
    workers: int = 1
    reload: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """
    public_key: str = ""
    secret_key: str = ""
    host: str = ""
    debug: bool = False

    @property
    def is_configured(self) -> bool:
        """Check if Langfuse is configured (both keys present)."""
        return bool(self.public_key and self.secret_key)


@dataclass
class AppConfig:
    """
    Unified application configuration container.

    Holds all configuration sections loaded from config/config.yaml.
    """
    version: str = "1.0"
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    summarizer: SummarizerConfig = field(default_factory=SummarizerConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)

    @property
    def log_level(self) -> str:
        """Shortcut for logging.level."""
        return self.logging.level
