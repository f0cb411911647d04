"""
Configuration management for the shopping agent.

Settings come from environment variables (a local .env file is honoured) or
from a YAML config file, and are exposed as a typed dataclass.

Transport values: "auto" (default) | "rest" | "mcp"
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


TRANSPORT_PREFERENCES = ("auto", "rest", "mcp")

DEFAULT_MAX_ITERATIONS = 20
DEFAULT_REQUEST_TIMEOUT = 30.0  # seconds, per outbound HTTP call
DEFAULT_ACP_API_VERSION = "2026-01-30"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def validate_transport(value: str) -> str:
    """Return the normalised transport preference or raise ValueError."""
    normalised = (value or "auto").strip().lower()
    if normalised not in TRANSPORT_PREFERENCES:
        raise ValueError(
            f"Invalid transport '{value}'. Expected one of: {', '.join(TRANSPORT_PREFERENCES)}"
        )
    return normalised


@dataclass
class AgentConfig:
    """Configuration for one shopping agent."""

    # Agent loop
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    verbose: bool = False

    # Merchant clients
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    preferred_transport: str = "auto"

    # ACP merchant (optional; enables session-checkout fallback on discovery)
    acp_endpoint: Optional[str] = None
    acp_api_key: Optional[str] = None
    acp_api_version: str = DEFAULT_ACP_API_VERSION

    # Model configuration
    openai_model: str = DEFAULT_OPENAI_MODEL

    def __post_init__(self):
        self.preferred_transport = validate_transport(self.preferred_transport)
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

    @property
    def acp_enabled(self) -> bool:
        """True if both an ACP endpoint and API key are configured."""
        return bool(self.acp_endpoint and self.acp_api_key)

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Build configuration from environment variables."""
        return cls(
            max_iterations=int(os.environ.get("UCP_AGENT_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS)),
            verbose=_env_bool("UCP_AGENT_VERBOSE"),
            request_timeout=float(os.environ.get("UCP_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)),
            preferred_transport=os.environ.get("UCP_TRANSPORT", "auto"),
            acp_endpoint=os.environ.get("ACP_ENDPOINT") or None,
            acp_api_key=os.environ.get("ACP_API_KEY") or None,
            acp_api_version=os.environ.get("ACP_API_VERSION", DEFAULT_ACP_API_VERSION),
            openai_model=os.environ.get("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
        )

    @classmethod
    def from_yaml(cls, config_path: Optional[Union[str, Path]] = None) -> "AgentConfig":
        """Load configuration from a YAML file; missing file means defaults."""
        if config_path is None:
            return cls()
        path = Path(config_path)
        if not path.exists():
            return cls()

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        agent_config = data.get('agent', {})
        acp_config = agent_config.get('acp', {})

        return cls(
            max_iterations=agent_config.get('max_iterations', DEFAULT_MAX_ITERATIONS),
            verbose=agent_config.get('verbose', False),
            request_timeout=agent_config.get('request_timeout', DEFAULT_REQUEST_TIMEOUT),
            preferred_transport=agent_config.get('transport', 'auto'),
            acp_endpoint=acp_config.get('endpoint'),
            acp_api_key=acp_config.get('api_key'),
            acp_api_version=acp_config.get('api_version', DEFAULT_ACP_API_VERSION),
            openai_model=agent_config.get('openai_model', DEFAULT_OPENAI_MODEL),
        )
