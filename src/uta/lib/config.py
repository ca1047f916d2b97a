"""
Configuration management and validation for the UTA bridge.

Provides configuration loading, validation, and environment overrides
for the bridge router, its adapters, and the ambient observability stack.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional, List

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from uta.lib.errors import ConfigurationError


logger = logging.getLogger(__name__)

RUNTIME_MODES = ("local", "claude-api", "openai", "ollama")


class RuntimeConfig(BaseModel):
    """Adapter selection and failover settings."""
    default_mode: str = "local"
    adapter_priority: List[str] = Field(default_factory=lambda: ["claude-api", "openai", "ollama", "local"])
    failover_enabled: bool = False

    @field_validator('default_mode')
    @classmethod
    def validate_default_mode(cls, v):
        """Ensure the default mode names a known adapter."""
        if v not in RUNTIME_MODES:
            raise ValueError(f"Unknown runtime mode: {v}")
        return v

    @field_validator('adapter_priority')
    @classmethod
    def validate_priority(cls, v):
        """Ensure every priority entry names a known adapter."""
        unknown = [mode for mode in v if mode not in RUNTIME_MODES]
        if unknown:
            raise ValueError(f"Unknown runtime modes in adapter_priority: {unknown}")
        return v


class ClaudeProviderConfig(BaseModel):
    """Anthropic Messages API settings."""
    api_key: Optional[str] = None
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = Field(default=1024, gt=0)
    temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    max_history: int = Field(default=30, ge=2)


class OpenAIProviderConfig(BaseModel):
    """OpenAI Chat Completions settings."""
    api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_history: int = Field(default=30, ge=2)


class OllamaProviderConfig(BaseModel):
    """Self-hosted Ollama settings."""
    base_url: str = "http://127.0.0.1:11434"
    model: str = "llama3.1:8b-instruct"
    options: Optional[Dict[str, Any]] = None
    request_timeout: float = Field(default=120.0, gt=0)
    max_history: int = Field(default=40, ge=2)
    max_plan_attempts: int = Field(default=2, ge=1, le=2)


class ProvidersConfig(BaseModel):
    """Per-provider configuration."""
    claude: ClaudeProviderConfig = Field(default_factory=ClaudeProviderConfig)
    openai: OpenAIProviderConfig = Field(default_factory=OpenAIProviderConfig)
    ollama: OllamaProviderConfig = Field(default_factory=OllamaProviderConfig)
    max_tool_rounds: int = Field(default=8, ge=1, le=50)


class SessionConfig(BaseModel):
    """Configuration for bridge sessions."""
    idle_timeout_seconds: int = Field(default=3600, gt=0)
    subscriber_queue_size: int = Field(default=256, ge=1)


class TelemetryConfig(BaseModel):
    """Configuration for the adapter telemetry ring buffer."""
    recent_limit: int = Field(default=50, ge=1)


class LoggingConfig(BaseModel):
    """Configuration for logging settings."""
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="structured", pattern="^(structured|simple)$")
    directory: Optional[str] = None
    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)  # 10MB
    backup_count: int = Field(default=5, ge=1)
    include_trace: bool = True
    environment: str = "development"


class ObservabilityConfig(BaseModel):
    """Configuration for OpenTelemetry export."""
    enabled: bool = False
    service_name: str = "uta-bridge"
    service_version: str = "1.0.0"
    environment: str = "development"
    otlp_endpoint: str = "http://localhost:4317"
    trace_sampling_ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    export_timeout: int = Field(default=30, gt=0)
    resource_attributes: Dict[str, str] = Field(default_factory=dict)


class BridgeConfig(BaseModel):
    """Main bridge configuration."""
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    debug: bool = False
    config_file_path: Optional[str] = None


class ConfigurationManager:
    """Manages bridge configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.config: Optional[BridgeConfig] = None

    def _get_default_config_path(self) -> str:
        """Get the default configuration file path."""
        if "UTA_CONFIG_PATH" in os.environ:
            return os.environ["UTA_CONFIG_PATH"]

        candidates = [
            "~/.uta/config/config.yaml",
            "./config/config.yaml",
            "./config.yaml"
        ]

        for candidate in candidates:
            path = Path(candidate).expanduser()
            if path.exists():
                return str(path)

        return "~/.uta/config/config.yaml"

    def load_config(self, config_path: Optional[str] = None) -> BridgeConfig:
        """Load and validate configuration from file and environment."""
        if config_path:
            self.config_path = config_path

        config_file = Path(self.config_path).expanduser()

        try:
            config_data: Dict[str, Any] = {}
            if config_file.exists():
                with open(config_file, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            else:
                logger.info(f"No configuration file at {config_file}, using defaults")

            config_data = self._merge_environment_config(config_data)

            self.config = BridgeConfig(**config_data)
            if config_file.exists():
                self.config.config_file_path = str(config_file)

            return self.config

        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {config_file}: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")

    def _merge_environment_config(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configuration with environment variables."""
        env_mappings = {
            "UTA_DEFAULT_MODE": ["runtime", "default_mode"],
            "UTA_FAILOVER": ["runtime", "failover_enabled"],
            "UTA_LOG_LEVEL": ["logging", "level"],
            "UTA_DEBUG": ["debug"],
            "ANTHROPIC_API_KEY": ["providers", "claude", "api_key"],
            "CLAUDE_API_MODEL": ["providers", "claude", "model"],
            "OPENAI_API_KEY": ["providers", "openai", "api_key"],
            "OPENAI_ROUTER_MODEL": ["providers", "openai", "model"],
            "OLLAMA_BASE_URL": ["providers", "ollama", "base_url"],
            "OLLAMA_MODEL": ["providers", "ollama", "model"],
            "OLLAMA_OPTIONS": ["providers", "ollama", "options"],
            "OTEL_EXPORTER_OTLP_ENDPOINT": ["observability", "otlp_endpoint"]
        }

        for env_var, config_path in env_mappings.items():
            if env_var not in os.environ:
                continue

            value: Any = os.environ[env_var]

            if env_var in ("UTA_FAILOVER", "UTA_DEBUG"):
                value = value.lower() in ("true", "1", "yes")
            elif env_var == "OLLAMA_OPTIONS":
                try:
                    value = json.loads(value)
                except json.JSONDecodeError as e:
                    logger.warning(f"OLLAMA_OPTIONS failed to parse as JSON: {e}")
                    continue

            current = config_data
            for key in config_path[:-1]:
                current = current.setdefault(key, {})
            current[config_path[-1]] = value

        return config_data

    def get_config(self) -> BridgeConfig:
        """Get the loaded configuration."""
        if self.config is None:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self.config

    def validate_config(self) -> List[str]:
        """Validate the current configuration and return any warnings."""
        warnings = []
        config = self.get_config()

        if config.debug and config.observability.environment == "production":
            warnings.append("Debug mode enabled in production environment")

        if not config.providers.claude.api_key:
            warnings.append("ANTHROPIC_API_KEY not set; claude-api adapter will be unavailable")

        if not config.providers.openai.api_key:
            warnings.append("OPENAI_API_KEY not set; openai adapter will be unavailable")

        if not config.providers.ollama.model:
            warnings.append("OLLAMA_MODEL not set; ollama adapter will be unavailable")

        if config.runtime.default_mode not in config.runtime.adapter_priority:
            warnings.append(
                f"Default mode {config.runtime.default_mode} is not listed in adapter_priority"
            )

        return warnings

    def reload_config(self) -> BridgeConfig:
        """Reload configuration from file."""
        return self.load_config()


# Global configuration manager instance
_config_manager: Optional[ConfigurationManager] = None


def initialize_config(config_path: Optional[str] = None) -> ConfigurationManager:
    """Initialize global configuration manager."""
    global _config_manager
    _config_manager = ConfigurationManager(config_path)
    _config_manager.load_config()
    return _config_manager


def get_config_manager() -> ConfigurationManager:
    """Get the global configuration manager instance."""
    if _config_manager is None:
        raise ConfigurationError("Configuration not initialized. Call initialize_config() first.")
    return _config_manager


def get_config() -> BridgeConfig:
    """Get the global configuration."""
    return get_config_manager().get_config()
