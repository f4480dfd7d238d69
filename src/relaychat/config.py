"""relaychat configuration: loads from relaychat.yaml + .env."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_yaml_config() -> dict[str, Any]:
    """Load relaychat.yaml from RELAYCHAT_CONFIG_PATH or the working directory."""
    config_path = os.getenv("RELAYCHAT_CONFIG_PATH")
    search_paths = [Path(config_path)] if config_path else [Path("relaychat.yaml")]
    for path in search_paths:
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}
    return {}


def _yaml_without_env(data: dict[str, Any], prefix: str) -> dict[str, Any]:
    """YAML keys that no environment variable overrides."""
    return {key: value for key, value in data.items() if f"{prefix}{key}".upper() not in os.environ}


def _split_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        return [item.strip() for item in text.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value).strip()] if str(value).strip() else []


class LLMConfig(BaseSettings):
    """LLM provider configuration."""

    model: str = Field(
        default="anthropic/claude-sonnet-4-20250514",
        description="LiteLLM model identifier",
    )
    api_key: str = Field(default="", description="API key for the LLM provider")
    api_base: str | None = Field(default=None, description="Custom API base URL")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, gt=0)

    model_config = SettingsConfigDict(env_prefix="RELAYCHAT_LLM_")


class McpServerConfig(BaseSettings):
    """Weather tool gateway configuration."""

    host: str = Field(default="0.0.0.0", description="Tool gateway bind host")
    port: int = Field(default=3000, ge=1, le=65535, description="Tool gateway bind port")
    server_name: str = "weatherMcp"
    server_version: str = "1.0.0"
    nws_api_base: str = Field(default="https://api.weather.gov", description="National Weather Service API")
    user_agent: str = "weather-app/1.0"
    request_timeout_s: float = Field(default=15.0, gt=0)
    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> list[str]:
        return _split_list(value)

    model_config = SettingsConfigDict(env_prefix="RELAYCHAT_MCP_")


class RelayConfig(BaseSettings):
    """Root relaychat configuration."""

    # Server
    host: str = Field(default="0.0.0.0", description="Relay bind host")
    port: int = Field(default=3001, ge=1, le=65535, description="Relay bind port")
    service_name: str = "chatbot-backend"
    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    # Tool augmentation; unset disables it
    mcp_server_url: str | None = Field(default=None, description="Tool gateway base URL")
    mcp_timeout_s: float = Field(default=10.0, gt=0)

    # Relay behaviour
    emit_messages: bool = Field(default=True, description="Forward assembled messages as 'message' events")
    ping_interval_s: int = Field(default=15, gt=0, description="SSE keep-alive comment interval")

    # Sub-configs
    llm: LLMConfig = Field(default_factory=LLMConfig)
    mcp: McpServerConfig = Field(default_factory=McpServerConfig)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="'json' or 'console'")

    model_config = SettingsConfigDict(
        env_prefix="RELAYCHAT_",
        env_nested_delimiter="__",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> list[str]:
        return _split_list(value)

    @field_validator("mcp_server_url", mode="before")
    @classmethod
    def _blank_url_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def tools_enabled(self) -> bool:
        return bool(self.mcp_server_url)

    @classmethod
    def load(cls) -> RelayConfig:
        """Load config from YAML + env vars (env takes precedence)."""
        yaml_cfg = _load_yaml_config()

        llm_data = yaml_cfg.pop("llm", {})
        mcp_data = yaml_cfg.pop("mcp", {})

        # Only pass YAML sub-configs if they have data;
        # otherwise let pydantic-settings pick up env vars
        kwargs: dict[str, Any] = _yaml_without_env(yaml_cfg, "RELAYCHAT_")
        if llm_data:
            kwargs["llm"] = LLMConfig(**_yaml_without_env(llm_data, "RELAYCHAT_LLM_"))
        if mcp_data:
            kwargs["mcp"] = McpServerConfig(**_yaml_without_env(mcp_data, "RELAYCHAT_MCP_"))

        return cls(**kwargs)


# Singleton
_config: RelayConfig | None = None


def get_config() -> RelayConfig:
    """Get or create the global config."""
    global _config
    if _config is None:
        _config = RelayConfig.load()
    return _config
