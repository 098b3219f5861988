"""Configuration loading and validation."""

from pathlib import Path
from typing import Annotated

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DiscordConfig(BaseModel):
    """Discord connection configuration."""

    token: SecretStr | None = None
    # Base URL of the web trace viewer; enables the "View trace" link button
    trace_viewer_url: str | None = None


class LLMConfig(BaseModel):
    """LLM API configuration."""

    anthropic_api_key: SecretStr | None = None
    model: str = "claude-opus-4-5-20251101"
    max_tokens: Annotated[int, Field(ge=1)] = 4096


class TraceConfig(BaseModel):
    """Trace storage and HTTP API configuration."""

    db_path: Path = Path("./data/traces.db")
    token: SecretStr | None = None
    max_body_bytes: Annotated[int, Field(ge=1)] = 256 * 1024
    trust_proxy: bool = False
    write_limit: Annotated[int, Field(ge=1)] = 30
    write_window_seconds: Annotated[int, Field(ge=1)] = 60
    host: str = "127.0.0.1"
    port: Annotated[int, Field(ge=1, le=65535)] = 8080
    # Where the bot reaches the read endpoint (usually this same server)
    api_base_url: str = "http://127.0.0.1:8080"


class AnchorConfig(BaseModel):
    """Heuristics for recovering a reply split across several messages."""

    max_preceding_messages: Annotated[int, Field(ge=1, le=100)] = 16
    chain_window_seconds: Annotated[float, Field(gt=0)] = 120.0


class LensConfig(BaseModel):
    """Alternative lens flow configuration."""

    custom_min_length: Annotated[int, Field(ge=1)] = 10
    custom_max_length: Annotated[int, Field(ge=1, le=4000)] = 500


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PROVENANCE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    traces: TraceConfig = Field(default_factory=TraceConfig)
    anchor: AnchorConfig = Field(default_factory=AnchorConfig)
    lens: LensConfig = Field(default_factory=LensConfig)


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
    1. YAML config file (passed as init values)
    2. Environment variables (PROVENANCE_* prefix)
    3. Default values

    Args:
        config_path: Path to YAML config file. If None, tries ./config.yaml

    Returns:
        Validated configuration object
    """
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    yaml_config: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

    # Filter out None values from YAML (e.g., "llm:" with no values parses as None)
    yaml_config = {k: v for k, v in yaml_config.items() if v is not None}

    return Config(**yaml_config)
