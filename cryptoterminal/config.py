"""
CryptoTerminal - Core Configuration Module

Centralized configuration management using Pydantic Settings.
API keys for the data provider and the model are supplied by the environment.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LunarCrushConfig(BaseSettings):
    """LunarCrush MCP server configuration."""

    model_config = SettingsConfigDict(env_prefix="LUNARCRUSH_")

    api_key: str = Field(default="", description="LunarCrush API key")
    base_url: str = Field(
        default="https://lunarcrush.ai",
        description="LunarCrush MCP host",
    )
    sse_path: str = Field(
        default="/sse",
        description="Path of the Server-Sent-Events endpoint",
    )
    connect_timeout_seconds: float = Field(
        default=30.0,
        description="Bound for opening the stream and receiving the message endpoint",
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        description="Bound for a single JSON-RPC round trip",
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class GeminiConfig(BaseSettings):
    """Google Gemini generative AI configuration."""

    model_config = SettingsConfigDict(env_prefix="GEMINI_", populate_by_name=True)

    api_key: str = Field(
        default="",
        alias="GOOGLE_GEMINI_API_KEY",
        description="Google Gemini API key",
    )
    model: str = Field(default="gemini-2.0-flash-lite", description="Model name")
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Generative Language REST endpoint",
    )
    temperature: float = Field(default=0.7)
    top_k: int = Field(default=40)
    top_p: float = Field(default=0.95)
    max_output_tokens: int = Field(default=2048)
    timeout_seconds: float = Field(default=60.0, description="HTTP timeout per call")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class OrchestrationConfig(BaseSettings):
    """Tool orchestration limits."""

    model_config = SettingsConfigDict(env_prefix="ORCHESTRATION_")

    max_tool_calls: int = Field(
        default=4,
        ge=1,
        description="Maximum number of tool calls executed per analysis",
    )
    chart_max_points: int = Field(
        default=20,
        ge=2,
        description="Target size of the decimated price series",
    )


class APIConfig(BaseSettings):
    """REST API configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0", description="API host")
    port: int = Field(default=8000, description="API port")
    workers: int = Field(default=4, description="Number of workers")
    reload: bool = Field(default=True, description="Enable auto-reload")
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    env: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="CRYPTOTERMINAL_ENV",
    )
    debug: bool = Field(default=True, alias="CRYPTOTERMINAL_DEBUG")
    log_level: str = Field(default="INFO", alias="CRYPTOTERMINAL_LOG_LEVEL")

    # Sub-configurations
    lunarcrush: LunarCrushConfig = Field(default_factory=LunarCrushConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    @property
    def is_local(self) -> bool:
        """Check if running in local development mode."""
        return self.env == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience alias
settings = get_settings()
