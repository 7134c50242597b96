"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Provider Configuration Models
# =====================================================================


class GeminiConfig(BaseModel):
    """Gemini backend configuration."""

    api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY", description="Gemini API key")
    enabled: bool = Field(default=True, alias="GEMINI_ENABLED", description="Allow routing to Gemini")
    model: str = Field(
        default="google-gla:gemini-2.0-flash", alias="GEMINI_MODEL", description="pydantic_ai model string"
    )
    cost_per_token: float = Field(
        default=0.0000004, alias="GEMINI_COST_PER_TOKEN", description="Flat USD price per token"
    )

    model_config = {"populate_by_name": True}

    @property
    def available(self) -> bool:
        return self.enabled and bool(self.api_key)


class GroqConfig(BaseModel):
    """Groq backend configuration. Disabled unless explicitly enabled and keyed."""

    api_key: Optional[str] = Field(default=None, alias="GROQ_API_KEY", description="Groq API key")
    enabled: bool = Field(default=False, alias="GROQ_ENABLED", description="Allow routing to Groq")
    model: str = Field(default="groq:llama-3.1-8b-instant", alias="GROQ_MODEL", description="pydantic_ai model string")
    cost_per_token: float = Field(
        default=0.0000001, alias="GROQ_COST_PER_TOKEN", description="Flat USD price per token"
    )

    model_config = {"populate_by_name": True}

    @property
    def available(self) -> bool:
        return self.enabled and bool(self.api_key)


class ChatGatewayConfig(BaseModel):
    """Chat gateway (WhatsApp/Telegram relay) configuration."""

    url: Optional[str] = Field(default=None, alias="CHAT_GATEWAY_URL", description="Gateway base URL")
    api_key: Optional[str] = Field(default=None, alias="CHAT_GATEWAY_API_KEY", description="Bearer key for sends")
    webhook_secret: Optional[str] = Field(
        default=None, alias="CHAT_WEBHOOK_SECRET", description="Shared secret expected on inbound webhooks"
    )
    timeout: float = Field(default=10.0, alias="CHAT_GATEWAY_TIMEOUT", description="Send timeout in seconds")

    model_config = {"populate_by_name": True}


class PipelineConfig(BaseModel):
    """Pipeline orchestrator configuration."""

    step_timeout_seconds: float = Field(default=120.0, alias="PIPELINE_STEP_TIMEOUT_SECONDS")
    dedupe_window_seconds: float = Field(default=120.0, alias="PIPELINE_DEDUPE_WINDOW_SECONDS")
    max_revisions: int = Field(default=1, alias="PIPELINE_MAX_REVISIONS")
    progress_notifications: bool = Field(default=True, alias="PIPELINE_PROGRESS_NOTIFICATIONS")
    max_concurrent: int = Field(default=4, alias="MAX_CONCURRENT_PIPELINES")

    model_config = {"populate_by_name": True}


class CORSConfig(BaseModel):
    """CORS configuration."""

    origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS", description="Allowed CORS origins (use * for all)")
    allow_credentials: bool = Field(
        default=True, alias="CORS_ALLOW_CREDENTIALS", description="Allow credentials in CORS requests"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Grouped configurations are exposed as properties built from the flat fields.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Server Configuration
    # =====================================================================
    server_host: str = Field(default="0.0.0.0", alias="CEREBRIN_AI_SERVER_HOST")
    server_port: int = Field(default=8000, alias="CEREBRIN_AI_SERVER_PORT")
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="CEREBRIN_AI_LOG_LEVEL",
    )
    log_format: str = Field(default="detailed", alias="LOG_FORMAT", description="simple, detailed or json")
    log_file_dir: str = Field(default="logs", alias="LOG_FILE_DIR")
    enable_file_logging: bool = Field(default=False, alias="ENABLE_FILE_LOGGING")

    # =====================================================================
    # Database Configuration
    # =====================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./cerebrin_ai.db",
        alias="DATABASE_URL",
        description="Async database URL (postgresql+asyncpg in production)",
    )

    # =====================================================================
    # Behaviour toggles
    # =====================================================================
    simulation_mode: bool = Field(
        default=False,
        alias="SIMULATION_MODE",
        description="Answer with canned zero-cost replies instead of calling providers",
    )

    # =====================================================================
    # Providers
    # =====================================================================
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_enabled: bool = Field(default=True, alias="GEMINI_ENABLED")
    gemini_model: str = Field(default="google-gla:gemini-2.0-flash", alias="GEMINI_MODEL")
    gemini_cost_per_token: float = Field(default=0.0000004, alias="GEMINI_COST_PER_TOKEN")

    groq_api_key: Optional[str] = Field(default=None, alias="GROQ_API_KEY")
    groq_enabled: bool = Field(default=False, alias="GROQ_ENABLED")
    groq_model: str = Field(default="groq:llama-3.1-8b-instant", alias="GROQ_MODEL")
    groq_cost_per_token: float = Field(default=0.0000001, alias="GROQ_COST_PER_TOKEN")

    # =====================================================================
    # Chat gateway
    # =====================================================================
    chat_gateway_url: Optional[str] = Field(default=None, alias="CHAT_GATEWAY_URL")
    chat_gateway_api_key: Optional[str] = Field(default=None, alias="CHAT_GATEWAY_API_KEY")
    chat_webhook_secret: Optional[str] = Field(default=None, alias="CHAT_WEBHOOK_SECRET")
    chat_gateway_timeout: float = Field(default=10.0, alias="CHAT_GATEWAY_TIMEOUT")

    # =====================================================================
    # Pipelines
    # =====================================================================
    pipeline_step_timeout_seconds: float = Field(default=120.0, alias="PIPELINE_STEP_TIMEOUT_SECONDS")
    pipeline_dedupe_window_seconds: float = Field(default=120.0, alias="PIPELINE_DEDUPE_WINDOW_SECONDS")
    pipeline_max_revisions: int = Field(default=1, alias="PIPELINE_MAX_REVISIONS")
    pipeline_progress_notifications: bool = Field(default=True, alias="PIPELINE_PROGRESS_NOTIFICATIONS")
    max_concurrent_pipelines: int = Field(default=4, alias="MAX_CONCURRENT_PIPELINES")

    # =====================================================================
    # CORS
    # =====================================================================
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def gemini(self) -> GeminiConfig:
        """Get Gemini configuration."""
        return GeminiConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def groq(self) -> GroqConfig:
        """Get Groq configuration."""
        return GroqConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def gateway(self) -> ChatGatewayConfig:
        """Get chat gateway configuration."""
        return ChatGatewayConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def pipeline(self) -> PipelineConfig:
        """Get pipeline orchestrator configuration."""
        return PipelineConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def cors(self) -> CORSConfig:
        """Get CORS configuration."""
        return CORSConfig.model_validate(self.model_dump(by_alias=True))


settings = Settings()
