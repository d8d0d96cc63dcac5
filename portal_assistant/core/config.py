"""Configuration management for the Portal Assistant."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")
    SUPABASE_ANON_KEY: str = Field(
        default="", description="Supabase anon key used for user-scoped (RLS) clients"
    )

    # LLM providers (at least one must be set for assistant features)
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    OPENAI_API_KEY: str | None = Field(
        default=None, description="OpenAI API key (fallback provider + transcription)"
    )

    # Environment
    ASSISTANT_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Action routing
    ASSISTANT_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Anthropic model for action routing"
    )
    OPENAI_ASSISTANT_MODEL: str = Field(
        default="gpt-4o", description="OpenAI model for action routing (fallback provider)"
    )
    ACTION_TEMPERATURE: float = Field(
        default=0.1, description="Low temperature keeps action JSON well-formed"
    )
    ACTION_MAX_TOKENS: int = Field(default=1024, description="Max output tokens for routing calls")
    HISTORY_LIMIT: int = Field(default=20, description="Conversation turns replayed per prompt")
    ASSISTANT_TIMEOUT_SECONDS: float = Field(
        default=90.0, description="Budget for context build + completion + execution"
    )
    CONFIRMATION_TTL_SECONDS: int = Field(
        default=1800, description="Pending confirmations older than this are dropped"
    )

    # Conversational writer features
    WRITER_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Anthropic model for article writing"
    )
    OPENAI_WRITER_MODEL: str = Field(default="gpt-4o", description="OpenAI model for article writing")
    WRITER_TEMPERATURE: float = Field(default=0.7, description="Temperature for writer features")

    # Retry policy for transient upstream failures
    LLM_MAX_RETRIES: int = Field(default=2, description="Retries on connection/5xx errors")
    LLM_RETRY_INITIAL_DELAY: float = Field(default=1.0, description="Initial backoff in seconds")

    # Attachments
    TRANSCRIPTION_MODEL: str = Field(default="whisper-1", description="OpenAI transcription model")
    TRANSCRIPTION_LANGUAGE: str | None = Field(
        default=None, description="ISO-639-1 hint for transcription (e.g. 'id')"
    )
    TRANSCRIPTION_PROMPT: str = Field(
        default=(
            "This is a transcription for a project management assistant. Common words include "
            "project, task, goal, budget, client and deadline."
        ),
        description="Vocabulary hint passed to the transcription model",
    )
    MAX_ATTACHMENT_BYTES: int = Field(
        default=10 * 1024 * 1024, description="Max attachment size in bytes"
    )

    # External lookups
    UNSPLASH_ACCESS_KEY: str | None = Field(default=None, description="Unsplash access key")
    GOOGLE_MAPS_API_KEY: str | None = Field(default=None, description="Google Places API key")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
