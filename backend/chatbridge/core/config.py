"""
Client configuration using pydantic-settings.

WHAT: Centralized config for timeouts, wire constants, and provider defaults
WHY: Type-safe, validated config with sensible defaults, overridable per deployment
HOW: Pydantic BaseSettings reads from .env and environment
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator
from pathlib import Path


class Settings(BaseSettings):
    """Client settings loaded from environment."""

    # App metadata (sent to OpenRouter as X-Title)
    APP_NAME: str = "chatbridge"
    APP_VERSION: str = "0.1.0"

    # Transport
    LLM_REQUEST_TIMEOUT: float = 180.0  # seconds between bytes
    LLM_RESOURCE_TIMEOUT: float = 180.0  # seconds for a whole buffered call
    LLM_CONNECT_TIMEOUT: float = 10.0
    LLM_MAX_KEEPALIVE_CONNECTIONS: int = 10
    LLM_MAX_CONNECTIONS: int = 20

    # Anthropic / Claude
    CLAUDE_MAX_TOKENS: int = 4096
    ANTHROPIC_VERSION: str = "2023-06-01"
    VERTEX_ANTHROPIC_VERSION: str = "vertex-2023-10-16"

    # OpenAI models that only accept temperature=1
    # Comma-separated so it can be overridden from a single env var
    OPENAI_REASONING_MODELS: str = (
        "o1,o1-preview,o1-mini,o3-mini,o3-mini-high,o3-mini-2025-01-31,"
        "o1-preview-2024-09-12,o1-mini-2024-09-12,o1-2024-12-17"
    )

    # OpenRouter attribution headers
    OPENROUTER_REFERER: str = "https://github.com/chatbridge/chatbridge"

    # Google OAuth (Vertex AI)
    GOOGLE_ADC_PATH: str = str(Path.home() / ".config" / "gcloud" / "application_default_credentials.json")
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    GOOGLE_TOKEN_EXPIRY_BUFFER: int = 300  # seconds before expiry to refresh

    # Vertex AI
    VERTEX_DEFAULT_REGION: str = "us-central1"
    VERTEX_MODELS: str = (
        "gemini-2.5-pro,gemini-2.5-flash,gemini-2.0-flash,gemini-1.5-pro,gemini-1.5-flash,"
        "claude-sonnet-4-5@20250929,claude-3-5-sonnet-v2@20241022,"
        "claude-3-opus@20240229,claude-3-haiku@20240307"
    )

    # Tool calls: follow-up requests allowed per send
    TOOL_CALL_MAX_HOPS: int = 1

    # Default endpoints when a ProviderConfig leaves base_url empty
    OPENAI_COMPLETIONS_URL: str = "https://api.openai.com/v1/chat/completions"
    OPENAI_RESPONSES_URL: str = "https://api.openai.com/v1/responses"
    OPENROUTER_URL: str = "https://openrouter.ai/api/v1/chat/completions"
    XAI_URL: str = "https://api.x.ai/v1/chat/completions"
    DEEPSEEK_URL: str = "https://api.deepseek.com/chat/completions"
    PERPLEXITY_URL: str = "https://api.perplexity.ai/chat/completions"
    LM_STUDIO_URL: str = "http://localhost:1234/v1/chat/completions"
    CLAUDE_URL: str = "https://api.anthropic.com/v1/messages"
    GEMINI_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"
    OLLAMA_URL: str = "http://localhost:11434/api/chat"

    @field_validator("OPENAI_REASONING_MODELS", "VERTEX_MODELS", mode="before")
    @classmethod
    def parse_model_lists(cls, v):
        """Accept either a comma-separated string or a list."""
        if isinstance(v, list):
            return ",".join(v)
        return v

    def get_reasoning_models(self) -> set[str]:
        """Get reasoning-only OpenAI model ids (lowercased)."""
        return {m.strip().lower() for m in self.OPENAI_REASONING_MODELS.split(",") if m.strip()}

    def get_vertex_models(self) -> list[str]:
        """Get the curated Vertex model list, in declaration order."""
        return [m.strip() for m in self.VERTEX_MODELS.split(",") if m.strip()]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # empty disables the file handler

    class Config:
        # Look for .env in project root first, then backend/.env
        env_file = [
            str(Path(__file__).parent.parent.parent.parent / ".env"),
            str(Path(__file__).parent.parent.parent / ".env"),
        ]
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Singleton instance
settings = Settings()
