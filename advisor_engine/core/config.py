"""Configuration management for the MAS Advisor Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Provider credentials (required)
    ANTHROPIC_API_KEY: str = Field(..., description="Anthropic API key (consulting provider)")
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key (technical provider + embeddings)")

    # Environment
    ADVISOR_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Chat generation
    CONSULTING_MODEL: str = Field(
        default="claude-3-5-sonnet-20241022", description="Model for general nonprofit consulting"
    )
    TECHNICAL_MODEL: str = Field(default="gpt-4o", description="Model for code and data analysis")
    CHAT_MAX_TOKENS: int = Field(default=2000, description="Max generated tokens per reply")
    CHAT_TEMPERATURE: float = Field(default=0.7, description="Decoding temperature for replies")

    # Prompt assembly
    PROMPT_TOKEN_BUDGET: int = Field(
        default=6000, description="Max tokens for the assembled system prompt"
    )
    HISTORY_TURNS: int = Field(default=5, description="Recent turns rendered into the prompt")
    KB_TOP_K: int = Field(default=2, description="Knowledge base documents injected per message")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # CiviCRM REST (APIv3)
    CIVICRM_REST_URL: str = Field(
        default="",
        description="CiviCRM extern/rest.php endpoint; CRM lookups are disabled when empty",
    )
    CIVICRM_API_KEY: str = Field(default="", description="CiviCRM user API key")
    CIVICRM_SITE_KEY: str = Field(default="", description="CiviCRM site key")
    CIVICRM_VERIFY_SSL: bool = Field(default=True, description="Verify CiviCRM TLS certificate")

    # Remote call timeouts
    CRM_TIMEOUT_SECONDS: float = Field(default=8.0, description="Per CRM call timeout")
    LLM_TIMEOUT_SECONDS: float = Field(default=45.0, description="Per LLM call timeout")
    EMBEDDING_TIMEOUT_SECONDS: float = Field(default=10.0, description="Per embedding call timeout")

    # Supabase persistence (optional)
    SUPABASE_URL: str | None = Field(default=None, description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(
        default=None, description="Supabase service role key"
    )

    @property
    def persistence_enabled(self) -> bool:
        """Whether chat turns and analytics are written to Supabase."""
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY)


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
