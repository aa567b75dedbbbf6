"""
Ticketdesk - Configuration Management
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # FastAPI
    fastapi_env: str = "development"
    fastapi_host: str = "0.0.0.0"
    fastapi_port: int = 8000

    # Discord
    discord_bot_token: str = ""
    discord_application_id: str = ""
    discord_api_base: str = "https://discord.com/api/v10"
    discord_timeout: float = 15.0
    discord_max_retries: int = 3

    # Record store
    store_backend: str = "supabase"  # supabase | memory
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: str = ""

    # Authentication
    interaction_signing_secret: str = ""  # Shared with the gateway relay
    interaction_replay_window: int = 300
    allowed_api_keys: str = ""  # Comma-separated API keys for the tickets API

    # Ticket workflow
    confirmation_timeout_seconds: float = 30.0
    channel_delete_delay_seconds: float = 3.0
    ticket_number_padding: int = 4

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False
    )

    @property
    def DISCORD_AUTH_HEADER(self) -> str:
        """Authorization header value for bot requests"""
        return f"Bot {self.discord_bot_token}"

    @property
    def api_keys(self) -> list[str]:
        """Parsed list of allowed API keys"""
        return [k.strip() for k in self.allowed_api_keys.split(",") if k.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
