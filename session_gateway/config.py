"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Environment Variables:
    SESSIONS_DIR: Directory holding one auth-material folder per session
    BRIDGE_URL: Base URL of the messaging bridge
    SESSION_INIT_TIMEOUT: Seconds before an initializing session times out (default: 60)
    SESSION_ALIASES: JSON object mapping legacy names to internal session ids
    DEFAULT_COUNTRY_CODE: Country code prefixed to national numbers (default: 91)
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Environment
    app_env: Literal["development", "staging", "production"] = "development"
    """Current application environment.

    Options:
    - development: Local development, verbose errors
    - staging: Pre-production testing environment
    - production: Live environment, production browser flags
    """

    debug: bool = False
    """Enable debug mode.

    When True:
    - Detailed error messages in responses
    - Request duration logging
    """

    # Application Configuration
    app_name: str = "session-gateway"
    """Application name."""

    host: str = "0.0.0.0"
    """Host to bind the application server."""

    port: int = 3000
    """Port to bind the application server."""

    # CORS Configuration
    cors_origins: str = "*"
    """Comma-separated list of allowed CORS origins."""

    # Sessions
    sessions_dir: Path = Path("sessions")
    """Directory holding persisted authentication material.

    One sub-directory per internal session id. Its contents are owned by the
    messaging client; the gateway only creates and removes the directory.
    """

    session_init_timeout: float = 60.0
    """Seconds an initializing session may go without lifecycle progress
    before it is marked as timed out."""

    session_aliases: dict[str, str] = {}
    """Legacy session names mapped to their historical internal ids.

    Given as a JSON object, e.g.
    SESSION_ALIASES='{"support@example.com": "support_at_example_dot_com"}'
    """

    session_aliases_file: Optional[Path] = None
    """Optional JSON file with more legacy aliases (merged over SESSION_ALIASES)."""

    # Phone number policy
    default_country_code: str = "91"
    """Country code prefixed to bare national numbers."""

    phone_national_length: int = 10
    """Digits in a national number; shorter inputs are rejected."""

    # Media and sending
    media_max_bytes: int = 50 * 1024 * 1024
    """Largest media file fetched from a fileUrl (default: 50MB)."""

    media_download_timeout: float = 30.0
    """Timeout in seconds for fetching media."""

    send_timeout: float = 60.0
    """Timeout in seconds for a single send through the messaging client."""

    # Messaging bridge
    bridge_url: str = "http://localhost:3100"
    """Base URL of the messaging bridge process."""

    bridge_token: Optional[str] = None
    """Bearer token sent to the bridge, if it requires one."""

    bridge_timeout: float = 30.0
    """Request timeout in seconds for bridge calls."""

    bridge_poll_wait: float = 25.0
    """Long-poll wait in seconds when fetching lifecycle events."""

    qr_max_retries: int = 5
    """Pairing codes the bridge emits before giving up on a session."""

    qr_terminal_output: bool = True
    """Render pairing codes as ASCII QR codes in the log."""

    # Browser service
    browserless_url: Optional[str] = None
    """Browserless WebSocket URL. Used together with browserless_token."""

    browserless_token: Optional[str] = None
    """Browserless API token."""

    chrome_executable_path: str = "/usr/bin/google-chrome-stable"
    """Chrome binary used by the bridge in production."""

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",  # Load from .env file if it exists
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def cors_origins_list(self) -> list[str]:
        """Split cors_origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def browser_ws_endpoint(self) -> Optional[str]:
        """Browserless endpoint, or None when running a local browser."""
        if self.browserless_url and self.browserless_token:
            return f"{self.browserless_url}?token={self.browserless_token}"
        return None

    @property
    def browser_service(self) -> str:
        """Name of the browser service in use."""
        return "browserless" if self.browser_ws_endpoint else "local"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Example:
        >>> from session_gateway.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.sessions_dir)
        sessions
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()
