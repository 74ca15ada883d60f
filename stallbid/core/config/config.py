from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client configuration from .env and the environment"""

    app_name: str = "StallBid Client"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Backend
    api_url: str = "http://localhost:8080/api"
    ws_url: str = "ws://localhost:8080/ws/websocket"
    google_oauth_url: str = "http://localhost:8080/oauth2/authorization/google"
    request_timeout: float = 15.0

    # Live bidding
    poll_interval: float = 2.5
    bid_increment: Decimal = Decimal("100")
    history_limit: int = 10
    ws_reconnect_delay: float = 5.0
    currency_symbol: str = "₹"

    # Session persistence
    session_db: str = "sessions.db"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="STALLBID_", extra="ignore"
    )


settings = Settings()
