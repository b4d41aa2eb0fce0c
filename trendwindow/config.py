"""
Application Configuration
"""

from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Trend Window API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False  # also forces DEBUG logging

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = Field(default=["*"])

    # Local trend store
    DATABASE_URL: str = "trendwindow.db"

    # Data source for websocket sessions: "sqlite" or "http"
    DATA_SOURCE: str = "sqlite"
    SCORING_API_URL: str = "http://localhost:8080"

    # Fetching; None disables the timeout
    FETCH_TIMEOUT: Optional[float] = 30.0

    # Viewport monitor
    DEBOUNCE_MS: int = 300
    RESET_COOLDOWN_MS: int = 500
    RIGHT_OFFSET: int = 5  # blank bars the chart reserves on the right
    EDGE_RATIO: float = 0.08
    EDGE_MIN: int = 3
    EDGE_MAX: int = 12

    # Reachable window relative to now
    CLAMP_YEARS_BACK: int = 2
    CLAMP_YEARS_FORWARD: int = 1

    # WebSocket Settings
    WS_CHUNK_SIZE: int = 5000


# Create settings instance
settings = Settings()
