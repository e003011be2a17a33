"""Application configuration using Pydantic Settings"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # App
    app_name: str = "PetShop API"
    debug: bool = False
    cors_origins: List[str] = ["*"]

    # Database
    mongodb_url: str
    mongodb_db_name: str = "petshop"

    # Security
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Support chat
    chat_change_feed_enabled: bool = True
    chat_change_feed_retry_initial: float = 1.0  # seconds
    chat_change_feed_retry_max: float = 30.0
    chat_pending_rooms_limit: int = 10
    chat_history_page_size: int = 50

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
