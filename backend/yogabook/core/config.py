from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import os


class Settings(BaseSettings):
    APP_NAME: str = "YogaBook"
    DEBUG: bool = False

    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "data/yogabook.db")
    # Any SQLAlchemy URL (e.g. postgresql://...); takes precedence over DATABASE_PATH
    DATABASE_URL_OVERRIDE: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        # Always resolve path relative to backend directory, not current working directory
        db_path = self.DATABASE_PATH
        if not os.path.isabs(db_path):
            # backend/yogabook/core/config.py -> backend
            backend_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
            db_path = os.path.join(backend_dir, db_path)
        return f"sqlite:///{os.path.abspath(db_path)}"

    # Seconds the driver waits on a locked database before giving up
    DB_LOCK_TIMEOUT_SECONDS: float = 20.0

    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    HOST: str = "127.0.0.1"
    PORT: int = 8765

    # Booking
    LESSON_WINDOW_DAYS: int = 14
    BOOKING_RETRY_ATTEMPTS: int = 3

    # Membership cards
    CARD_NUMBER_PREFIX: str = "YC"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"  # Ignore extra environment variables
    )


settings = Settings()
