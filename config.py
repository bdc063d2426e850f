"""Application settings read from the environment (and a .env file, if present)."""
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env (searches current dir and parents)
load_dotenv()


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "development")
    mongodb_uri: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    db_name: str = os.getenv("DB_NAME", "expense_tracker")
    collection_name: str = os.getenv("COLLECTION_NAME", "expenses")
    mongodb_timeout_ms: int = int(os.getenv("MONGODB_TIMEOUT_MS", "5000"))
    cors_origins: List[str] = _split(os.getenv("CORS_ORIGINS", "*"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    rate_limit: Optional[str] = os.getenv("RATE_LIMIT") or None  # e.g. "100/minute"
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "5000"))

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
