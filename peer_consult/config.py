import os
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./peer_consult.db")

    DEV_MODE_SECRET: Optional[str] = os.getenv("DEV_MODE_SECRET")
    SESSION_SECRET: Optional[str] = os.getenv("SESSION_SECRET")

    CORS_ORIGINS: list = ["http://localhost:5000", "http://127.0.0.1:5000"]

    ENVIRONMENT: str = os.getenv("NODE_ENV", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Roles allowed to see themselves in consult search results
    PRIVILEGED_ROLES: List[str] = ["admin", "tester"]
    # Roles that can request, receive and appear in consultations
    CONSULT_CANDIDATE_ROLES: List[str] = ["doctor", "admin", "tester"]

    NO_REPLY_PLACEHOLDER: str = "no reply yet"
    NOTIFICATION_BACKEND: str = os.getenv("NOTIFICATION_BACKEND", "database")

    def validate_database_url(self):
        if not self.DATABASE_URL:
            raise ValueError(
                "DATABASE_URL environment variable is required for database operations. "
                "Please set it to your PostgreSQL connection string."
            )

    def jwt_secret(self) -> str:
        return self.DEV_MODE_SECRET or self.SESSION_SECRET or "dev-secret-key-for-testing"

    class Config:
        env_file = ".env"


settings = Settings()
