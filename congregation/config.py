"""Application configuration"""

import logging
from functools import lru_cache
from typing import Dict, List

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


DEFAULT_SERVICE_ROLES = [
    "Worship Leader",
    "Keys",
    "Drums",
    "Media/ProPresenter",
    "Sound",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    app_name: str = "Congregation Hub API"
    debug: bool = False
    domain: str = "localhost"
    port: int = 8000
    cert_mode: str = "development"  # "development" or "production"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Database (":memory:" keeps everything in process)
    database_path: str = "/app/data/congregation.json"

    # Security
    secret_key: str = "dev-secret-change-me"
    access_token_expire_minutes: int = 60 * 24  # 24 hours
    min_password_length: int = 6

    # The single address that is treated as administrator
    admin_email: str = "admin@example.com"

    # Retention
    message_retention_hours: int = 48
    event_expiry_grace_hours: int = 24

    # Roster seeding
    default_service_type: str = "Sunday Service"
    default_service_roles: List[str] = DEFAULT_SERVICE_ROLES
    default_role_restrictions: Dict[str, str] = {}  # role name -> team name

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def validate_production_settings(settings: Settings) -> list:
    """Validate that all required settings are configured for production"""
    errors = []

    if settings.secret_key == "dev-secret-change-me":
        errors.append("SECRET_KEY must be changed from default value")

    if settings.admin_email == "admin@example.com":
        errors.append("ADMIN_EMAIL should be set to the administrator's address")

    if settings.database_path == ":memory:":
        errors.append("DATABASE_PATH is in-memory; data will be lost on restart")

    if settings.min_password_length < 6:
        errors.append("MIN_PASSWORD_LENGTH below 6 allows weak passwords")

    return errors


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    base_settings = Settings()

    if base_settings.cert_mode == "production":
        errors = validate_production_settings(base_settings)
        for error in errors:
            logger.warning(f"Production config warning: {error}")

    return base_settings
