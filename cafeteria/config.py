"""
Configuration management for the cafeteria meal-plan service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Cafeteria Meal Plans"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./cafeteria.db"

    # Security
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 8  # 8 hours

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Printed tickets
    QR_SECRET: str = "dev-qr-secret-change-in-production"
    TICKET_MAX_DAYS: int = 31

    # Uploads / imports
    MAX_UPLOAD_MB: int = 20
    IMPORT_DIR: str = ""  # server folder scanned by /students/import-from-folder

    # Seed data
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"
    DEFAULT_ESTABLISHMENTS: list[str] = []

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
