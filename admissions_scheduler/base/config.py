from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    # === App Metadata ===
    PROJECT_NAME: str = "AdmissionsScheduler"
    ENVIRONMENT: str = "dev"  # dev, staging, prod
    API_VERSION: str = "v1"
    SERVICE_VERSION: str = "1.0.0"

    # === Security ===
    API_KEY: str = "super-secret-key"
    ENABLE_API_KEY_SECURITY: bool = False

    # === Logging ===
    LOG_LEVEL: str = "INFO"
    ENABLE_JSON_LOGS: bool = False
    LOG_DIR: str = "./logs"
    LOG_TO_FILE: bool = True
    SERVICE_NAME: str = "admissions-scheduler"

    # === Database (PostgreSQL or SQLite fallback) ===
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_NAME: str = "admissions_db"
    DB_ECHO: bool = False
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    @property
    def DATABASE_URL(self) -> str:
        if self.DB_HOST == "sqlite":
            return "sqlite:///./scheduler.db"
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # === Scheduling ===
    DEFAULT_INTERVIEW_DURATION: int = Field(60, ge=15, le=180)

    # === Read-path cache ===
    CACHE_ENABLED: bool = True
    CACHE_DEFAULT_TTL_SECONDS: float = 300.0
    CACHE_MAX_SIZE: int = 1000

    # === Circuit breakers (timeouts and resets in seconds) ===
    CB_ROLLING_WINDOW_SECONDS: float = 10.0
    CB_VOLUME_THRESHOLD: int = 5

    CB_SIMPLE_TIMEOUT: float = 2.0
    CB_SIMPLE_ERROR_THRESHOLD: int = 60
    CB_SIMPLE_RESET_TIMEOUT: float = 20.0

    CB_MEDIUM_TIMEOUT: float = 5.0
    CB_MEDIUM_ERROR_THRESHOLD: int = 50
    CB_MEDIUM_RESET_TIMEOUT: float = 30.0

    CB_WRITE_TIMEOUT: float = 3.0
    CB_WRITE_ERROR_THRESHOLD: int = 30
    CB_WRITE_RESET_TIMEOUT: float = 45.0

    CB_EXTERNAL_TIMEOUT: float = 8.0
    CB_EXTERNAL_ERROR_THRESHOLD: int = 70
    CB_EXTERNAL_RESET_TIMEOUT: float = 120.0

    # === External Services ===
    NOTIFICATION_SERVICE_URL: str = "http://localhost:8085"
    APPLICATION_SERVICE_URL: str = "http://localhost:8083"
    USER_SERVICE_URL: str = "http://localhost:8082"
    EXTERNAL_HTTP_TIMEOUT_SECONDS: float = 10.0

    # === Notification dispatch ===
    NOTIFICATION_WORKERS: int = 2
    NOTIFICATION_MAX_ATTEMPTS: int = 3
    NOTIFICATION_RETRY_BACKOFF_SECONDS: float = 2.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> AppConfig:
    return AppConfig()


# Global config instance
settings = get_settings()
