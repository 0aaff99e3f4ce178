from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "http://localhost:5173"

    # Database – SQLite für lokale Entwicklung
    DATABASE_URL: str = "sqlite+aiosqlite:///./compliance.db"

    # Redis (optional – Celery und Regel-Cache deaktiviert wenn nicht genutzt)
    REDIS_URL: str = "redis://localhost:6379/0"
    USE_CELERY: bool = False

    # Security
    SECRET_KEY: str = "dev_secret_key_change_in_production_min_32_chars!!"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Report-Ablage (lokales Blob-Verzeichnis + signierte Download-Links)
    REPORT_STORAGE_DIR: str = "./storage"
    REPORT_DOWNLOAD_BASE_URL: str = "http://localhost:8000/api/v1/compliance/reports/download"
    REPORT_URL_TTL_SECONDS: int = 3600

    # Compliance
    RULE_CACHE_TTL_SECONDS: int = 0          # 0 = kein Cache
    COMPLIANCE_STATS_WINDOW: int = 1000      # letzte N Verstöße für /stats
    ADJUSTMENT_QUEUE_SIZE: int = 500

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
