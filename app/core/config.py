from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    storage_backend: str = Field("file", alias="STORAGE_BACKEND")
    db_json_path: str = Field("db.json", alias="DB_JSON_PATH")
    database_url: Optional[str] = Field(None, alias="DATABASE_URL")

    discord_webhook_url: Optional[str] = Field(None, alias="DISCORD_WEBHOOK_URL")

    uploads_dir: str = Field("uploads", alias="UPLOADS_DIR")
    max_upload_bytes: int = Field(10 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")

    school_name: str = Field("SMP 1 Kudus", alias="SCHOOL_NAME")
    school_latitude: float = Field(-6.8057694, alias="SCHOOL_LATITUDE")
    school_longitude: float = Field(110.8430016, alias="SCHOOL_LONGITUDE")
    school_radius_meters: float = Field(100.0, alias="SCHOOL_RADIUS_METERS")

    submission_window_seconds: float = Field(30.0, alias="SUBMISSION_WINDOW_SECONDS")
    rate_limit_retention_seconds: float = Field(60.0, alias="RATE_LIMIT_RETENTION_SECONDS")
    rate_limit_sweep_seconds: float = Field(30.0, alias="RATE_LIMIT_SWEEP_SECONDS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


settings = Settings()
