# admin_api/core/config.py
from pathlib import Path
from typing import List, Optional
from pydantic import AnyUrl
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api"
    # true on serverless hosts (read-only filesystem, no local uploads)
    SERVERLESS: bool = False

    # Admin identity: either a bcrypt hash or a plaintext password (dev only)
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD_HASH: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None
    BCRYPT_ROUNDS: int = 12

    # Token signing secrets, generated per process when missing
    ADMIN_JWT_SECRET: Optional[str] = None
    ADMIN_REFRESH_SECRET: Optional[str] = None
    ACCESS_TOKEN_TTL_SEC: int = 60 * 15
    REFRESH_TOKEN_TTL_SEC: int = 60 * 60 * 24 * 7

    # Comma separated list of origins allowed to call the API from a browser
    ADMIN_ALLOWED_ORIGIN: str = "http://localhost:5173"

    # Local storage
    DATA_DIR: str = "data"
    UPLOADS_DIR: str = "public/uploads"

    # Remote key-value store (Redis). Enables the remote collection backend.
    KV_URL: Optional[str] = None
    KV_KEY_PREFIX: str = "sng:"
    # 'memory' or 'redis'
    SESSION_STORE: str = "memory"

    # S3 / R2 for uploaded images
    S3_BUCKET: Optional[str] = None
    S3_ENDPOINT: Optional[AnyUrl] = None
    S3_REGION: Optional[str] = None
    S3_ACCESS_KEY: Optional[str] = None
    S3_SECRET_KEY: Optional[str] = None
    S3_PUBLIC_BASE_URL: Optional[str] = None

    # Rate limits (fixed windows per client address)
    RATE_LIMIT_REQUESTS: int = 120
    RATE_LIMIT_WINDOW_SEC: int = 60
    LOGIN_RATE_LIMIT_ATTEMPTS: int = 8
    LOGIN_RATE_LIMIT_WINDOW_SEC: int = 60 * 15

    # Pydantic v2 settings: read from .env file
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"

    @property
    def allowed_origins(self) -> List[str]:
        return [item.strip() for item in self.ADMIN_ALLOWED_ORIGIN.split(",") if item.strip()]

    @property
    def data_dir(self) -> Path:
        return Path(self.DATA_DIR)

    @property
    def has_kv_storage(self) -> bool:
        return bool(self.KV_URL)

    @property
    def has_s3_storage(self) -> bool:
        return bool(self.S3_BUCKET and self.S3_ACCESS_KEY and self.S3_SECRET_KEY)

# single shared settings instance
settings = Settings()
