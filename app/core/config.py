from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    environment: str = "development"
    log_level: str = "INFO"

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./taskvault.db"
    create_tables_on_startup: bool = True

    # Redis cache-aside
    redis_dsn: str = "redis://localhost:6379/0"
    redis_pool_size: int = 5
    cache_namespace: str = ""
    cache_ttl_seconds: int = 3600

    # Tokens
    secret_key: str = "secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # security_code field cipher
    encryption_key: str = "MySecretEncryptionKey!"

    # Uploads
    upload_dir: str = "uploads"
    max_upload_bytes: int = 5 * 1024 * 1024
    allowed_upload_extensions: list[str] = [".jpg", ".jpeg", ".png", ".pdf"]

    # HTTP
    cors_origins: list[str] = ["*"]
    rate_limit: str = "100/minute"
    rate_limit_enabled: bool = True

    # Optional bootstrap admin account
    admin_username: str | None = None
    admin_email: str | None = None
    admin_password: str | None = None


@lru_cache
def get_settings() -> Settings:
    return Settings()
