# highlevel_auth/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
import logging
from pathlib import Path

logger = logging.getLogger(__name__)
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(name)s - [%(levelname)s] - %(message)s'
    )

# This settings.py file is at <project>/highlevel_auth/settings.py
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
DOTENV_PATH = PROJECT_ROOT / ".env"

if DOTENV_PATH.exists():
    logger.debug(f"SETTINGS: .env file found at {DOTENV_PATH}")
else:
    logger.debug(f"SETTINGS: no .env file at {DOTENV_PATH}, relying on OS env vars or defaults.")


class Settings(BaseSettings):
    """Ambient configuration for the token lifecycle manager, its stores and tooling."""

    app_name: str = "HighLevel Auth"
    debug_mode: bool = False
    log_level: str = "WARNING"

    # One of "memory", "sqlite" or "redis"
    storage_backend: str = "memory"

    # Redis configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_ssl: bool = False
    session_ttl_seconds: Optional[int] = Field(
        default=None,
        description="Optional TTL applied to Redis session keys. None keeps sessions until deleted."
    )

    # SQLite configuration
    sqlite_db_path: str = "./highlevel_sessions.sqlite3"

    # Upstream API
    api_base_url: str = "https://services.leadconnectorhq.com"
    api_version: str = "2021-07-28"
    request_timeout_seconds: float = 30.0

    # Token lifecycle policy
    token_refresh_buffer_seconds: int = 30
    default_principal_preference: str = Field(
        default="Location",
        description="Which identifier wins when a call accepts either and both are present."
    )
    evict_on_fallback_failure: bool = False

    # Secrets used by the stores, the CLI and the webhook router
    encryption_key: Optional[str] = Field(
        default=None,
        description="Fernet key used to encrypt session records at rest (SQLite/Redis)."
    )
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    webhook_public_key: Optional[str] = Field(
        default=None,
        description="PEM public key used to verify the x-wh-signature header of webhooks."
    )

    model_config = SettingsConfigDict(
        env_prefix="HIGHLEVEL_",
        env_file=DOTENV_PATH if DOTENV_PATH.exists() else None,
        extra="ignore",
        env_file_encoding='utf-8'
    )


settings = Settings()

logger.debug(
    f"SETTINGS: storage_backend='{settings.storage_backend}', "
    f"api_base_url='{settings.api_base_url}', api_version='{settings.api_version}', "
    f"encryption_key={'********' if settings.encryption_key else 'None'}"
)

# Package-wide level; HighLevelClient(log_level=...) overrides it explicitly
logging.getLogger("highlevel_auth").setLevel(settings.log_level.upper())
