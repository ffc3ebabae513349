from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    app_name: str = 'sf-eventlog-sync'
    app_env: str = Field(default='dev', alias='APP_ENV')
    app_port: int = Field(default=8080, alias='APP_PORT')
    cors_origins: str = Field(default='', alias='CORS_ORIGINS')

    database_url: str = Field(default='sqlite:///./data/sf_eventlog.db', alias='DATABASE_URL')
    db_pool_size: int = Field(default=10, alias='DB_POOL_SIZE')
    db_pool_recycle: int = Field(default=1800, alias='DB_POOL_RECYCLE')
    db_bootstrap_on_start: bool = Field(default=True, alias='DB_BOOTSTRAP_ON_START')

    sf_token_host: str = Field(default='', alias='SF_TOKENHOST')
    sf_client_id: str = Field(default='', alias='SF_CLIENT_ID')
    sf_username: str = Field(default='', alias='SF_USERNAME')
    sf_private_key_pem_b64: str = Field(default='', alias='SF_PRIVATE_KEY_PEM_B64')
    salesforce_api_version: str = Field(default='v62.0', alias='SALESFORCE_API_VERSION')
    salesforce_timeout_seconds: float = Field(default=30.0, alias='SALESFORCE_TIMEOUT_SECONDS')
    salesforce_stream_read_timeout_seconds: float = Field(default=3600.0, alias='SALESFORCE_STREAM_READ_TIMEOUT_SECONDS')
    application_log_timezone: str = Field(default='Europe/Oslo', alias='APPLICATION_LOG_TIMEZONE')

    inventory_cache_enabled: bool = Field(default=True, alias='INVENTORY_CACHE_ENABLED')
    inspect_unlabelled_categories: bool = Field(default=False, alias='INSPECT_UNLABELLED_CATEGORIES')
    transfer_pause_processed_seconds: float = Field(default=2.0, alias='TRANSFER_PAUSE_PROCESSED_SECONDS')
    transfer_pause_skipped_seconds: float = Field(default=0.02, alias='TRANSFER_PAUSE_SKIPPED_SECONDS')
    transfer_heartbeat_rows: int = Field(default=100, alias='TRANSFER_HEARTBEAT_ROWS')
    transfer_batch_timeout_seconds: float = Field(default=6 * 3600.0, alias='TRANSFER_BATCH_TIMEOUT_SECONDS')
    resume_on_startup: bool = Field(default=True, alias='RESUME_ON_STARTUP')

    status_retention_days: int = Field(default=100, alias='STATUS_RETENTION_DAYS')
    limits_poll_minutes: int = Field(default=30, alias='LIMITS_POLL_MINUTES')


settings = Settings()
