"""
Process Settings

Environment-driven settings (prefix ``QUERYBENCH_``, optional ``.env`` file).
Connection parameters do not live here; they come from the profile file.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the CLI and backends."""

    model_config = SettingsConfigDict(
        env_prefix="QUERYBENCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    LOG_LEVEL: str = "WARNING"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = None

    # Include raw driver messages in error hints
    APP_DEBUG: bool = False

    # CLI defaults
    DEFAULT_PROFILE: str = "prod"
    DEFAULT_CLIENT: str = "adbc"

    QUERY_TAG: str = "querybench"

    # Per-backend request timeouts (seconds). None leaves the driver default.
    ADBC_REQUEST_TIMEOUT: Optional[float] = None
    SNOWFLAKE_CONNECTOR_REQUEST_TIMEOUT: Optional[float] = 30.0
    SNOWFLAKE_API_REQUEST_TIMEOUT: Optional[float] = None

    # Overrides https://<account>.snowflakecomputing.com for the HTTP API clients
    SNOWFLAKE_API_BASE_URL: Optional[str] = None
    # The session API only returns Arrow rowsets to client ids it recognizes.
    SNOWFLAKE_API_CLIENT_APP_ID: str = "Go"
    SNOWFLAKE_API_CLIENT_APP_VERSION: str = "1.6.22"

    # Worker threads for blocking driver calls
    DRIVER_EXECUTOR_MAX_WORKERS: int = 4


settings = Settings()
