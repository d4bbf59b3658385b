"""Configuration using pydantic-settings (pydantic v2).

Values come from the environment and an optional `.env` file. Settings that
operators need to change without a restart (the poll interval) live in the
`app_config` table instead; see `models.app_config`.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "GeoTracker"
    SECRET_KEY: str = "changeme_in_production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    DATABASE_URL: str = "sqlite:///./geotracker.db"
    LOG_LEVEL: str = "INFO"
    # When running tests, set TESTING=1 in env to keep the poller from starting
    TESTING: bool = False
    # Optional default admin user to create on startup (useful for dev/testing)
    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_PASSWORD: str = "adminpass"
    ADMIN_NAME: str = "Admin"
    ADMIN_CREATE_ON_STARTUP: bool = True
    # Password scheme preference: 'bcrypt', 'argon2', 'plaintext', or 'auto'
    PASSWORD_SCHEME: str = "auto"

    # GPS tracker web portal. It has no documented API, so these mirror what
    # its own login form and map page send.
    PROVIDER_BASE_URL: str = "https://www.365gps.net"
    PROVIDER_TIMEOUT_SECONDS: float = 15.0
    # the portal's certificate chain does not validate against default roots
    PROVIDER_VERIFY_TLS: bool = False
    PROVIDER_ACCEPT_LANGUAGE: str = "en-GB,en-US;q=0.9,en;q=0.8"
    PROVIDER_TIMEZONE_MINUTES: int = -180
    PROVIDER_SESSION_COOKIE: str = "PHPSESSID"

    # Location poller
    POLLER_ENABLED: bool = True
    # seed for the runtime `app_config.poll_interval` row
    POLL_INTERVAL_SECONDS: int = 30
    POLL_MAX_WORKERS: int = 16
    LOCATION_HISTORY_SIZE: int = 5

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
