from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MOVIENIGHT_", env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./movienight.db"

    # Voter identity tokens
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    voter_token_expire_days: int = 365
    voter_cookie_name: str = "movienight_voter"
    cookie_secure: bool = False

    # Admin endpoints are disabled while this is empty
    admin_secret: str = ""

    base_url: str = "http://localhost:8000"

    # Media library (Jellyfin-style) search
    media_library_url: str = ""
    media_library_api_key: str = ""

    # External catalog / request service (Jellyseerr-style)
    catalog_url: str = ""
    catalog_api_key: str = ""

    external_timeout_seconds: float = 5.0

    log_level: str = "INFO"


settings = Settings()
