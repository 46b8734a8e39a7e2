from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://achievements:achievements@db:5432/achievements"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # Upper bound on achievers accepted by one batch reconcile request.
    RECONCILE_BATCH_MAX: int = 100

    # Days behind "today" before an expired rolling window may be closed.
    # 1 means the current day is still in play and yesterday is the last
    # day a streak can be considered broken.
    STREAK_BREAKING_GRACE_DAYS: int = 1

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
