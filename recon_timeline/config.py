from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # State persistence ("file" or "redis")
    STATE_BACKEND: str = "file"
    STATE_FILE_PATH: str = ".recon_timeline_state.json"
    REDIS_URL: str | None = None

    # Email delivery defaults (seed the email notification preferences)
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "noreply@recontracker.com"

    # Inbound webhook from the vehicle-management system
    RECON_WEBHOOK_SECRET: str | None = None

    # Background evaluation worker
    VEHICLE_FEED_URL: str | None = None
    VEHICLE_FEED_TOKEN: str | None = None
    EVALUATION_INTERVAL_MINUTES: float = 15.0

    # Outbound webhook delivery
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # Completed stages drop their alert on the next evaluation pass
    AUTO_CLEAR_COMPLETED_STAGES: bool = True

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def smtp_configured(self) -> bool:
        """True when enough SMTP settings exist to attempt a send."""
        return bool(self.SMTP_HOST)

    def state_backend(self) -> str:
        """
        Normalised state backend name.

        Falls back to the local file backend when redis is requested but
        no REDIS_URL is configured.
        """
        backend = (self.STATE_BACKEND or "file").strip().lower()
        if backend == "redis" and not self.REDIS_URL:
            return "file"
        return backend


settings = Settings()
