# recon_timeline/models/domain/settings_domain.py
"""
User-editable configuration: timeline goals and notification preferences.

Both are pydantic models so the API layer and the state repository share
one validated shape.
"""

from datetime import UTC, datetime, time
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from recon_timeline.models.domain.timeline_domain import Stage
from recon_timeline.services.timeline.durations import warning_threshold


class StageGoal(BaseModel):
    """Target days for one stage and the warning point as a percentage."""

    target: int = Field(..., ge=1, description="Goal number of days for the stage")
    warning: int = Field(default=80, ge=1, le=100, description="Warning threshold percent")

    @property
    def warning_days(self) -> int:
        return warning_threshold(self.target, self.warning)


class TimelineGoals(BaseModel):
    shop: StageGoal = Field(default_factory=lambda: StageGoal(target=5, warning=80))
    detail: StageGoal = Field(default_factory=lambda: StageGoal(target=3, warning=80))
    photo: StageGoal = Field(default_factory=lambda: StageGoal(target=2, warning=80))
    total: StageGoal = Field(default_factory=lambda: StageGoal(target=10, warning=80))

    def for_stage(self, stage: Stage) -> StageGoal:
        return getattr(self, Stage(stage).value)


class WebhookTarget(str, Enum):
    """Payload flavour for an outbound webhook."""

    DISCORD = "discord"
    SLACK = "slack"
    GENERIC = "generic"

    @classmethod
    def from_url(cls, url: str) -> "WebhookTarget":
        lowered = url.lower()
        if "discord" in lowered:
            return cls.DISCORD
        if "slack" in lowered:
            return cls.SLACK
        return cls.GENERIC


class WebhookEndpoint(BaseModel):
    """A webhook URL with its payload flavour resolved up front."""

    url: str = Field(..., min_length=1)
    target: WebhookTarget = WebhookTarget.GENERIC

    @model_validator(mode="before")
    @classmethod
    def resolve_target(cls, data: Any) -> Any:
        if isinstance(data, str):
            data = {"url": data}
        if isinstance(data, dict) and data.get("url") and not data.get("target"):
            data = {**data, "target": WebhookTarget.from_url(data["url"])}
        return data

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("Webhook URL must start with http:// or https://")
        return v


class BrowserPreferences(BaseModel):
    enabled: bool = True
    overdue_only: bool = False
    sound: bool = True


class EmailPreferences(BaseModel):
    enabled: bool = False
    recipient: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    from_address: str = "noreply@recontracker.com"

    @property
    def is_configured(self) -> bool:
        return bool(self.recipient and self.smtp_host)


class WebhookPreferences(BaseModel):
    enabled: bool = False
    endpoints: list[WebhookEndpoint] = Field(default_factory=list)


class EscalationPreferences(BaseModel):
    enabled: bool = False
    delay_minutes: float = Field(default=30.0, ge=0)
    manager_emails: list[str] = Field(default_factory=list)
    manager_webhooks: list[WebhookEndpoint] = Field(default_factory=list)

    @property
    def delay_seconds(self) -> float:
        return self.delay_minutes * 60


class QuietHours(BaseModel):
    """Daily window during which warning-level alerts are held back."""

    enabled: bool = False
    start: time = time(22, 0)
    end: time = time(7, 0)
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    def contains(self, moment: datetime | None = None) -> bool:
        if not self.enabled or self.start == self.end:
            return False
        moment = moment or datetime.now(UTC)
        local = moment.astimezone(ZoneInfo(self.timezone)).time()
        if self.start < self.end:
            return self.start <= local < self.end
        # Window wraps past midnight
        return local >= self.start or local < self.end


class NotificationPreferences(BaseModel):
    browser: BrowserPreferences = Field(default_factory=BrowserPreferences)
    email: EmailPreferences = Field(default_factory=EmailPreferences)
    webhooks: WebhookPreferences = Field(default_factory=WebhookPreferences)
    escalation: EscalationPreferences = Field(default_factory=EscalationPreferences)
    quiet_hours: QuietHours = Field(default_factory=QuietHours)

    @classmethod
    def from_settings(cls, settings) -> "NotificationPreferences":
        """Default preferences seeded from environment SMTP settings."""
        return cls(
            email=EmailPreferences(
                smtp_host=settings.SMTP_HOST,
                smtp_port=settings.SMTP_PORT,
                smtp_username=settings.SMTP_USERNAME,
                smtp_password=settings.SMTP_PASSWORD,
                smtp_use_tls=settings.SMTP_USE_TLS,
                from_address=settings.EMAIL_FROM,
            )
        )
