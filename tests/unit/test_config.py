from recon_timeline.config import Settings
from recon_timeline.models.domain.settings_domain import NotificationPreferences


def test_defaults_boot_without_secrets():
    config = Settings(_env_file=None)

    assert config.state_backend() == "file"
    assert config.smtp_configured() is False
    assert config.AUTO_CLEAR_COMPLETED_STAGES is True


def test_redis_backend_requires_url():
    assert Settings(_env_file=None, STATE_BACKEND="redis").state_backend() == "file"
    assert (
        Settings(_env_file=None, STATE_BACKEND=" Redis ", REDIS_URL="redis://localhost:6379/0")
        .state_backend()
        == "redis"
    )


def test_smtp_settings_seed_email_preferences():
    config = Settings(
        _env_file=None, SMTP_HOST="smtp.dealer.com", SMTP_PORT=465, EMAIL_FROM="recon@dealer.com"
    )

    prefs = NotificationPreferences.from_settings(config)

    assert prefs.email.smtp_host == "smtp.dealer.com"
    assert prefs.email.smtp_port == 465
    assert prefs.email.from_address == "recon@dealer.com"
    assert prefs.email.enabled is False
