"""
Tests for email rendering and the email channel.
"""

import pytest
from conftest import FakeEmailSender, make_alert

from recon_timeline.models.domain.settings_domain import EmailPreferences
from recon_timeline.services.notifications.email_channel import EmailChannel, build_email
from recon_timeline.services.notifications.errors import NotificationDeliveryError

PREFS = EmailPreferences(enabled=True, recipient="lot@dealer.com", smtp_host="smtp.dealer.com")


def test_build_email_renders_subject_and_bodies():
    message = build_email(make_alert(), "lot@dealer.com")

    assert message.subject == "[Recon Tracker] OVERDUE: 2021 Honda Accord - Shop stage"
    assert "VIN1" in message.text_body
    assert "<html" in message.html_body.lower()


def test_escalation_email_is_marked():
    message = build_email(make_alert(), "boss@dealer.com", escalation=True)

    assert "ESCALATION" in message.subject
    assert "ESCALATION" in message.text_body


def test_html_body_escapes_vehicle_fields():
    alert = make_alert()
    alert.vehicle_info = "<script>alert(1)</script>"

    message = build_email(alert, "lot@dealer.com")

    assert "<script>" not in message.html_body
    assert "&lt;script&gt;" in message.html_body


@pytest.mark.asyncio
async def test_channel_sends_to_configured_recipient():
    sender = FakeEmailSender()

    message = await EmailChannel(sender=sender).send(make_alert(), PREFS)

    assert message.recipient == "lot@dealer.com"
    assert sender.sent == [message]


@pytest.mark.asyncio
async def test_channel_without_recipient_raises():
    with pytest.raises(NotificationDeliveryError):
        await EmailChannel(sender=FakeEmailSender()).send(make_alert(), EmailPreferences())


@pytest.mark.asyncio
async def test_sender_failure_propagates_to_caller():
    sender = FakeEmailSender(fail_for={"*"})

    with pytest.raises(NotificationDeliveryError) as exc_info:
        await EmailChannel(sender=sender).send(make_alert(), PREFS)

    assert exc_info.value.channel == "email"
