"""
Message templates shared by the notification channels.

Titles, bodies and email templates for timeline alerts. Escalations reuse
the same templates with an ESCALATION marker in front.
"""

from html import escape

from recon_timeline.models.domain.timeline_domain import AlertType, TimelineAlert

ESCALATION_MARKER = "ESCALATION"

# =============================================================================
# Email Templates
# =============================================================================

ALERT_EMAIL_TEMPLATE_TEXT = """
{urgency}: {vehicle_info}

Stage: {stage}
VIN: {vin}
Days in stage: {current_days}
Target days: {target_days}

{message}

Raised at {timestamp}.

Recon Tracker
"""

ALERT_EMAIL_TEMPLATE_HTML = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: {color}; color: white; padding: 16px; }}
        .content {{ padding: 20px; background-color: #f9fafb; }}
        td {{ padding: 4px 12px 4px 0; }}
        .footer {{ padding: 20px; text-align: center; font-size: 12px; color: #666; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h2>{urgency}: {vehicle_info}</h2>
        </div>
        <div class="content">
            <table>
                <tr><td>Stage</td><td>{stage}</td></tr>
                <tr><td>VIN</td><td>{vin}</td></tr>
                <tr><td>Days in stage</td><td>{current_days}</td></tr>
                <tr><td>Target days</td><td>{target_days}</td></tr>
            </table>
            <p>{message}</p>
        </div>
        <div class="footer">
            <p>Raised at {timestamp}. Thank you for using Recon Tracker!</p>
        </div>
    </div>
</body>
</html>
"""

OVERDUE_COLOR = "#dc2626"
WARNING_COLOR = "#d97706"


def urgency_label(alert: TimelineAlert, escalation: bool = False) -> str:
    label = "OVERDUE" if alert.type == AlertType.OVERDUE else "WARNING"
    if escalation:
        return f"{ESCALATION_MARKER} - {label}"
    return label


def alert_color(alert: TimelineAlert) -> str:
    return OVERDUE_COLOR if alert.type == AlertType.OVERDUE else WARNING_COLOR


def alert_title(alert: TimelineAlert, escalation: bool = False) -> str:
    return f"{urgency_label(alert, escalation)}: {alert.vehicle_info}"


def alert_body(alert: TimelineAlert) -> str:
    return (
        f"{alert.step.label} stage: {alert.current_days} days "
        f"(target {alert.target_days}). {alert.message}"
    )


def email_subject(alert: TimelineAlert, escalation: bool = False) -> str:
    return f"[Recon Tracker] {alert_title(alert, escalation)} - {alert.step.label} stage"


def _template_fields(alert: TimelineAlert, escalation: bool, html: bool) -> dict:
    clean = escape if html else (lambda value: value)
    return {
        "urgency": urgency_label(alert, escalation),
        "vehicle_info": clean(alert.vehicle_info),
        "stage": alert.step.label,
        "vin": clean(alert.vin),
        "current_days": alert.current_days,
        "target_days": alert.target_days,
        "message": clean(alert.message),
        "timestamp": alert.timestamp.strftime("%Y-%m-%d %H:%M UTC"),
        "color": alert_color(alert),
    }


def render_email_text(alert: TimelineAlert, escalation: bool = False) -> str:
    return ALERT_EMAIL_TEMPLATE_TEXT.format(**_template_fields(alert, escalation, html=False))


def render_email_html(alert: TimelineAlert, escalation: bool = False) -> str:
    return ALERT_EMAIL_TEMPLATE_HTML.format(**_template_fields(alert, escalation, html=True))
