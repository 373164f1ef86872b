# app/services/notifications.py
import smtplib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from html import escape
from typing import List, Optional, Protocol

from app.core import config
from app.models import tables

logger = logging.getLogger(__name__)


class EmailSendError(Exception):
    pass


class Mailer(Protocol):
    def send(self, to: str, subject: str, html: str) -> str:
        ...


class SmtpMailer:
    """Outbound SMTP transport configured from EMAIL_* settings."""

    def __init__(self, host=None, port=None, user=None, password=None, use_tls=None, from_name=None, timeout=20):
        self.host = host or config.EMAIL_HOST
        self.port = port or config.EMAIL_PORT
        self.user = user if user is not None else config.EMAIL_USER
        self.password = password if password is not None else config.EMAIL_PASS
        self.use_tls = config.EMAIL_USE_TLS if use_tls is None else use_tls
        self.from_name = from_name or config.EMAIL_FROM_NAME
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str) -> str:
        msg = EmailMessage()
        msg["From"] = formataddr((self.from_name, self.user or "no-reply@localhost"))
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.user and self.password:
                    smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailSendError(f"SMTP delivery to {to} failed: {e}") from e

        logger.info(f"Email sent to {to}: {msg['Message-ID']}")
        return msg["Message-ID"]


@dataclass
class DeliveryOutcome:
    recipient: str        # role, e.g. "admin" / "user"
    address: Optional[str]
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class NotificationResult:
    deliveries: List[DeliveryOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.deliveries) and all(d.success for d in self.deliveries)

    @property
    def error(self) -> Optional[str]:
        failures = [f"{d.recipient}: {d.error}" for d in self.deliveries if not d.success]
        return "; ".join(failures) or None


# ==========================================
# TEMPLATES
# ==========================================
FORM_TITLES = {
    'property_inquiry': 'New property inquiry',
    'loan_inquiry': 'New loan inquiry',
    'contact_inquiry': 'New contact message',
    'property_submission': 'New property submission',
    'partner_inquiry': 'New partnership proposal',
    'employee_inquiry': 'New job application',
}

PAYLOAD_LABELS = {
    'propertyName': 'Property',
    'propertyPrice': 'Property price',
    'propertyLocation': 'Location',
    'ownContribution': 'Own contribution',
    'loanTerm': 'Loan term (months)',
    'monthlyPayment': 'Monthly payment',
    'interestRate': 'Interest rate',
    'cvFile': 'CV',
    'message': 'Message',
}

CURRENCY_FIELDS = ('propertyPrice', 'ownContribution', 'monthlyPayment')

_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background: {color}; color: white; padding: 20px; text-align: center; }}
    .content {{ background: #f9f9f9; padding: 20px; }}
    .field {{ margin-bottom: 15px; }}
    .label {{ font-weight: bold; color: #2c3e50; }}
    .footer {{ margin-top: 20px; padding: 20px; background: #ecf0f1; text-align: center; font-size: 12px; color: #7f8c8d; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{title}</h1></div>
    <div class="content">{body}</div>
    <div class="footer"><p>{footer}</p></div>
  </div>
</body>
</html>"""


def format_currency(amount) -> str:
    number = tables.parse_number(amount)
    if not number:
        return "0 PLN"
    return f"{number:,.2f}".replace(",", " ").replace(".", ",") + " PLN"


def _field(label: str, value) -> str:
    return (
        f'<div class="field"><span class="label">{escape(label)}:</span> '
        f'<span class="value">{escape(str(value))}</span></div>'
    )


def _payload_fields(payload: dict) -> List[str]:
    rows = []
    for key, label in PAYLOAD_LABELS.items():
        value = payload.get(key)
        if value in (None, ""):
            continue
        if key in CURRENCY_FIELDS:
            value = format_currency(value)
        rows.append(_field(label, value))
    return rows


def render_admin_email(submission: tables.FormSubmission):
    title = FORM_TITLES.get(submission.form_type, 'New form submission')
    rows = [
        _field('Name', submission.name),
        _field('Email', submission.email),
        _field('Phone', submission.phone or '-'),
    ]
    rows.extend(_payload_fields(submission.payload or {}))
    submitted = submission.created_at or datetime.now()
    rows.append(_field('Submitted', submitted.strftime('%Y-%m-%d %H:%M')))

    subject = f"{title} - {submission.name}"
    html = _LAYOUT.format(
        color="#2c3e50",
        title=escape(title),
        body="\n".join(rows),
        footer="Generated automatically by the property marketplace.",
    )
    return subject, html


def render_loan_confirmation(submission: tables.FormSubmission):
    payload = submission.payload or {}
    body = [
        f"<p><strong>Thank you {escape(submission.name)} for your loan inquiry!</strong></p>",
        "<p>We have received your request and will contact you within 24 hours.</p>",
        "<h3>Summary</h3>",
    ]
    body.extend(_payload_fields(payload))
    body.append(
        "<p><strong>Contact:</strong><br>"
        f"Email: {escape(config.ADMIN_EMAIL or '')}<br>"
        f"Phone: {escape(config.COMPANY_PHONE)}</p>"
    )
    html = _LAYOUT.format(
        color="#27ae60",
        title="Thank you for your loan inquiry",
        body="\n".join(body),
        footer="This message was generated automatically. Please do not reply.",
    )
    return "Thank you for your loan inquiry", html


# ==========================================
# DISPATCHER
# ==========================================
class NotificationDispatcher:
    def __init__(self, mailer: Mailer):
        self.mailer = mailer

    def _deliver(self, recipient: str, address: Optional[str], subject: str, html: str) -> DeliveryOutcome:
        if not address:
            logger.error(f"No address configured for '{recipient}' notification")
            return DeliveryOutcome(recipient, address, False, error="recipient address not configured")
        try:
            message_id = self.mailer.send(address, subject, html)
            return DeliveryOutcome(recipient, address, True, message_id=message_id)
        except EmailSendError as e:
            logger.error(f"Email to {recipient} <{address}> failed: {e}")
            return DeliveryOutcome(recipient, address, False, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected mail transport error for {recipient} <{address}>: {e}")
            return DeliveryOutcome(recipient, address, False, error=str(e))

    def dispatch(self, submission: tables.FormSubmission) -> NotificationResult:
        result = NotificationResult()
        subject, html = render_admin_email(submission)

        if submission.form_type == 'loan_inquiry':
            result.deliveries.append(self._deliver("admin", config.ADMIN_EMAIL, subject, html))
            user_subject, user_html = render_loan_confirmation(submission)
            result.deliveries.append(self._deliver("user", submission.email, user_subject, user_html))
        else:
            result.deliveries.append(self._deliver("contact", config.CONTACT_EMAIL or config.ADMIN_EMAIL, subject, html))

        if result.success:
            logger.info(f"Notifications sent for submission {submission.id}")
        else:
            logger.warning(f"Notification dispatch failed for submission {submission.id}: {result.error}")
        return result


def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency; tests override it with a fake mailer."""
    return NotificationDispatcher(SmtpMailer())
