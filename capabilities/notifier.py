"""
Policy information e-mails delivered over SMTP.

The notifier validates the recipient address, renders a small HTML page with the
customer's policy details (every field HTML-escaped), and hands the message to an
SMTP relay, optionally upgrading to TLS and logging in. SMTP failures are mapped
onto `DeliveryErrorCode` values so the tool layer can explain them to the user:
authentication problems, refusals by the relay, and temporary throttling replies
each get their own code.
"""

import html
import logging
import re
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Dict, Optional

from config import CONFIG
from monitoring.metrics import CAPABILITY_REQUEST_TIME, track_latency
from .base import DeliveryError, DeliveryErrorCode, DeliveryReceipt, Notifier, PolicyNotice

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9_+&*-]+(?:\.[a-zA-Z0-9_+&*-]+)*@(?:[a-zA-Z0-9-]+\.)+[a-zA-Z]{2,7}$"
)
DEFAULT_SUBJECT = "Policy Information"
DEFAULT_SENDER_NAME = "AI Agent System"
# SMTP replies that mean "try again later"
THROTTLING_CODES = {421, 450, 451, 452}

HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Policy Information</title>
<style>
body {{ font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }}
table {{ width: 100%; border-collapse: collapse; margin: 20px 0; }}
th {{ background-color: #f8f9fa; padding: 12px; text-align: left; border-bottom: 2px solid #dee2e6; }}
td {{ padding: 12px; border-bottom: 1px solid #dee2e6; }}
.label {{ font-weight: 500; color: #666; width: 40%; }}
.footer {{ color: #666; font-size: 14px; text-align: center; }}
</style>
</head>
<body>
<h1>Policy Information</h1>
<p>Dear {first_name} {last_name},</p>
<p>Please find your policy information details below:</p>
<table>
<thead><tr><th colspan="2">Policy Details</th></tr></thead>
<tbody>
<tr><td class="label">Customer Name</td><td>{first_name} {last_name}</td></tr>
<tr><td class="label">Email Address</td><td>{recipient}</td></tr>
<tr><td class="label">Policy Number</td><td>{policy_number}</td></tr>
<tr><td class="label">Vehicle Identification Number (VIN)</td><td>{vin}</td></tr>
<tr><td class="label">Date Generated</td><td>{generated}</td></tr>
</tbody>
</table>
<p>If you have any questions about your policy, please contact our customer service team.</p>
<div class="footer">
<p>This is an automated message from {sender_name}</p>
<p>Please do not reply to this email</p>
</div>
</body>
</html>
"""


def is_valid_email(address: Optional[str]) -> bool:
    return bool(address) and EMAIL_PATTERN.match(address.strip()) is not None


def validate_notice(notice: PolicyNotice) -> None:
    """
    Check that a notice can be sent.

    Raises:
        DeliveryError: INVALID_EMAIL for a malformed address; PROVIDER_REJECTED when a required field is blank.
    """
    if not is_valid_email(notice.recipient):
        raise DeliveryError(DeliveryErrorCode.INVALID_EMAIL, f"Invalid email address: {notice.recipient}")
    missing = [
        name for name in ("first_name", "last_name", "policy_number", "vin")
        if not str(getattr(notice, name) or "").strip()
    ]
    if missing:
        raise DeliveryError(DeliveryErrorCode.PROVIDER_REJECTED, f"Missing required fields: {', '.join(missing)}")


def render_policy_html(notice: PolicyNotice, sender_name: str = DEFAULT_SENDER_NAME) -> str:
    """Render the HTML body of a policy notice. All user-supplied values are escaped."""
    return HTML_TEMPLATE.format(
        first_name=html.escape(notice.first_name),
        last_name=html.escape(notice.last_name),
        recipient=html.escape(notice.recipient),
        policy_number=html.escape(notice.policy_number),
        vin=html.escape(notice.vin),
        generated=notice.generated_at.strftime("%B %d, %Y").replace(" 0", " "),
        sender_name=html.escape(sender_name),
    )


def render_policy_text(notice: PolicyNotice) -> str:
    """Plain-text alternative for clients that do not render HTML."""
    return (
        f"Dear {notice.full_name},\n\n"
        f"Please find your policy information details below:\n\n"
        f"Customer Name: {notice.full_name}\n"
        f"Email Address: {notice.recipient}\n"
        f"Policy Number: {notice.policy_number}\n"
        f"VIN: {notice.vin}\n"
    )


def _refused_code(refusals: Dict[str, tuple]) -> str:
    codes = {code for code, _ in refusals.values()}
    if codes and codes <= THROTTLING_CODES:
        return DeliveryErrorCode.RATE_LIMITED
    return DeliveryErrorCode.PROVIDER_REJECTED


class SmtpNotifier(Notifier):
    """
    Notifier that sends HTML policy e-mails through an SMTP relay.

    Args:
        settings (dict, optional): The `email` section of the configuration. Defaults to CONFIG['email'].
    """

    def __init__(self, settings: Optional[dict] = None) -> None:
        self.settings = settings if settings is not None else CONFIG.get('email', {})

    def build_message(self, notice: PolicyNotice) -> EmailMessage:
        sender_name = self.settings.get('sender_name', DEFAULT_SENDER_NAME)
        message = EmailMessage()
        message['Subject'] = self.settings.get('subject', DEFAULT_SUBJECT)
        message['From'] = formataddr((sender_name, self.settings.get('sender_email', 'noreply@example.com')))
        message['To'] = notice.recipient
        message['Message-ID'] = make_msgid()
        message.set_content(render_policy_text(notice))
        message.add_alternative(render_policy_html(notice, sender_name), subtype='html')
        return message

    @track_latency(CAPABILITY_REQUEST_TIME, labels=lambda self: {'capability': 'email'})
    def send_notification(self, notice: PolicyNotice) -> DeliveryReceipt:
        validate_notice(notice)
        message = self.build_message(notice)
        host = self.settings.get('smtp_host', 'localhost')
        port = int(self.settings.get('smtp_port', 587))

        logger.info(f"[send_notification] Sending policy email to {notice.recipient} via {host}:{port}\n")
        try:
            with smtplib.SMTP(host, port, timeout=self.settings.get('timeout', 30)) as smtp:
                if self.settings.get('use_tls', True):
                    smtp.starttls()
                username = self.settings.get('smtp_username')
                if username:
                    smtp.login(username, self.settings.get('smtp_password') or '')
                smtp.send_message(message)
        except smtplib.SMTPAuthenticationError as exc:
            raise DeliveryError(DeliveryErrorCode.AUTHENTICATION_FAILED, f"SMTP authentication failed: {exc.smtp_code}") from exc
        except smtplib.SMTPRecipientsRefused as exc:
            raise DeliveryError(_refused_code(exc.recipients), f"Recipient refused: {notice.recipient}") from exc
        except smtplib.SMTPResponseException as exc:
            code = DeliveryErrorCode.RATE_LIMITED if exc.smtp_code in THROTTLING_CODES else DeliveryErrorCode.PROVIDER_REJECTED
            raise DeliveryError(code, f"SMTP server rejected the message ({exc.smtp_code})") from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(DeliveryErrorCode.INTERNAL_ERROR, f"Unexpected error during email sending: {exc}") from exc

        delivery_id = message['Message-ID']
        logger.info(f"[send_notification] Policy email sent to {notice.recipient}, message id {delivery_id}\n")
        return DeliveryReceipt(delivery_id=delivery_id, recipient=notice.recipient)
