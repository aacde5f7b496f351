import html
import logging
import os
import re
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Any, Dict, List, Optional

import requests

from koru_forms.core.config import settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "..", "templates", "email")

# substrings that identify the submitter's address among arbitrary field keys
EMAIL_FIELD_PATTERNS = ("email", "e-mail", "correo", "electr")

AUTORESPONSE_SUBJECT = "We have received your message"
DEFAULT_SUCCESS_MSG = "Thank you! We will get back to you soon."


@dataclass
class MailMessage:
    to: str
    subject: str
    html: str
    reply_to: Optional[str] = None


class MailTransportError(Exception):
    pass


class SmtpTransport:
    method = "smtp"

    def __init__(self, host=None, port=None, username=None, password=None, sender=None, timeout=None):
        self.host = host or settings.SMTP_SERVER
        self.port = int(port or settings.SMTP_PORT)
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.sender = sender or settings.SENDER_EMAIL or self.username
        self.timeout = timeout or settings.MAIL_TIMEOUT_SECONDS

    def send(self, message: MailMessage) -> Dict[str, Any]:
        if not self.username or not self.password:
            raise MailTransportError("SMTP credentials not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = formataddr(("Koru Contact Form", self.sender))
        msg["To"] = message.to
        if message.reply_to:
            msg["Reply-To"] = message.reply_to
        message_id = make_msgid(domain=self.sender.split("@")[-1] if "@" in self.sender else None)
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(message.html, "html"))

        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as server:
                    server.login(self.username, self.password)
                    server.sendmail(self.sender, [message.to], msg.as_string())
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls()
                    server.login(self.username, self.password)
                    server.sendmail(self.sender, [message.to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise MailTransportError(f"SMTP send failed: {e}") from e

        return {"method": self.method, "messageId": message_id}


class SendGridTransport:
    method = "sendgrid"
    API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, api_key=None, sender=None, timeout=None, session: requests.Session = None):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self.sender = sender or settings.SENDER_EMAIL
        self.timeout = timeout or settings.MAIL_TIMEOUT_SECONDS
        self.http = session or requests.Session()

    def send(self, message: MailMessage) -> Dict[str, Any]:
        if not self.api_key:
            raise MailTransportError("SendGrid API key not configured")

        payload = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": self.sender, "name": "Koru Contact Form"},
            "subject": message.subject,
            "content": [{"type": "text/html", "value": message.html}],
        }
        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}

        try:
            response = self.http.post(
                self.API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise MailTransportError(f"SendGrid request failed: {e}") from e

        if response.status_code >= 300:
            raise MailTransportError(f"SendGrid responded with status {response.status_code}: {response.text}")

        return {"method": self.method, "statusCode": response.status_code}


def find_reply_to(form_data: Dict[str, Any]) -> Optional[str]:
    for key, value in (form_data or {}).items():
        lowered = key.lower()
        if any(pattern in lowered for pattern in EMAIL_FIELD_PATTERNS) and isinstance(value, str) and value.strip():
            return value.strip()
    return None


def render_subject(template: Optional[str], form_data: Dict[str, Any]) -> str:
    """Replace {{field}} tokens with submitted values; unknown tokens stay as written."""
    if not template:
        return "New contact form submission"

    def _replace(match):
        key = match.group(1)
        if key in form_data and form_data[key] is not None:
            return str(form_data[key])
        return match.group(0)

    return re.sub(r"\{\{\s*([^{}]+?)\s*\}\}", _replace, template)


def _load_template(name: str) -> str:
    with open(os.path.join(TEMPLATE_DIR, name), "r", encoding="utf-8") as f:
        return f.read()


def render_admin_notification(form_data: Dict[str, Any], metadata: Dict[str, Any]) -> str:
    rows = ""
    for key, value in (form_data or {}).items():
        rows += f"""
            <tr>
                <td class="label">{html.escape(str(key))}</td>
                <td>{html.escape("" if value is None else str(value))}</td>
            </tr>"""

    content = _load_template("admin_notification.html")
    content = content.replace("{{ rows }}", rows)
    content = content.replace("{{ url_origen }}", html.escape(str((metadata or {}).get("url") or "N/A")))
    content = content.replace("{{ timestamp }}", datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"))
    return content


def render_autoresponse(form_data: Dict[str, Any], success_msg: Optional[str] = None) -> str:
    client_name = None
    for key, value in (form_data or {}).items():
        if "name" in key.lower() or "nombre" in key.lower():
            client_name = value
            break

    content = _load_template("client_autoresponse.html")
    content = content.replace("{{ client_name }}", html.escape(str(client_name or "there")))
    content = content.replace("{{ success_msg }}", html.escape(success_msg or DEFAULT_SUCCESS_MSG))
    return content


class MailService:
    def __init__(self, primary=None, fallback=None):
        self.transports = [primary or SmtpTransport(), fallback or SendGridTransport()]

    def build_messages(self, email_settings: Dict[str, Any], form_data: Dict[str, Any],
                       metadata: Dict[str, Any]) -> List[MailMessage]:
        client_email = find_reply_to(form_data)
        subject = render_subject(email_settings.get("subject_line"), form_data)

        messages = [
            MailMessage(
                to=email_settings.get("admin_email"),
                subject=f"[KORU] {subject}",
                html=render_admin_notification(form_data, metadata),
                reply_to=client_email,
            )
        ]
        if email_settings.get("autoresponder") and client_email:
            messages.append(
                MailMessage(
                    to=client_email,
                    subject=AUTORESPONSE_SUBJECT,
                    html=render_autoresponse(form_data),
                )
            )
        return messages

    def send_contact_email(self, email_settings: Dict[str, Any], form_data: Dict[str, Any],
                           metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Admin notification plus optional autoresponse, primary transport first then fallback.

        Returns the first successful transport's result, or a failure log when every
        transport failed. An autoresponse failing after the admin mail went through
        fails the whole attempt on that transport; it is not reported separately.
        """
        messages = self.build_messages(email_settings or {}, form_data or {}, metadata or {})
        errors = []

        for transport in self.transports:
            try:
                results = [transport.send(message) for message in messages]
            except MailTransportError as e:
                logger.warning("Mail via %s failed, %s", transport.method, e)
                errors.append(f"{transport.method}: {e}")
                continue

            logger.info("Mail sent via %s (%d message(s))", transport.method, len(results))
            log = {"success": True, "method": transport.method, "timestamp": _now_iso()}
            first = results[0]
            if "messageId" in first:
                log["messageId"] = first["messageId"]
            if "statusCode" in first:
                log["statusCode"] = first["statusCode"]
            return log

        logger.error("All mail transports failed: %s", "; ".join(errors))
        return {
            "success": False,
            "error": "; ".join(errors),
            "errorType": "MailTransportError",
            "timestamp": _now_iso(),
        }


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_mail_service() -> MailService:
    return MailService()
