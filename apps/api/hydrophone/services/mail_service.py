"""Mail dispatchers: SMTP, Amazon SES and a no-op sink.

Every dispatcher returns ``(status, message)`` where status 200 means the
message was accepted by the transport.
"""

from __future__ import annotations

import html as html_module
import logging
import re
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, parseaddr
from typing import Protocol

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from hydrophone.core.async_utils import run_blocking
from hydrophone.core.config import settings

logger = logging.getLogger(__name__)

STATUS_OK = 200


class Mailer(Protocol):
    key: str

    async def send(
        self,
        to: list[str],
        subject: str,
        body_html: str,
        tags: dict[str, str] | None = None,
    ) -> tuple[int, str]:
        """Send an HTML email with a plain-text alternative."""


# =============================================================================
# Helpers
# =============================================================================

def html_to_text(content: str) -> str:
    """Readable plain-text alternative of an HTML body."""
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", content, flags=re.DOTALL | re.I)
    text = re.sub(r"<br\s*/?>|</p>|</tr>|</h\d>", "\n", text, flags=re.I)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\s*\n\s*", "\n", text).strip()
    return html_module.unescape(text)


def encode_address(address: str) -> str:
    """Keep the local part, IDNA-encode the domain (punycode)."""
    name, addr = parseaddr(address)
    local, sep, domain = addr.rpartition("@")
    if not sep:
        return address
    try:
        ascii_domain = domain.encode("idna").decode("ascii")
    except UnicodeError:
        ascii_domain = domain
    encoded = f"{local}@{ascii_domain}"
    return formataddr((name, encoded)) if name else encoded


def _check_message(to: list[str], subject: str, body_html: str) -> tuple[int, str] | None:
    if not to:
        return 400, "to is missing"
    if not subject:
        return 400, "subject is missing"
    if not body_html:
        return 400, "message is missing"
    return None


def build_message(sender: str, to: list[str], subject: str, body_html: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(to)
    msg.attach(MIMEText(html_to_text(body_html), "plain", "utf-8"))
    msg.attach(MIMEText(body_html, "html", "utf-8"))
    return msg


def _sender_address(sender: str) -> str:
    return parseaddr(sender)[1] or sender


# =============================================================================
# SMTP
# =============================================================================

class SMTPMailer:
    key = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = encode_address(sender)

    def is_configured(self) -> bool:
        return bool(self.host and self.sender)

    def _deliver(self, recipients: list[str], message: str) -> None:
        if self.port == 465:
            server = smtplib.SMTP_SSL(
                self.host, self.port, context=ssl.create_default_context(), timeout=30
            )
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=30)
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
        try:
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(_sender_address(self.sender), recipients, message)
        finally:
            server.quit()

    async def send(self, to, subject, body_html, tags=None):
        invalid = _check_message(to, subject, body_html)
        if invalid:
            return invalid
        if not self.is_configured():
            return 501, "config is invalid"

        recipients = [encode_address(a) for a in to]
        message = build_message(self.sender, recipients, subject, body_html)
        try:
            await run_blocking(self._deliver, recipients, message.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP send failed via %s: %s", self.host, exc)
            return 500, str(exc)
        return STATUS_OK, "OK"


# =============================================================================
# Amazon SES
# =============================================================================

def get_ses_client(region: str | None = None) -> BaseClient:
    """Return a configured SES v2 client."""
    return boto3.client(
        "sesv2",
        region_name=region or settings.SES_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
    )


class SESMailer:
    key = "ses"

    def __init__(
        self,
        sender: str,
        configuration_set: str = "",
        default_tags: dict[str, str] | None = None,
        client: BaseClient | None = None,
    ):
        self.sender = encode_address(sender)
        self.configuration_set = configuration_set
        self.default_tags = default_tags or {}
        self._client = client

    @property
    def client(self) -> BaseClient:
        if self._client is None:
            self._client = get_ses_client()
        return self._client

    async def send(self, to, subject, body_html, tags=None):
        invalid = _check_message(to, subject, body_html)
        if invalid:
            return invalid

        recipients = [encode_address(a) for a in to]
        message = build_message(self.sender, recipients, subject, body_html)
        request = {
            "FromEmailAddress": self.sender,
            "Destination": {"ToAddresses": recipients},
            "Content": {"Raw": {"Data": message.as_bytes()}},
        }
        all_tags = {**self.default_tags, **(tags or {})}
        if all_tags:
            request["EmailTags"] = [
                {"Name": name, "Value": _tag_value(value)} for name, value in all_tags.items()
            ]
        if self.configuration_set:
            request["ConfigurationSetName"] = self.configuration_set

        try:
            response = await run_blocking(self.client.send_email, **request)
        except ClientError as exc:
            error = exc.response.get("Error", {})
            logger.error("SES send failed: %s", error.get("Message", exc))
            return 500, f"{error.get('Code', 'ClientError')}: {error.get('Message', '')}"
        except BotoCoreError as exc:
            logger.error("SES send failed: %s", exc)
            return 500, str(exc)
        return STATUS_OK, response.get("MessageId", "")


def _tag_value(value: str) -> str:
    # SES tag values allow only ASCII letters, digits, '_', '-', '.', '@'
    return re.sub(r"[^A-Za-z0-9_\-.@]", "_", str(value)) or "_"


# =============================================================================
# Null
# =============================================================================

class NullMailer:
    """Accepts every message and only logs it (local development)."""

    key = "null"

    async def send(self, to, subject, body_html, tags=None):
        invalid = _check_message(to, subject, body_html)
        if invalid:
            return invalid
        logger.info("Null mailer: message %r to %d recipient(s) not sent", subject, len(to))
        return STATUS_OK, "OK"


def get_mailer() -> Mailer:
    """Dispatcher selected by MAIL_PROVIDER."""
    provider = settings.MAIL_PROVIDER.strip().lower()
    if provider == "smtp":
        return SMTPMailer(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            sender=settings.MAIL_FROM,
        )
    if provider == "ses":
        return SESMailer(
            sender=settings.MAIL_FROM,
            configuration_set=settings.SES_CONFIGURATION_SET,
            default_tags=settings.mail_tags,
        )
    if provider == "null":
        return NullMailer()
    raise ValueError(f"the mail system provided in the configuration ({provider}) is invalid")
