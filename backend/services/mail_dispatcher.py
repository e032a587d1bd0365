"""
Mail Dispatcher

Sends one message through an ordered list of providers. Providers are sorted
by priority and filtered by configuration; the first one that accepts the
message wins. When every provider fails, MailSendFailed carries the last
underlying error so the caller can decide whether to retry.

Priorities: microsoft_graph 1, sendgrid 2, resend 2, postmark 3, mailgun 3,
smtp 4.
"""
import asyncio
import base64
import logging
import smtplib
import time
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

import httpx
from postmarker.core import PostmarkClient
from postmarker.exceptions import ClientError

import config
from services.errors import (
    DeliveryError,
    MailSendFailed,
    PermanentDeliveryError,
    TransientDeliveryError,
    is_transient_error,
)

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class OutgoingMail:
    to: List[str]
    subject: str
    html: str
    text: Optional[str] = None
    reply_to: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)
    tag: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class DeliveryResult:
    provider: str
    message_id: Optional[str] = None


def _from_header() -> str:
    return f"{config.FROM_NAME} <{config.FROM_EMAIL}>"


def raise_for_delivery_status(provider: str, response: httpx.Response) -> None:
    """Map an HTTP response onto the delivery error taxonomy."""
    if response.status_code < 400:
        return
    message = f"{provider} API error {response.status_code}: {response.text[:300]}"
    if response.status_code >= 500 or response.status_code in (408, 429):
        raise TransientDeliveryError(message, provider, response.status_code)
    raise PermanentDeliveryError(message, provider, response.status_code)


class MailProvider:
    """Base class. Subclasses set name/priority and implement send()."""

    name = "provider"
    priority = 99

    @property
    def available(self) -> bool:
        return False

    async def send(self, mail: OutgoingMail) -> Optional[str]:
        raise NotImplementedError

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient() as client:
                return await client.post(url, timeout=config.EXTERNAL_CALL_TIMEOUT_SECONDS, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientDeliveryError(f"{self.name} timeout", self.name) from e
        except httpx.TransportError as e:
            raise TransientDeliveryError(f"{self.name} connection error: {e}", self.name) from e


class GraphProvider(MailProvider):
    """Microsoft Graph sendMail with client-credentials auth."""

    name = "microsoft_graph"
    priority = 1

    def __init__(self):
        self._token: Optional[str] = None
        self._token_expires = 0.0

    @property
    def available(self) -> bool:
        return all([config.MS_TENANT_ID, config.MS_CLIENT_ID, config.MS_CLIENT_SECRET, config.MS_GRAPH_SENDER])

    async def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires:
            return self._token
        response = await self._post(
            f"https://login.microsoftonline.com/{config.MS_TENANT_ID}/oauth2/v2.0/token",
            data={
                "client_id": config.MS_CLIENT_ID,
                "client_secret": config.MS_CLIENT_SECRET,
                "scope": "https://graph.microsoft.com/.default",
                "grant_type": "client_credentials",
            },
        )
        raise_for_delivery_status(self.name, response)
        body = response.json()
        self._token = body["access_token"]
        self._token_expires = time.monotonic() + int(body.get("expires_in", 3600)) - 60
        return self._token

    async def send(self, mail: OutgoingMail) -> Optional[str]:
        token = await self._access_token()
        message: Dict[str, Any] = {
            "subject": mail.subject,
            "body": {"contentType": "HTML", "content": mail.html},
            "toRecipients": [{"emailAddress": {"address": addr}} for addr in mail.to],
        }
        if mail.reply_to:
            message["replyTo"] = [{"emailAddress": {"address": mail.reply_to}}]
        if mail.attachments:
            message["attachments"] = [
                {
                    "@odata.type": "#microsoft.graph.fileAttachment",
                    "name": a.filename,
                    "contentType": a.content_type,
                    "contentBytes": base64.b64encode(a.content).decode("ascii"),
                }
                for a in mail.attachments
            ]
        response = await self._post(
            f"https://graph.microsoft.com/v1.0/users/{config.MS_GRAPH_SENDER}/sendMail",
            json={"message": message, "saveToSentItems": False},
            headers={"Authorization": f"Bearer {token}"},
        )
        raise_for_delivery_status(self.name, response)
        return response.headers.get("request-id")


class SendGridProvider(MailProvider):
    name = "sendgrid"
    priority = 2

    @property
    def available(self) -> bool:
        return bool(config.SENDGRID_API_KEY)

    async def send(self, mail: OutgoingMail) -> Optional[str]:
        content = []
        if mail.text:
            content.append({"type": "text/plain", "value": mail.text})
        content.append({"type": "text/html", "value": mail.html})
        payload: Dict[str, Any] = {
            "personalizations": [{"to": [{"email": addr} for addr in mail.to]}],
            "from": {"email": config.FROM_EMAIL, "name": config.FROM_NAME},
            "subject": mail.subject,
            "content": content,
        }
        if mail.reply_to:
            payload["reply_to"] = {"email": mail.reply_to}
        if mail.attachments:
            payload["attachments"] = [
                {
                    "filename": a.filename,
                    "type": a.content_type,
                    "content": base64.b64encode(a.content).decode("ascii"),
                }
                for a in mail.attachments
            ]
        response = await self._post(
            "https://api.sendgrid.com/v3/mail/send",
            json=payload,
            headers={"Authorization": f"Bearer {config.SENDGRID_API_KEY}"},
        )
        raise_for_delivery_status(self.name, response)
        return response.headers.get("X-Message-Id")


class ResendProvider(MailProvider):
    name = "resend"
    priority = 2

    @property
    def available(self) -> bool:
        return bool(config.RESEND_API_KEY)

    async def send(self, mail: OutgoingMail) -> Optional[str]:
        payload: Dict[str, Any] = {
            "from": _from_header(),
            "to": mail.to,
            "subject": mail.subject,
            "html": mail.html,
        }
        if mail.text:
            payload["text"] = mail.text
        if mail.reply_to:
            payload["reply_to"] = mail.reply_to
        if mail.attachments:
            payload["attachments"] = [
                {"filename": a.filename, "content": base64.b64encode(a.content).decode("ascii")}
                for a in mail.attachments
            ]
        response = await self._post(
            "https://api.resend.com/emails",
            json=payload,
            headers={"Authorization": f"Bearer {config.RESEND_API_KEY}"},
        )
        raise_for_delivery_status(self.name, response)
        return response.json().get("id")


class PostmarkProvider(MailProvider):
    name = "postmark"
    priority = 3

    @property
    def available(self) -> bool:
        return bool(config.POSTMARK_SERVER_TOKEN)

    def _send_sync(self, mail: OutgoingMail) -> Optional[str]:
        client = PostmarkClient(server_token=config.POSTMARK_SERVER_TOKEN)
        kwargs: Dict[str, Any] = {
            "From": _from_header(),
            "To": ", ".join(mail.to),
            "Subject": mail.subject,
            "HtmlBody": mail.html,
        }
        if mail.text:
            kwargs["TextBody"] = mail.text
        if mail.reply_to:
            kwargs["ReplyTo"] = mail.reply_to
        if mail.tag:
            kwargs["Tag"] = mail.tag
        if mail.metadata:
            kwargs["Metadata"] = mail.metadata
        if mail.attachments:
            kwargs["Attachments"] = [
                {
                    "Name": a.filename,
                    "Content": base64.b64encode(a.content).decode("ascii"),
                    "ContentType": a.content_type,
                }
                for a in mail.attachments
            ]
        response = client.emails.send(**kwargs)
        return response.get("MessageID") if isinstance(response, dict) else None

    async def send(self, mail: OutgoingMail) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._send_sync, mail)
        except ClientError as e:
            raise PermanentDeliveryError(f"postmark rejected message: {e}", self.name) from e


class MailgunProvider(MailProvider):
    name = "mailgun"
    priority = 3

    @property
    def available(self) -> bool:
        return bool(config.MAILGUN_API_KEY and config.MAILGUN_DOMAIN)

    async def send(self, mail: OutgoingMail) -> Optional[str]:
        data: Dict[str, Any] = {
            "from": _from_header(),
            "to": mail.to,
            "subject": mail.subject,
            "html": mail.html,
        }
        if mail.text:
            data["text"] = mail.text
        if mail.reply_to:
            data["h:Reply-To"] = mail.reply_to
        files = [("attachment", (a.filename, a.content, a.content_type)) for a in mail.attachments]
        response = await self._post(
            f"https://api.mailgun.net/v3/{config.MAILGUN_DOMAIN}/messages",
            data=data,
            files=files or None,
            auth=("api", config.MAILGUN_API_KEY),
        )
        raise_for_delivery_status(self.name, response)
        return response.json().get("id")


class SmtpProvider(MailProvider):
    name = "smtp"
    priority = 4

    @property
    def available(self) -> bool:
        return all([config.SMTP_HOST, config.SMTP_PORT, config.SMTP_USER, config.SMTP_PASSWORD])

    def _build(self, mail: OutgoingMail) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = mail.subject
        msg["From"] = _from_header()
        msg["To"] = ", ".join(mail.to)
        if mail.reply_to:
            msg["Reply-To"] = mail.reply_to
        msg.set_content(mail.text or "This message requires an HTML-capable email client.")
        msg.add_alternative(mail.html, subtype="html")
        for a in mail.attachments:
            maintype, _, subtype = a.content_type.partition("/")
            msg.add_attachment(a.content, maintype=maintype, subtype=subtype or "octet-stream", filename=a.filename)
        return msg

    def _send_sync(self, mail: OutgoingMail) -> Optional[str]:
        msg = self._build(mail)
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=config.EXTERNAL_CALL_TIMEOUT_SECONDS) as server:
            server.starttls()
            server.login(config.SMTP_USER, config.SMTP_PASSWORD)
            server.send_message(msg)
        return msg.get("Message-ID")

    async def send(self, mail: OutgoingMail) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._send_sync, mail)
        except smtplib.SMTPRecipientsRefused as e:
            raise PermanentDeliveryError(f"smtp recipients refused: {list(e.recipients)}", self.name) from e
        except smtplib.SMTPResponseException as e:
            error_cls = TransientDeliveryError if e.smtp_code < 500 else PermanentDeliveryError
            raise error_cls(f"smtp error {e.smtp_code}", self.name, e.smtp_code) from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransientDeliveryError(f"smtp connection error: {e}", self.name) from e


def default_providers() -> List[MailProvider]:
    return [
        GraphProvider(),
        SendGridProvider(),
        ResendProvider(),
        PostmarkProvider(),
        MailgunProvider(),
        SmtpProvider(),
    ]


class MailDispatcher:
    """Stateless failover sender over a priority-ordered provider list."""

    def __init__(self, providers: Optional[List[MailProvider]] = None, timeout: Optional[float] = None):
        self._providers = providers if providers is not None else default_providers()
        self.timeout = timeout if timeout is not None else config.EXTERNAL_CALL_TIMEOUT_SECONDS

    @property
    def providers(self) -> List[MailProvider]:
        # sorted() is stable, so equal priorities keep their listed order
        return sorted((p for p in self._providers if p.available), key=lambda p: p.priority)

    def provider_names(self) -> List[str]:
        return [p.name for p in self.providers]

    async def send(self, mail: OutgoingMail) -> DeliveryResult:
        last_error: Optional[Exception] = None
        attempted: List[str] = []

        for provider in self.providers:
            attempted.append(provider.name)
            try:
                message_id = await asyncio.wait_for(provider.send(mail), timeout=self.timeout)
                logger.info(f"Mail accepted by {provider.name} (subject={mail.subject!r}, recipients={len(mail.to)})")
                return DeliveryResult(provider=provider.name, message_id=message_id)
            except asyncio.TimeoutError:
                last_error = TransientDeliveryError(f"{provider.name} timed out after {self.timeout}s", provider.name)
            except DeliveryError as e:
                last_error = e
            except Exception as e:
                error_cls = TransientDeliveryError if is_transient_error(e) else PermanentDeliveryError
                last_error = error_cls(f"{provider.name} failed: {e}", provider.name)
            logger.warning(f"Mail provider {provider.name} failed: {last_error}")

        if not attempted:
            logger.error("No mail provider configured")
        raise MailSendFailed(last_error, attempted)


mail_dispatcher = MailDispatcher()
