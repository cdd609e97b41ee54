# checkout/services/notification_service.py
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import List

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from checkout.data.models.order import OrderModel
from checkout.services.fulfillment_service import SignedDownloadLink
from checkout.utils import settings
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


class MailTransport:
    """(recipient, subject, html) over SMTP via aiosmtplib."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        start_tls: bool | None = None,
        sender: str | None = None,
        sender_name: str | None = None,
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username or settings.SMTP_USER or None
        self.password = password or settings.SMTP_PASS or None
        self.start_tls = settings.SMTP_STARTTLS if start_tls is None else start_tls
        self.sender = sender or settings.EMAIL_FROM
        self.sender_name = sender_name or settings.EMAIL_FROM_NAME

    async def send(self, recipient: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = formataddr((self.sender_name, self.sender))
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content("Your order is confirmed. Open this email in an HTML capable client to see your downloads.")
        message.add_alternative(html, subtype="html")

        await aiosmtplib.send(
            message,
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            start_tls=self.start_tls,
        )


class NotificationDispatcher:
    """
    Order confirmation email after a successful capture.
    Best effort: payment already went through, so a mail failure is only logged.
    """

    def __init__(self, transport: MailTransport, ttl_seconds: int | None = None):
        self.transport = transport
        self.ttl_seconds = ttl_seconds or settings.DOWNLOAD_LINK_TTL_SECONDS

    def render(self, identity, order: OrderModel, links: List[SignedDownloadLink]) -> str:
        return _env.get_template("order_confirmation.html").render(
            name=getattr(identity, "name", None),
            order=order,
            links=links,
            ttl_minutes=self.ttl_seconds // 60,
            brand_name=settings.BRAND_NAME,
        )

    async def send_order_confirmation(self, identity, order: OrderModel, links: List[SignedDownloadLink]) -> None:
        recipient = getattr(identity, "email", None) or order.payer_email
        if not recipient:
            logger.warning(f"Order {order.id}: no recipient email, confirmation not sent")
            return

        try:
            html = self.render(identity, order, links)
            await self.transport.send(recipient, f"Your order #{order.id} is confirmed", html)
        except Exception:
            logger.exception(f"Order {order.id}: sending confirmation to {recipient} failed")
            return

        logger.info(f"Order {order.id}: confirmation sent to {recipient} with {len(links)} links")
