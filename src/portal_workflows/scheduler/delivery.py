"""SMTP delivery of rendered reports."""

from __future__ import annotations

import logging
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import TYPE_CHECKING

import aiosmtplib

if TYPE_CHECKING:
    from collections.abc import Sequence

    from portal_workflows.core.models import MailAttachment
    from portal_workflows.scheduler.config import MailConfig

__all__ = ["SmtpDeliveryTransport", "build_message"]

logger = logging.getLogger(__name__)


def build_message(
    sender: str,
    recipient: str,
    subject: str,
    html: str,
    attachments: Sequence[MailAttachment] = (),
) -> MIMEMultipart:
    """Build a multipart HTML message for one recipient with optional file attachments.

    Args:
        sender: Value of the From header.
        recipient: Recipient address.
        subject: Mail subject.
        html: HTML body.
        attachments: Files to attach.

    Returns:
        The assembled message.
    """
    msg = MIMEMultipart()
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.attach(MIMEText(html, "html"))

    for attachment in attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        part = MIMEBase(maintype, subtype or "octet-stream")
        content = attachment.content.encode() if isinstance(attachment.content, str) else attachment.content
        part.set_payload(content)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
        msg.attach(part)

    return msg


class SmtpDeliveryTransport:
    """:class:`~portal_workflows.core.protocols.DeliveryTransport` sending mail over SMTP.

    Args:
        config: SMTP settings.
        sender_name: Display name of the sender. The address is the SMTP user.
    """

    def __init__(self, config: MailConfig, *, sender_name: str = "Analytics System") -> None:
        self.config = config
        self.sender_name = sender_name

    @property
    def sender(self) -> str:
        return formataddr((self.sender_name, self.config.user or ""))

    async def deliver(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        attachments: Sequence[MailAttachment],
    ) -> bool:
        """Send a separate message to each recipient.

        A recipient whose message is refused is logged and skipped.

        Returns:
            True if every recipient's message was accepted, False if some were
            refused.

        Raises:
            aiosmtplib.SMTPException: The last SMTP error, if no message was
                accepted at all.
        """
        failed: list[str] = []
        error: aiosmtplib.SMTPException | None = None
        for recipient in recipients:
            msg = build_message(self.sender, recipient, subject, html, attachments)
            try:
                await aiosmtplib.send(
                    msg,
                    hostname=self.config.host,
                    port=self.config.port,
                    username=self.config.user,
                    password=self.config.password,
                    use_tls=self.config.secure,
                )
            except aiosmtplib.SMTPException as exc:
                logger.exception("Failed to send '%s' to %s", subject, recipient)
                failed.append(recipient)
                error = exc

        if error is not None and len(failed) == len(recipients):
            raise error
        logger.info("Sent '%s' to %d of %d recipient(s)", subject, len(recipients) - len(failed), len(recipients))
        return not failed
