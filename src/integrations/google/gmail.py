"""Gmail client.

Messages are sent through ``users.messages.send`` as base64url-encoded
RFC 2822 payloads.
"""

import base64
from dataclasses import dataclass
from email.message import EmailMessage

from src.integrations.base import AuthorizedApiClient

GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"


@dataclass(frozen=True)
class MailAttachment:
    filename: str
    content: bytes
    mime_type: str = "application/octet-stream"


def build_raw_message(
    to: list[str],
    subject: str,
    body: str,
    html: bool = False,
    attachments: list[MailAttachment] | None = None,
) -> str:
    """Build a base64url-encoded MIME message."""
    message = EmailMessage()
    message["To"] = ", ".join(to)
    message["Subject"] = subject
    if html:
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(body, subtype="html")
    else:
        message.set_content(body)

    for attachment in attachments or []:
        maintype, _, subtype = attachment.mime_type.partition("/")
        message.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )

    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


class GmailClient(AuthorizedApiClient):
    """Sends mail as the connected Google account."""

    provider_id = "google"

    async def send_mail(
        self,
        to: list[str],
        subject: str,
        body: str,
        html: bool = False,
        attachments: list[MailAttachment] | None = None,
    ) -> str:
        """Send a message.

        Returns:
            Gmail message ID
        """
        data = await self._request(
            "POST",
            GMAIL_SEND_URL,
            json={"raw": build_raw_message(to, subject, body, html, attachments)},
        )
        return data.get("id", "")
