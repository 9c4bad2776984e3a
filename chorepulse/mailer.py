"""
Transactional email delivery through Resend.

In development (or without an API key) emails are logged instead of sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT = 30


class EmailDeliveryError(Exception):
    pass


class EmailSender(Protocol):
    def send(self, *, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        ...


@dataclass
class LoggingEmailSender:
    """Keeps sent messages in memory and logs them."""

    sent: list[dict] = field(default_factory=list)

    def send(self, *, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        logger.info("Email (not sent) to=%s subject=%s", to, subject)
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})


@dataclass
class ResendEmailSender:
    api_key: str
    from_address: str

    def send(self, *, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        payload = {"from": self.from_address, "to": [to], "subject": subject, "html": html}
        if text:
            payload["text"] = text
        try:
            response = requests.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise EmailDeliveryError(str(e)) from e
        if response.status_code >= 400:
            raise EmailDeliveryError(
                f"Resend responded {response.status_code}: {response.text[:200]}"
            )


def send_email(
    sender: EmailSender, to: str, subject: str, html: str, text: Optional[str] = None
) -> bool:
    """Send one email, returning False (and logging) on delivery failure."""
    try:
        sender.send(to=to, subject=subject, html=html, text=text)
    except EmailDeliveryError:
        logger.exception("Failed to send email to %s", to)
        return False
    return True
