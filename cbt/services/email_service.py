"""
cbt/services/email_service.py
Access code email notification

The core only distinguishes "code generated" from "delivery failed"; a
failed delivery never rolls back the issued code.
"""
import html
import logging
from typing import Optional

import httpx

from cbt.config import settings

logger = logging.getLogger(__name__)


def build_take_url(exam_id: str, code: str, base_url: Optional[str] = None) -> str:
    base = (base_url or settings.APP_BASE_URL).rstrip("/")
    return f"{base}/exam/{exam_id}/take?code={code}"


def render_code_email(exam_title: str, code: str, take_url: str, expires_at=None) -> str:
    expiry = (
        f"<p>This code expires on {html.escape(expires_at.isoformat())} (UTC).</p>"
        if expires_at is not None else ""
    )
    return (
        f"<h2>Your access code for {html.escape(exam_title)}</h2>"
        f"<p>Your exam access code is: <strong>{html.escape(code)}</strong></p>"
        f"<p>You can start the exam directly from this link:</p>"
        f"<p><a href=\"{html.escape(take_url)}\">{html.escape(take_url)}</a></p>"
        f"{expiry}"
        f"<p>The code can only be used once and only with the account it was sent to.</p>"
    )


class EmailSender:
    """Delivers {to, subject, html}. Returns True on success."""

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        raise NotImplementedError


class LoggingEmailSender(EmailSender):
    """Used when no email function is configured; logs instead of sending."""

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        logger.info(f"Email would be sent to: {to} (subject={subject!r}, html_length={len(html_body)})")
        return True


class HttpEmailSender(EmailSender):
    """Posts the message to an HTTP email function."""

    def __init__(self, url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        payload = {"to": to, "subject": subject, "html": html_body}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Email delivery to {to} failed: {str(e)}")
                return False

        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get("success") is False:
            logger.error(f"Email function rejected message to {to}: {body.get('error')}")
            return False
        return True


def get_email_sender() -> EmailSender:
    if settings.EMAIL_FUNCTION_URL:
        return HttpEmailSender(settings.EMAIL_FUNCTION_URL, timeout=settings.EMAIL_TIMEOUT_SECONDS)
    return LoggingEmailSender()
