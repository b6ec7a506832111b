"""Transactional email through the Brevo API."""

import logging
from html import escape

import httpx

from akadeo.config import Settings

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Verify your Akadeo account"


def build_verification_html(name: str | None, code: str, app_url: str | None) -> str:
    """Render the verification email body."""
    if app_url:
        verification_url = f"{app_url.rstrip('/')}/index.html#verify-email"
    else:
        verification_url = "#verify-email"
    greeting = escape(name) if name else "there"
    link = escape(verification_url)
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>{VERIFICATION_SUBJECT}</title>
  </head>
  <body style="font-family: Arial, sans-serif; background: #f8fafc; padding: 32px; color: #0f172a;">
    <h1 style="font-size: 24px;">Welcome to Akadeo</h1>
    <p>Hi {greeting},</p>
    <p>Use the verification code below to activate your account. The code expires in 24 hours.</p>
    <p style="font-size: 32px; letter-spacing: 12px; font-weight: 700; color: #1d3ed2;">{escape(code)}</p>
    <p>Enter it here: <a href="{link}">{link}</a></p>
    <p style="font-size: 14px; color: #64748b;">If you didn't request this email you can safely ignore it.</p>
  </body>
</html>"""


class EmailDispatcher:
    """Sends verification codes. ``send`` reports success as a bool."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.endpoint = settings.brevo_endpoint
        self.timeout = settings.email_timeout_seconds

    async def send_verification_email(self, email: str, name: str | None, code: str) -> bool:
        if not self.settings.brevo_api_key or not self.settings.brevo_sender_email:
            logger.error("Brevo is not configured; cannot send verification email")
            return False

        payload = {
            "sender": {
                "email": self.settings.brevo_sender_email,
                "name": self.settings.brevo_sender_name,
            },
            "to": [{"email": email, "name": name or email}],
            "subject": VERIFICATION_SUBJECT,
            "htmlContent": build_verification_html(name, code, self.settings.app_url),
        }
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "api-key": self.settings.brevo_api_key,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.TimeoutException:
            logger.error(f"Brevo request timed out after {self.timeout}s")
            return False
        except httpx.HTTPStatusError as e:
            logger.error(f"Brevo API returned {e.response.status_code}: {e.response.text}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Brevo request failed: {e}")
            return False
        return True
