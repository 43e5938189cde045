from html import escape
from typing import Optional

import httpx
from rizara.config import settings
from rizara.core.exceptions import NotificationError
from rizara.utils.logger import get_logger

email_logger = get_logger("email")

OTP_SUBJECTS = {
    "registration": "Rizara Luxe - Verify your email",
    "password_reset": "Rizara Luxe - Password reset code",
    "email_change": "Rizara Luxe - Confirm your new email",
    "password_change": "Rizara Luxe - Password change code",
}

OTP_INTROS = {
    "registration": "Thank you for joining Rizara Luxe. Use the code below to finish creating your account:",
    "password_reset": "We received a request to reset your password. Use the code below to continue:",
    "email_change": "Use the code below to confirm this address as your new Rizara Luxe login:",
    "password_change": "Use the code below to confirm your password change:",
}


def _wrap(title: str, body: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body style="font-family: Arial, sans-serif; background-color: #f5f5f5;">
    <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; padding: 20px;">
        <h2 style="text-align: center; color: #333;">{title}</h2>
        <div style="color: #666; line-height: 1.6;">{body}</div>
        <p style="text-align: center; color: #999; font-size: 12px;">&copy; Rizara Luxe</p>
    </div>
</body>
</html>
    """.strip()


class EmailService:
    """Transactional email through the Brevo HTTP API"""

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None):
        self.api_key = settings.brevo_api_key if api_key is None else api_key
        self.api_url = api_url or settings.brevo_api_url

    async def send(self, to: str, subject: str, html: str) -> dict:
        """Send one email; raises NotificationError when it was not accepted"""
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    self.api_url,
                    headers={
                        "accept": "application/json",
                        "content-type": "application/json",
                        "api-key": self.api_key,
                    },
                    json={
                        "sender": {"name": settings.email_from_name, "email": settings.email_from},
                        "to": [{"email": to}],
                        "subject": subject,
                        "htmlContent": html,
                    },
                    timeout=settings.email_timeout_seconds,
                )
            except httpx.HTTPError as e:
                email_logger.error(f"Email service unreachable for {to}: {e}")
                raise NotificationError("Email service connection failed") from e

        if not response.is_success:
            email_logger.error(
                f"Email to {to} rejected: {response.status_code} {response.text}")
            raise NotificationError(f"Email send failed: {response.status_code}")

        email_logger.info(f"Email sent successfully to {to}")
        return {"success": True}

    async def send_otp(self, to: str, code: str, purpose: str, name: str = "User") -> dict:
        """Deliver a one-time code for the given purpose"""
        subject = OTP_SUBJECTS.get(purpose, "Rizara Luxe - Verification code")
        intro = OTP_INTROS.get(purpose, "Your verification code is:")
        body = (
            f"<p>Hello {escape(name)},</p>"
            f"<p>{intro}</p>"
            f'<p style="font-size: 24px; font-weight: bold; text-align: center; letter-spacing: 4px;">{code}</p>'
            f"<p>This code expires in <strong>{settings.otp_expire_minutes} minutes</strong>.</p>"
            "<p>If you did not request this, you can ignore this email.</p>"
        )
        return await self.send(to, subject, _wrap(subject, body))

    async def send_welcome_email(self, to: str, name: str) -> dict:
        subject = "Welcome to Rizara Luxe"
        body = (
            f"<p>Hello {escape(name)},</p>"
            "<p>Your account is ready. Explore the collection at "
            f'<a href="{settings.frontend_url}">{settings.frontend_url}</a>.</p>'
        )
        return await self.send(to, subject, _wrap(subject, body))

    async def send_verification_link(self, to: str, name: str, token: str) -> dict:
        subject = "Rizara Luxe - Verify your email"
        link = f"{settings.frontend_url}/verify-email/{token}"
        body = (
            f"<p>Hello {escape(name)},</p>"
            f'<p>Confirm your email address by opening <a href="{link}">this link</a>. '
            f"It is valid for {settings.email_verification_token_expire_hours} hours.</p>"
        )
        return await self.send(to, subject, _wrap(subject, body))
