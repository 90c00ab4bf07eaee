"""
Transactional email via SendGrid.

Sends are fire-and-forget: every failure is logged and swallowed so that a
mail outage never fails the request that triggered it.
"""
import logging
from datetime import datetime
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from app.core import config

logger = logging.getLogger(__name__)


class EmailNotifier:
    """SendGrid-backed notifier. Without an API key, messages are only logged."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        client_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else config.SENDGRID_API_KEY
        self.from_email = from_email or config.SENDGRID_FROM_EMAIL
        self.from_name = from_name or config.SENDGRID_FROM_NAME
        self.client_url = client_url or config.CLIENT_URL

    def _send(self, to: str, subject: str, html: str) -> bool:
        if not self.api_key:
            logger.info(f"[SendGrid] (dev) '{subject}' to {to}")
            return False
        try:
            message = Mail(
                from_email=Email(self.from_email, self.from_name),
                to_emails=To(to),
                subject=subject,
                html_content=Content("text/html", html),
            )
            response = SendGridAPIClient(self.api_key).send(message)
            logger.info(f"Email '{subject}' sent via SendGrid to {to}: {response.status_code}")
            return response.status_code in (200, 201, 202)
        except Exception as e:
            logger.error(f"SendGrid send failed for {to}: {e}", exc_info=True)
            return False

    def send_welcome(self, to: str, first_name: str, user_type: str) -> bool:
        role_text = (
            "post jobs and find top candidates"
            if user_type == "vendor"
            else "discover job opportunities that match your profile"
        )
        html = (
            f"<h2>Welcome, {first_name}!</h2>"
            f"<p>Your account has been created. You can now {role_text}.</p>"
            f'<p><a href="{self.client_url}">Get Started</a></p>'
        )
        return self._send(to, "Welcome to MatchDB!", html)

    def send_subscription_activated(
        self,
        to: str,
        first_name: str,
        plan: str,
        current_period_end: Optional[datetime],
    ) -> bool:
        next_billing = current_period_end.strftime("%Y-%m-%d") if current_period_end else "-"
        html = (
            f"<h2>Subscription Activated!</h2>"
            f"<p>Hi {first_name}, your <strong>{plan}</strong> plan is now active. "
            f"Your next billing date is <strong>{next_billing}</strong>.</p>"
            f'<p><a href="{self.client_url}/">Manage Subscription</a></p>'
        )
        return self._send(to, f"Your MatchDB {plan.upper()} plan is now active", html)
