"""
Email composition and delivery through the Resend HTTP API.

Sending never raises: every outcome, including timeouts and provider
errors, comes back as a SendResult so one bad address cannot stop a batch.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx
from jinja2 import Environment, FileSystemLoader

from mentorship.config import MentorshipConfig
from mentorship.models import EmailContent, MentorshipType, SendResult

logger = logging.getLogger(__name__)

BRAND_NAME = "Huckleberry Mentorships"

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

template_env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


def mask_email(email: str) -> str:
    """j***@example.com style masking for log lines"""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


def build_waitlist_notification_email(
    instructor_name: str, mentorship_type: MentorshipType, purchase_url: str
) -> EmailContent:
    """Build the "spot available" email for waitlisted people"""
    mentorship_type = MentorshipType(mentorship_type)
    type_label = mentorship_type.label
    subject = f"Spot available: {instructor_name}'s {type_label}"

    text = "\n".join(
        [
            "Great news!",
            "",
            f"A spot has opened up for {instructor_name}'s {type_label}.",
            "",
            f"Book now: {purchase_url}",
            "",
            "If you have any trouble, reply to this email and we'll help.",
        ]
    )

    body = template_env.get_template("email/waitlist_notification.html").render(
        brand_name=BRAND_NAME,
        instructor_name=instructor_name,
        type_label=type_label,
        purchase_url=purchase_url,
    )

    return EmailContent(
        subject=subject,
        html=body,
        text=text,
        headers={
            "X-Notification-Type": "waitlist-availability",
            "X-Instructor-Name": instructor_name,
            "X-Mentorship-Type": mentorship_type.value,
        },
    )


class ResendMailer:
    """
    Send transactional email via Resend.

    Designed to be non-blocking for callers - send() reports failures
    in its return value and never raises.
    """

    def __init__(
        self,
        api_key: str,
        from_address: str,
        base_url: str = "https://api.resend.com",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.from_address = from_address
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "User-Agent": "Mentorship-Booking-Core/1.0",
            },
        )

    async def send(self, to: str, content: EmailContent) -> SendResult:
        """
        Send one email.

        Args:
            to: Recipient address
            content: Subject, bodies and headers

        Returns:
            SendResult with ok=False on any transport or provider error
        """
        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": content.subject,
            "html": content.html,
            "text": content.text,
            "headers": content.headers,
        }

        try:
            response = await self.client.post("/emails", json=payload)
        except httpx.TimeoutException:
            logger.error(f"Timeout sending email to {mask_email(to)}")
            return SendResult(email=to, ok=False, error="timeout")
        except httpx.HTTPError as e:
            logger.error(f"Failed to send email to {mask_email(to)}: {e}")
            return SendResult(email=to, ok=False, error=str(e) or type(e).__name__)

        if response.status_code >= 400:
            logger.error(
                f"API error sending email to {mask_email(to)}: {response.status_code} - {response.text}"
            )
            return SendResult(email=to, ok=False, error=f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict) or not data.get("id"):
            logger.error(f"API error sending email to {mask_email(to)}: no message id in response")
            return SendResult(email=to, ok=False, error="missing message id")

        logger.debug(f"Sent email to {mask_email(to)} (id: {data['id']})")
        return SendResult(email=to, ok=True)

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()


def build_mailer(config: MentorshipConfig) -> Optional[ResendMailer]:
    """
    Create the mailer from configuration.

    Returns None when mail is not configured outside production.

    Raises:
        ConfigurationError: If mail settings are missing in production
    """
    if not config.require_mail_settings():
        logger.info("Email provider not configured - mail disabled")
        return None

    return ResendMailer(
        api_key=config.resend_api_key,
        from_address=config.email_from,
        base_url=config.resend_api_url,
        timeout=config.send_timeout_seconds,
    )
