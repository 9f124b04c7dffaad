"""
Tests for email composition, the Resend mailer and the Discord notifier
"""

import json
import httpx
import pytest

from mentorship.config import MentorshipConfig
from mentorship.exceptions import ConfigurationError
from mentorship.models import MentorshipType
from mentorship.services.discord_service import (
    DISCORD_MESSAGE_LIMIT,
    DiscordWebhookNotifier,
    cap_message_content,
)
from mentorship.services.email_service import (
    ResendMailer,
    build_mailer,
    build_waitlist_notification_email,
    mask_email,
)

CONTENT = build_waitlist_notification_email(
    instructor_name="Jane Doe",
    mentorship_type=MentorshipType.GROUP,
    purchase_url="https://app.example.com/checkout?i=jane&t=group",
)


def make_mailer(handler):
    client = httpx.AsyncClient(
        base_url="https://api.resend.com", transport=httpx.MockTransport(handler)
    )
    return ResendMailer("re_test", "mentors@example.com", client=client)


class TestWaitlistEmail:
    """Tests for the spot-available email"""

    def test_subject_and_text(self):
        assert CONTENT.subject == "Spot available: Jane Doe's Group Mentorship"
        assert CONTENT.text.startswith("Great news!")
        assert "Book now: https://app.example.com/checkout?i=jane&t=group" in CONTENT.text

    def test_headers(self):
        assert CONTENT.headers == {
            "X-Notification-Type": "waitlist-availability",
            "X-Instructor-Name": "Jane Doe",
            "X-Mentorship-Type": "group",
        }

    def test_html_is_escaped(self):
        content = build_waitlist_notification_email(
            "<script>alert(1)</script>", MentorshipType.ONE_ON_ONE, "https://x.example.com/?a=1&b=2"
        )

        assert "<script>" not in content.html
        assert "&lt;script&gt;" in content.html
        assert "a=1&amp;b=2" in content.html
        assert "1-on-1 Mentorship" in content.html

    def test_url_cannot_break_out_of_href(self):
        content = build_waitlist_notification_email(
            "Jane Doe", MentorshipType.GROUP, 'https://x.example.com/"><img src=x onerror=alert(1)>'
        )

        assert '"><img' not in content.html
        assert "&#34;&gt;&lt;img" in content.html
        assert "Huckleberry Mentorships" in content.html

    def test_mask_email(self):
        assert mask_email("jane@example.com") == "j***@example.com"
        assert mask_email("broken") == "***"


class TestResendMailer:
    """Tests for ResendMailer.send"""

    @pytest.mark.asyncio
    async def test_successful_send(self):
        """Payload carries sender, recipient, bodies and headers"""
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "email_123"})

        mailer = make_mailer(handler)
        result = await mailer.send("fan@example.com", CONTENT)
        await mailer.close()

        assert result.ok is True
        assert captured["url"] == "https://api.resend.com/emails"
        assert captured["body"]["from"] == "mentors@example.com"
        assert captured["body"]["to"] == ["fan@example.com"]
        assert captured["body"]["subject"] == CONTENT.subject
        assert captured["body"]["headers"]["X-Mentorship-Type"] == "group"

    @pytest.mark.asyncio
    async def test_provider_error_is_reported(self):
        mailer = make_mailer(lambda request: httpx.Response(422, json={"message": "invalid"}))

        result = await mailer.send("fan@example.com", CONTENT)

        assert result.ok is False
        assert result.error == "HTTP 422"

    @pytest.mark.asyncio
    async def test_missing_message_id_is_failure(self):
        mailer = make_mailer(lambda request: httpx.Response(200, json={}))

        result = await mailer.send("fan@example.com", CONTENT)

        assert result.ok is False

    @pytest.mark.asyncio
    async def test_timeout_is_reported(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        result = await make_mailer(handler).send("fan@example.com", CONTENT)

        assert result.ok is False
        assert result.error == "timeout"

    @pytest.mark.asyncio
    async def test_connection_error_is_reported(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = await make_mailer(handler).send("fan@example.com", CONTENT)

        assert result.ok is False
        assert "refused" in result.error


class TestBuildMailer:
    """Tests for mail configuration handling"""

    def test_missing_settings_outside_production_disables_mail(self):
        config = MentorshipConfig(_env_file=None, resend_api_key=None, email_from=None)

        assert build_mailer(config) is None

    def test_missing_settings_in_production_raises(self):
        config = MentorshipConfig(_env_file=None, environment="production", resend_api_key=None)

        with pytest.raises(ConfigurationError):
            build_mailer(config)

    @pytest.mark.asyncio
    async def test_configured_mailer(self, config):
        mailer = build_mailer(config)

        assert isinstance(mailer, ResendMailer)
        assert mailer.from_address == "mentors@example.com"
        await mailer.close()


class TestDiscordNotifier:
    """Tests for the Discord webhook client"""

    def test_short_message_untouched(self):
        assert cap_message_content("hello") == "hello"

    def test_long_message_is_capped(self):
        capped = cap_message_content("x" * 2500)

        assert len(capped) == DISCORD_MESSAGE_LIMIT
        assert capped.endswith("...")

    @pytest.mark.asyncio
    async def test_post_message(self):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(204)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = DiscordWebhookNotifier("https://discord.example.com/hook", client=client)

        await notifier.post_message("y" * 3000)
        await notifier.close()

        assert len(captured["body"]["content"]) == DISCORD_MESSAGE_LIMIT

    @pytest.mark.asyncio
    async def test_post_message_raises_on_http_error(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        notifier = DiscordWebhookNotifier("https://discord.example.com/hook", client=client)

        with pytest.raises(httpx.HTTPStatusError):
            await notifier.post_message("hello")
