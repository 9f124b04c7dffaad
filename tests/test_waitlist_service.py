"""
Tests for waitlist sign-up and lookups
"""

import pytest

from mentorship.exceptions import InvalidWaitlistRequestError
from mentorship.models import MentorshipType
from mentorship.ratelimit import InMemoryRateLimitStore, RateLimiter
from mentorship.services.waitlist_service import WaitlistService, normalize_email, sanitize_csv_cell

SLUG = "jane-doe"


@pytest.fixture(name="service")
def service_fixture(session_factory):
    return WaitlistService(session_factory=session_factory)


class TestNormalizeEmail:
    """Tests for email normalization"""

    def test_strips_and_lowercases(self):
        assert normalize_email("  Fan@Example.COM ") == "fan@example.com"

    @pytest.mark.parametrize("email", ["", "   ", "no-at-sign", "a@b", "two@@example.com", None])
    def test_rejects_malformed(self, email):
        with pytest.raises(InvalidWaitlistRequestError):
            normalize_email(email)


class TestJoinWaitlist:
    """Tests for join_waitlist"""

    def test_join_creates_entry(self, service):
        """First sign-up creates an unnotified entry"""
        result = service.join_waitlist("fan@example.com", SLUG, MentorshipType.ONE_ON_ONE, user_id="user_1")

        assert result.entry_id is not None
        assert result.already_on_waitlist is False

        entries = service.get_waitlist_status("user_1")
        assert len(entries) == 1
        assert entries[0]["notified"] is False
        assert entries[0]["mentorship_type"] == "one-on-one"

    def test_join_twice_reports_existing_entry(self, service):
        """Second sign-up with the same address (any casing) is not an error"""
        first = service.join_waitlist("fan@example.com", SLUG, MentorshipType.GROUP)
        second = service.join_waitlist("FAN@example.com ", SLUG, "group")

        assert second.already_on_waitlist is True
        assert second.entry_id == first.entry_id

    def test_same_email_different_type_is_separate(self, service):
        first = service.join_waitlist("fan@example.com", SLUG, MentorshipType.GROUP)
        second = service.join_waitlist("fan@example.com", SLUG, MentorshipType.ONE_ON_ONE)

        assert second.already_on_waitlist is False
        assert second.entry_id != first.entry_id

    @pytest.mark.parametrize(
        "email,slug,mentorship_type",
        [
            ("not-an-email", SLUG, "group"),
            ("fan@example.com", "  ", "group"),
            ("fan@example.com", SLUG, "workshop"),
        ],
    )
    def test_invalid_requests_raise(self, service, email, slug, mentorship_type):
        with pytest.raises(InvalidWaitlistRequestError):
            service.join_waitlist(email, slug, mentorship_type)

    def test_rate_limited_join_is_not_stored(self, session_factory):
        """Requests over the limit are refused with a retry hint"""
        limiter = RateLimiter(InMemoryRateLimitStore(clock=lambda: 100.0), max_requests=2, window_seconds=60)
        service = WaitlistService(rate_limiter=limiter, session_factory=session_factory)

        service.join_waitlist("a@example.com", SLUG, "group", client_key="10.0.0.1")
        service.join_waitlist("b@example.com", SLUG, "group", client_key="10.0.0.1")
        blocked = service.join_waitlist("c@example.com", SLUG, "group", client_key="10.0.0.1")

        assert blocked.rate_limited is True
        assert blocked.retry_after_seconds == 60
        assert blocked.entry_id is None
        emails = [e["email"] for e in service.get_instructor_waitlist(SLUG, "group")]
        assert "c@example.com" not in emails

        other_client = service.join_waitlist("c@example.com", SLUG, "group", client_key="10.0.0.2")
        assert other_client.rate_limited is False


class TestWaitlistLookups:
    """Tests for status, admin listing and cleanup"""

    def test_status_filters_by_instructor(self, service):
        service.join_waitlist("fan@example.com", SLUG, "group", user_id="user_1")
        service.join_waitlist("fan@example.com", "john-roe", "group", user_id="user_1")

        assert len(service.get_waitlist_status("user_1")) == 2
        only_jane = service.get_waitlist_status("user_1", instructor_slug=SLUG)
        assert [e["instructor_slug"] for e in only_jane] == [SLUG]

    def test_instructor_waitlist_newest_first(self, service):
        service.join_waitlist("first@example.com", SLUG, "group")
        service.join_waitlist("second@example.com", SLUG, "group")
        service.join_waitlist("other@example.com", SLUG, "one-on-one")

        emails = [e["email"] for e in service.get_instructor_waitlist(SLUG, MentorshipType.GROUP)]

        assert emails == ["second@example.com", "first@example.com"]

    def test_cleanup_removes_only_that_instructor(self, service):
        service.join_waitlist("a@example.com", SLUG, "group")
        service.join_waitlist("b@example.com", SLUG, "one-on-one")
        service.join_waitlist("c@example.com", "john-roe", "group")

        deleted = service.cleanup_instructor(SLUG)

        assert deleted == 2
        assert service.get_instructor_waitlist(SLUG, "group") == []
        assert len(service.get_instructor_waitlist("john-roe", "group")) == 1

    def test_delete_selected_entries(self, service):
        """Only the chosen IDs are removed"""
        keep = service.join_waitlist("keep@example.com", SLUG, "group")
        drop_a = service.join_waitlist("a@example.com", SLUG, "group")
        drop_b = service.join_waitlist("b@example.com", SLUG, "one-on-one")

        deleted = service.delete_entries([drop_a.entry_id, drop_b.entry_id, 9999])

        assert deleted == 2
        remaining = service.get_instructor_waitlist(SLUG, "group")
        assert [e["id"] for e in remaining] == [keep.entry_id]

    def test_delete_requires_ids(self, service):
        with pytest.raises(InvalidWaitlistRequestError):
            service.delete_entries([])


class TestCsvExport:
    """Tests for the admin CSV export"""

    def test_sanitize_csv_cell(self):
        assert sanitize_csv_cell(" fan@example.com ") == "fan@example.com"
        assert sanitize_csv_cell("=HYPERLINK(\"x\")") == "'=HYPERLINK(\"x\")"
        assert sanitize_csv_cell("@SUM(A1)") == "'@SUM(A1)"
        assert sanitize_csv_cell("-1") == "'-1"

    def test_export_header_and_rows(self, service):
        """One row per entry, newest first, only the requested instructor/type"""
        service.join_waitlist("first@example.com", SLUG, "group")
        service.join_waitlist("second@example.com", SLUG, "group")
        service.join_waitlist("other@example.com", SLUG, "one-on-one")

        lines = service.export_csv(SLUG, MentorshipType.GROUP).splitlines()

        assert lines[0] == "email,instructor_slug,mentorship_type,notified,created_at"
        assert len(lines) == 3
        assert lines[1].startswith("second@example.com,jane-doe,group,false,")
        assert lines[2].startswith("first@example.com,jane-doe,group,false,")

    def test_export_empty_waitlist(self, service):
        assert service.export_csv(SLUG, "group") == "email,instructor_slug,mentorship_type,notified,created_at\n"

    def test_csv_filename(self):
        assert WaitlistService.csv_filename(SLUG, "one-on-one") == "waitlist-jane-doe-one-on-one.csv"
