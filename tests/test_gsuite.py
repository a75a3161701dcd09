"""Tests for the Gmail deal-inbox integration.

All tests use mocked Google APIs -- no real credentials needed.
Validates auth caching, body selection across MIME layouts, attachment
metadata, label lookup and folder scanning.
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.app.services.gsuite.auth import GSuiteAuthManager
from src.app.services.gsuite.gmail import (
    GmailService,
    decode_base64url,
    extract_email_body,
    parse_email,
)
from src.app.services.gsuite.models import ParsedEmail


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_credentials():
    """Mock Google service account credentials."""
    with patch(
        "src.app.services.gsuite.auth.service_account.Credentials"
    ) as mock_creds_cls:
        mock_creds = MagicMock()
        mock_creds.with_subject.return_value = mock_creds
        mock_creds_cls.from_service_account_file.return_value = mock_creds
        yield mock_creds_cls


@pytest.fixture
def mock_build():
    """Mock googleapiclient.discovery.build."""
    with patch("src.app.services.gsuite.auth.build") as mock_build_fn:
        yield mock_build_fn


@pytest.fixture
def auth_manager(mock_credentials, mock_build):
    return GSuiteAuthManager(
        service_account_file="/fake/service-account.json",
        delegated_user_email="deals@bank.example",
    )


@pytest.fixture
def gmail_service(auth_manager):
    return GmailService(
        auth_manager=auth_manager,
        default_user_email="deals@bank.example",
    )


@pytest.fixture
def api(mock_build):
    """The mocked Gmail API resource returned by build()."""
    return mock_build.return_value


# ── Auth Caching Tests ───────────────────────────────────────────────────────


class TestGSuiteAuthManager:
    def test_service_cached_per_mailbox(self, auth_manager, mock_build):
        first = auth_manager.get_gmail_service()
        second = auth_manager.get_gmail_service("deals@bank.example")

        assert first is second
        mock_build.assert_called_once()
        args, kwargs = mock_build.call_args
        assert args == ("gmail", "v1")
        assert kwargs["cache_discovery"] is False

    def test_other_mailbox_builds_new_service(self, auth_manager, mock_build, mock_credentials):
        auth_manager.get_gmail_service()
        auth_manager.get_gmail_service("ceo@bank.example")

        assert mock_build.call_count == 2
        subjects = [c.args[0] for c in mock_credentials.from_service_account_file.return_value.with_subject.call_args_list]
        assert subjects == ["deals@bank.example", "ceo@bank.example"]


# ── Parsing Tests ────────────────────────────────────────────────────────────


class TestBodyExtraction:
    def test_top_level_body_wins(self):
        payload = {
            "body": {"data": _b64("top level")},
            "parts": [{"mimeType": "text/plain", "body": {"data": _b64("part")}}],
        }
        assert extract_email_body(payload) == "top level"

    def test_plain_part_preferred_over_html(self):
        payload = {
            "parts": [
                {"mimeType": "text/html", "body": {"data": _b64("<p>html</p>")}},
                {"mimeType": "text/plain", "body": {"data": _b64("plain")}},
            ]
        }
        assert extract_email_body(payload) == "plain"

    def test_html_tags_stripped_and_whitespace_collapsed(self):
        html = "<div><p>Project   Atlas</p>\n<b>sell-side</b></div>"
        payload = {"parts": [{"mimeType": "text/html", "body": {"data": _b64(html)}}]}
        assert extract_email_body(payload) == "Project Atlas sell-side"

    def test_html_style_and_entities_removed(self):
        html = (
            "<html><head><style>p{color:red}</style></head>"
            "<body><script>track()</script><p>M&amp;A&nbsp;mandate for Acme</p></body></html>"
        )
        payload = {"parts": [{"mimeType": "text/html", "body": {"data": _b64(html)}}]}
        assert extract_email_body(payload) == "M&A mandate for Acme"

    def test_nested_multipart_plain_text(self):
        payload = {
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [{"mimeType": "text/plain", "body": {"data": _b64("nested")}}],
                }
            ]
        }
        assert extract_email_body(payload) == "nested"

    def test_no_readable_body(self):
        assert extract_email_body({"parts": [{"mimeType": "image/png", "body": {}}]}) == ""

    def test_malformed_base64_decodes_to_empty(self):
        assert decode_base64url("abcde") == ""


def test_parse_email_headers_date_and_attachments():
    message = {
        "id": "m-1",
        "threadId": "t-1",
        "snippet": "We would like to engage",
        "internalDate": "1772443800000",
        "payload": {
            "headers": [
                {"name": "From", "value": "ceo@client.example"},
                {"name": "to", "value": "deals@bank.example"},
                {"name": "SUBJECT", "value": "Project Atlas"},
            ],
            "parts": [
                {"mimeType": "text/plain", "body": {"data": _b64("Body text")}},
                {
                    "mimeType": "application/pdf",
                    "filename": "teaser.pdf",
                    "body": {"size": 2048, "attachmentId": "a-1"},
                },
            ],
        },
    }

    parsed = parse_email(message)

    assert parsed.id == "m-1"
    assert parsed.thread_id == "t-1"
    assert parsed.sender == "ceo@client.example"
    assert parsed.to == "deals@bank.example"
    assert parsed.subject == "Project Atlas"
    assert parsed.body == "Body text"
    assert parsed.date == datetime.fromtimestamp(1772443800, tz=timezone.utc)
    assert len(parsed.attachments) == 1
    assert parsed.attachments[0].filename == "teaser.pdf"
    assert parsed.attachments[0].mime_type == "application/pdf"
    assert parsed.attachments[0].size == 2048


# ── GmailService Tests ───────────────────────────────────────────────────────


class TestGmailService:
    @pytest.mark.asyncio
    async def test_label_lookup_is_case_insensitive(self, gmail_service, api):
        api.users().labels().list().execute.return_value = {
            "labels": [
                {"id": "INBOX", "name": "INBOX", "type": "system"},
                {"id": "Label_7", "name": "Deals", "type": "user"},
            ]
        }

        label = await gmail_service.get_label_by_name("deals")

        assert label is not None
        assert label.id == "Label_7"

    @pytest.mark.asyncio
    async def test_scan_missing_label_returns_empty(self, gmail_service, api):
        api.users().labels().list().execute.return_value = {"labels": []}

        assert await gmail_service.scan_deal_folder("Deals") == []
        api.users().messages().list.assert_not_called()

    @pytest.mark.asyncio
    async def test_scan_skips_unreadable_messages(self, gmail_service, api):
        api.users().labels().list().execute.return_value = {
            "labels": [{"id": "Label_7", "name": "Deals"}]
        }
        api.users().messages().list().execute.return_value = {
            "messages": [
                {"id": "m-1", "threadId": "t-1"},
                {"id": "m-2", "threadId": "t-1"},
            ]
        }
        readable = ParsedEmail(
            id="m-1", thread_id="t-1", date=datetime(2026, 3, 2, tzinfo=timezone.utc)
        )
        gmail_service.get_message = AsyncMock(side_effect=[readable, None])

        emails = await gmail_service.scan_deal_folder("Deals")

        assert emails == [readable]
        assert gmail_service.get_message.await_count == 2

    @pytest.mark.asyncio
    async def test_list_messages_uses_label_and_page_size(self, gmail_service, api):
        messages = api.users().messages()
        messages.list.return_value.execute.return_value = {"messages": []}

        await gmail_service.list_messages_in_label("Label_7")

        messages.list.assert_called_with(userId="me", labelIds=["Label_7"], maxResults=50)

    @pytest.mark.asyncio
    async def test_get_message_parses_full_format(self, gmail_service, api):
        messages = api.users().messages()
        messages.get.return_value.execute.return_value = {
            "id": "m-1",
            "threadId": "t-1",
            "internalDate": "0",
            "payload": {"headers": [], "body": {"data": _b64("hello")}},
        }

        parsed = await gmail_service.get_message("m-1")

        messages.get.assert_called_with(userId="me", id="m-1", format="full")
        assert parsed is not None
        assert parsed.body == "hello"
