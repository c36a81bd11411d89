"""
Unit tests for Gmail Client.

Tests Gmail response parsing and MIME encoding with mocked HTTP.
"""
import base64
import email
import json
from email import policy
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from mindenu.integrations.gmail_client import GmailClient, build_mime_message, encode_raw_message
from mindenu.models.email import MailDraft
from mindenu.utils.errors import UpstreamError


def decode_raw(raw: str):
    padded = raw + "=" * (-len(raw) % 4)
    return email.message_from_bytes(base64.urlsafe_b64decode(padded), policy=policy.default)


@pytest.fixture
def mock_gmail_message():
    """Gmail API message in metadata format."""
    return {
        "id": "msg-abc123",
        "threadId": "thread-xyz789",
        "labelIds": ["INBOX", "UNREAD"],
        "snippet": "This is the email snippet...",
        "internalDate": "1738751400000",
        "payload": {
            "headers": [
                {"name": "From", "value": "John Doe <john@example.com>"},
                {"name": "Subject", "value": "Test Subject"},
                {"name": "Date", "value": "Wed, 5 Feb 2025 10:30:00 +0000"},
            ],
        },
    }


class TestRawEncoding:
    """MIME building and base64url encoding for messages/send."""

    def test_round_trip_keeps_headers_and_body(self):
        draft = MailDraft(to="a@b.com", subject="Hi", body_text="Hello")

        raw = encode_raw_message(build_mime_message(draft))
        decoded = decode_raw(raw)

        assert decoded["To"] == "a@b.com"
        assert decoded["Subject"] == "Hi"
        assert decoded.get_content().strip() == "Hello"

    def test_no_unsafe_characters(self):
        draft = MailDraft(
            to="someone@example.com",
            subject="Quarterly ~~~ review ???",
            body_text="ÿÿÿ >>>??? ~~~ " * 20,
        )

        raw = encode_raw_message(build_mime_message(draft))

        assert "+" not in raw
        assert "/" not in raw
        assert "=" not in raw
        assert "ÿÿÿ >>>???" in decode_raw(raw).get_content()

    def test_cc_and_bcc_headers(self):
        draft = MailDraft(to="a@b.com, c@d.com", subject="Team", body_text="Hi all", cc=["e@f.com"], bcc=["g@h.com"])

        message = build_mime_message(draft)

        assert message["To"] == "a@b.com, c@d.com"
        assert message["Cc"] == "e@f.com"
        assert message["Bcc"] == "g@h.com"


class TestMessageParsing:
    """Gmail metadata -> MailSummary."""

    def test_parse_message(self, mock_gmail_message):
        client = GmailClient(access_token="mock_token")

        summary = client._parse_message(mock_gmail_message)

        assert summary.id == "msg-abc123"
        assert summary.sender == "John Doe <john@example.com>"
        assert summary.subject == "Test Subject"
        assert summary.date == "2025-02-05T10:30:00+00:00"
        assert summary.snippet == "This is the email snippet..."

    def test_parse_missing_fields(self):
        client = GmailClient(access_token="mock_token")

        summary = client._parse_message({"id": "min-123", "payload": {"headers": []}})

        assert summary.sender == "Unknown"
        assert summary.subject == "(No Subject)"
        assert summary.snippet == ""

    def test_header_date_used_without_internal_date(self, mock_gmail_message):
        del mock_gmail_message["internalDate"]
        client = GmailClient(access_token="mock_token")

        summary = client._parse_message(mock_gmail_message)

        assert summary.date == "Wed, 5 Feb 2025 10:30:00 +0000"


class TestGmailClient:
    """GmailClient with mocked requests."""

    @pytest.mark.asyncio
    async def test_list_recent_mail(self, mock_gmail_message):
        client = GmailClient(access_token="mock_token")
        responses = [{"messages": [{"id": "msg-abc123"}]}, mock_gmail_message]

        with patch.object(client, "_make_request", AsyncMock(side_effect=responses)) as request:
            mail = await client.list_recent_mail(max_results=3)

        assert [m.id for m in mail] == ["msg-abc123"]
        first_call = request.await_args_list[0]
        assert first_call.args == ("GET", "/messages")
        assert first_call.kwargs["params"]["maxResults"] == 3

    @pytest.mark.asyncio
    async def test_empty_inbox(self):
        client = GmailClient(access_token="mock_token")

        with patch.object(client, "_make_request", AsyncMock(return_value={"resultSizeEstimate": 0})):
            assert await client.list_recent_mail() == []

    @pytest.mark.asyncio
    async def test_message_deleted_between_list_and_get(self, mock_gmail_message):
        client = GmailClient(access_token="mock_token")
        responses = [
            {"messages": [{"id": "gone"}, {"id": "msg-abc123"}]},
            UpstreamError(status=404),
            mock_gmail_message,
        ]

        with patch.object(client, "_make_request", AsyncMock(side_effect=responses)):
            mail = await client.list_recent_mail()

        assert [m.id for m in mail] == ["msg-abc123"]

    @pytest.mark.asyncio
    async def test_send_mail_posts_raw_message(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "sent-1", "threadId": "thread-1"})

        client = GmailClient(access_token="tok", transport=httpx.MockTransport(handler))

        sent = await client.send_mail(MailDraft(to="a@b.com", subject="Hi", body_text="Hello"))

        assert sent.id == "sent-1"
        assert sent.thread_id == "thread-1"
        assert seen["url"] == "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"
        assert seen["auth"] == "Bearer tok"
        assert decode_raw(seen["body"]["raw"])["Subject"] == "Hi"

    @pytest.mark.asyncio
    async def test_error_status_raises_upstream_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(403, json={"error": {"message": "nope"}}))
        client = GmailClient(access_token="tok", transport=transport)

        with pytest.raises(UpstreamError) as exc_info:
            await client.list_recent_mail()

        assert exc_info.value.status == 403
        assert "nope" in exc_info.value.body
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = GmailClient(access_token="tok", transport=httpx.MockTransport(handler))

        with pytest.raises(UpstreamError) as exc_info:
            await client.send_mail(MailDraft(to="a@b.com", subject="Hi", body_text="Hello"))

        assert exc_info.value.status == 504
        assert exc_info.value.retryable
