"""
Gmail API client integration.

This module handles direct communication with the Gmail API:
1. List recent inbox messages (metadata only)
2. Send email as a base64url-encoded MIME message
3. Parse Gmail's header lists into MailSummary objects

Gmail API Reference: https://developers.google.com/gmail/api/reference/rest
"""
import base64
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import List

from mindenu.integrations.api_client import BaseApiClient
from mindenu.models.email import MailDraft, MailSummary, SentMail
from mindenu.utils.errors import UpstreamError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)


def build_mime_message(draft: MailDraft) -> EmailMessage:
    """Build the RFC 5322 message for a draft."""
    message = EmailMessage()
    message["To"] = ", ".join(draft.recipients)
    if draft.cc:
        message["Cc"] = ", ".join(draft.cc)
    if draft.bcc:
        message["Bcc"] = ", ".join(draft.bcc)
    message["Subject"] = draft.subject
    message.set_content(draft.body_text)
    return message


def encode_raw_message(message: EmailMessage) -> str:
    """
    Encode a message for Gmail's `raw` field.

    URL-safe base64 ('+' -> '-', '/' -> '_') with the '=' padding stripped.
    """
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


class GmailClient(BaseApiClient):
    """
    Gmail API client for mail operations.

    Usage:
        client = GmailClient(access_token)
        mail = await client.list_recent_mail(max_results=5)
        sent = await client.send_mail(MailDraft(to=..., subject=..., body_text=...))
    """

    SERVICE_NAME = "Gmail"
    BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

    async def list_recent_mail(self, max_results: int = 5) -> List[MailSummary]:
        """
        Fetch the most recent inbox messages.

        Gmail API flow:
        1. List message IDs (lightweight)
        2. Get metadata for each ID
        3. Parse into MailSummary objects

        Returns:
            List of MailSummary (empty if the inbox is empty)
        """
        logger.info(f"Listing {max_results} recent Gmail messages")

        list_response = await self._make_request(
            "GET",
            "/messages",
            params={"maxResults": max_results, "labelIds": "INBOX"},
        )

        messages = list_response.get("messages", [])
        if not messages:
            return []

        results = []
        for msg in messages[:max_results]:
            try:
                detail = await self._make_request(
                    "GET",
                    f"/messages/{msg['id']}",
                    params={
                        "format": "metadata",
                        "metadataHeaders": ["From", "Subject", "Date"],
                    },
                )
            except UpstreamError as e:
                # A message deleted between list and get shouldn't fail the listing
                if e.status == 404:
                    logger.warning(f"Gmail message {msg['id']} disappeared")
                    continue
                raise
            results.append(self._parse_message(detail))

        return results

    def _parse_message(self, message: dict) -> MailSummary:
        """Parse a Gmail API message into a MailSummary."""
        headers = {h["name"].lower(): h["value"] for h in message.get("payload", {}).get("headers", [])}

        return MailSummary(
            id=message["id"],
            sender=headers.get("from", "Unknown"),
            subject=headers.get("subject", "(No Subject)"),
            date=self._parse_date(headers.get("date", ""), message.get("internalDate")),
            snippet=message.get("snippet", ""),
        )

    def _parse_date(self, date_str: str, internal_date) -> str:
        """
        Parse date into an ISO-8601 string.

        internalDate (milliseconds since epoch) is more reliable than the header.
        """
        try:
            timestamp = int(internal_date) / 1000
            return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
        except (ValueError, TypeError):
            return date_str

    async def send_mail(self, draft: MailDraft) -> SentMail:
        """
        Send an email.

        Returns:
            SentMail with the Gmail message and thread IDs
        """
        logger.info(f"Sending Gmail message to {len(draft.recipients)} recipient(s)")

        raw = encode_raw_message(build_mime_message(draft))
        response = await self._make_request(
            "POST",
            "/messages/send",
            json_data={"raw": raw},
        )

        sent = SentMail(id=response.get("id"), thread_id=response.get("threadId"))
        logger.info(f"Gmail message sent, ID: {sent.id}")
        return sent
