"""Async Gmail API service for scanning the deal inbox.

All Google API calls are wrapped in asyncio.to_thread() to avoid blocking
the event loop, and retried with tenacity on transient HttpErrors.

Messages are flattened into ParsedEmail: headers, a plain-text body (HTML
parts are reduced to their visible text when no text part exists) and
attachment metadata.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import re
from datetime import datetime, timezone
from typing import Any

import structlog
from bs4 import BeautifulSoup
from googleapiclient.errors import HttpError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.app.services.gsuite.auth import GSuiteAuthManager
from src.app.services.gsuite.models import (
    EmailAttachment,
    GmailLabel,
    MessageRef,
    ParsedEmail,
)

logger = structlog.get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


# ── Message Parsing ─────────────────────────────────────────────────────────


def decode_base64url(data: str) -> str:
    """Decode a Gmail base64url body, returning "" on malformed input."""
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return ""


def html_to_text(html: str) -> str:
    """Visible text of an HTML body, entities decoded and whitespace collapsed."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.find_all(["script", "style", "head"]):
        element.decompose()
    return _WHITESPACE_RE.sub(" ", soup.get_text(" ", strip=True)).strip()


def extract_email_body(payload: dict[str, Any]) -> str:
    """Pick the most readable body from a message payload.

    Order: the payload's own body, then the first text/plain part, then the
    first text/html part (visible text only), then a
    text/plain part nested one multipart level down.
    """
    body_data = (payload.get("body") or {}).get("data")
    if body_data:
        return decode_base64url(body_data)

    parts = payload.get("parts") or []

    for part in parts:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/plain" and data:
            return decode_base64url(data)

    for part in parts:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/html" and data:
            return html_to_text(decode_base64url(data))

    for part in parts:
        if (part.get("mimeType") or "").startswith("multipart/") and part.get("parts"):
            for subpart in part["parts"]:
                data = (subpart.get("body") or {}).get("data")
                if subpart.get("mimeType") == "text/plain" and data:
                    return decode_base64url(data)

    return ""


def extract_attachments(payload: dict[str, Any]) -> list[EmailAttachment]:
    """Collect attachment metadata from every part that carries a filename."""
    attachments: list[EmailAttachment] = []

    def _scan(parts: list[dict[str, Any]]) -> None:
        for part in parts:
            if part.get("filename"):
                attachments.append(
                    EmailAttachment(
                        filename=part["filename"],
                        mime_type=part.get("mimeType") or "application/octet-stream",
                        size=(part.get("body") or {}).get("size") or 0,
                    )
                )
            if part.get("parts"):
                _scan(part["parts"])

    _scan(payload.get("parts") or [])
    return attachments


def parse_email(message: dict[str, Any]) -> ParsedEmail:
    """Convert a Gmail API message resource (format=full) to ParsedEmail."""
    payload = message.get("payload") or {}
    headers = {
        h["name"].lower(): h["value"] for h in payload.get("headers", [])
    }
    internal_ms = int(message.get("internalDate") or 0)

    return ParsedEmail(
        id=message.get("id", ""),
        thread_id=message.get("threadId", ""),
        sender=headers.get("from", ""),
        to=headers.get("to", ""),
        subject=headers.get("subject", ""),
        date=datetime.fromtimestamp(internal_ms / 1000, tz=timezone.utc),
        body=extract_email_body(payload),
        snippet=message.get("snippet", ""),
        attachments=extract_attachments(payload),
    )


# ── Service ─────────────────────────────────────────────────────────────────


class GmailService:
    """Async wrapper around the Gmail API for label-based deal intake.

    Args:
        auth_manager: Provides cached, delegated Gmail API clients.
        default_user_email: Mailbox scanned when no user_email is passed.
        max_results: Page size for label listings.
    """

    def __init__(
        self,
        auth_manager: GSuiteAuthManager,
        default_user_email: str,
        max_results: int = 50,
    ) -> None:
        self._auth = auth_manager
        self._default_user_email = default_user_email
        self._max_results = max_results

    def _service(self, user_email: str | None) -> Any:
        return self._auth.get_gmail_service(user_email or self._default_user_email)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(HttpError),
        reraise=True,
    )
    async def _execute(self, request: Any) -> dict:
        """Run a prepared API request off the event loop."""
        return await asyncio.to_thread(request.execute)

    async def list_labels(self, user_email: str | None = None) -> list[GmailLabel]:
        service = self._service(user_email)
        result = await self._execute(service.users().labels().list(userId="me"))
        return [
            GmailLabel(
                id=label.get("id", ""),
                name=label.get("name", ""),
                type=label.get("type", "user"),
            )
            for label in result.get("labels", [])
        ]

    async def get_label_by_name(
        self, label_name: str, user_email: str | None = None
    ) -> GmailLabel | None:
        """Find a label by name, case-insensitively."""
        wanted = label_name.lower()
        for label in await self.list_labels(user_email=user_email):
            if label.name.lower() == wanted:
                return label
        return None

    async def list_messages_in_label(
        self,
        label_id: str,
        max_results: int | None = None,
        user_email: str | None = None,
    ) -> list[MessageRef]:
        service = self._service(user_email)
        request = service.users().messages().list(
            userId="me",
            labelIds=[label_id],
            maxResults=max_results or self._max_results,
        )
        result = await self._execute(request)
        return [
            MessageRef(id=msg.get("id", ""), thread_id=msg.get("threadId", ""))
            for msg in result.get("messages", [])
        ]

    async def get_message(
        self, message_id: str, user_email: str | None = None
    ) -> ParsedEmail | None:
        """Fetch and parse a single message. Returns None if it cannot be read."""
        service = self._service(user_email)
        request = service.users().messages().get(userId="me", id=message_id, format="full")
        try:
            result = await self._execute(request)
        except HttpError as exc:
            logger.warning("gmail.get_message_failed", message_id=message_id, error=str(exc))
            return None
        return parse_email(result)

    async def scan_deal_folder(
        self, folder_name: str = "Deals", user_email: str | None = None
    ) -> list[ParsedEmail]:
        """Fetch every message (one page) under the named label.

        Returns an empty list when the label does not exist. Messages that
        fail to load are skipped.
        """
        label = await self.get_label_by_name(folder_name, user_email=user_email)
        if label is None:
            logger.info("gmail.label_not_found", folder_name=folder_name)
            return []

        refs = await self.list_messages_in_label(label.id, user_email=user_email)
        emails: list[ParsedEmail] = []
        for ref in refs:
            message = await self.get_message(ref.id, user_email=user_email)
            if message is not None:
                emails.append(message)

        logger.info(
            "gmail.folder_scanned",
            folder_name=folder_name,
            listed=len(refs),
            parsed=len(emails),
        )
        return emails

    async def get_thread_emails(
        self, thread_id: str, user_email: str | None = None
    ) -> list[ParsedEmail]:
        service = self._service(user_email)
        request = service.users().threads().get(userId="me", id=thread_id, format="full")
        try:
            result = await self._execute(request)
        except HttpError as exc:
            logger.warning("gmail.get_thread_failed", thread_id=thread_id, error=str(exc))
            return []
        return [parse_email(msg) for msg in result.get("messages", [])]

    async def add_label_to_message(
        self, message_id: str, label_id: str, user_email: str | None = None
    ) -> None:
        service = self._service(user_email)
        request = service.users().messages().modify(
            userId="me", id=message_id, body={"addLabelIds": [label_id]}
        )
        await self._execute(request)

    async def remove_label_from_message(
        self, message_id: str, label_id: str, user_email: str | None = None
    ) -> None:
        service = self._service(user_email)
        request = service.users().messages().modify(
            userId="me", id=message_id, body={"removeLabelIds": [label_id]}
        )
        await self._execute(request)
