"""Pydantic schemas for Gmail labels and parsed messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class GmailLabel(BaseModel):
    """Mailbox label (Gmail's equivalent of a folder)."""

    id: str
    name: str
    type: str = "user"


class MessageRef(BaseModel):
    """Message id pair returned by a label listing."""

    id: str
    thread_id: str


class EmailAttachment(BaseModel):
    """Attachment metadata; attachment bodies are never downloaded."""

    filename: str
    mime_type: str = "application/octet-stream"
    size: int = 0


class ParsedEmail(BaseModel):
    """A Gmail message flattened into headers, plain-text body and attachments."""

    id: str
    thread_id: str
    sender: str = ""
    to: str = ""
    subject: str = ""
    date: datetime
    body: str = ""
    snippet: str = ""
    attachments: list[EmailAttachment] = Field(default_factory=list)
