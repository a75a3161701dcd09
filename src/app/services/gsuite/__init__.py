"""Gmail integration for the deal inbox.

Provides an async-wrapped Gmail service using Google service account
authentication with domain-wide delegation.
"""

from src.app.services.gsuite.auth import GSuiteAuthManager
from src.app.services.gsuite.gmail import GmailService, parse_email
from src.app.services.gsuite.models import (
    EmailAttachment,
    GmailLabel,
    MessageRef,
    ParsedEmail,
)

__all__ = [
    "EmailAttachment",
    "GmailLabel",
    "GmailService",
    "GSuiteAuthManager",
    "MessageRef",
    "ParsedEmail",
    "parse_email",
]
