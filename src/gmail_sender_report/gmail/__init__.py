"""Gmail API access and header parsing."""

from gmail_sender_report.gmail.client import GmailClient, MessageSource
from gmail_sender_report.gmail.parsing import extract_identity, header_map, normalize_address

__all__ = ["GmailClient", "MessageSource", "extract_identity", "header_map", "normalize_address"]
