"""Helpers for turning Gmail message metadata into sender identities."""

from __future__ import annotations

from email.utils import parseaddr
from typing import Any

from gmail_sender_report.models import RawHeaders

_QUOTES = "\"'"
_FORBIDDEN_LOCAL_CHARS = frozenset("<>,;:\"()[]\\")


def header_map(message: dict[str, Any]) -> dict[str, str] | None:
    """Collect the headers of a Gmail API message (format=metadata).

    Header names are lower-cased. Returns None when the message has no
    usable payload/headers structure.
    """
    payload = message.get("payload")
    if not isinstance(payload, dict):
        return None
    headers = payload.get("headers")
    if not isinstance(headers, list):
        return None

    result: dict[str, str] = {}
    for h in headers:
        if not isinstance(h, dict):
            continue
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; the first one wins.
            result.setdefault(name.lower(), value)
    return result


def _is_domain(domain: str) -> bool:
    for label in domain.split("."):
        if not label or label.startswith("-") or label.endswith("-"):
            return False
        if not all(ch.isascii() and (ch.isalnum() or ch == "-") for ch in label):
            return False
    return True


def _is_local_part(local: str) -> bool:
    if not local or local.startswith(".") or local.endswith("."):
        return False
    return not any(ch.isspace() or ch in _FORBIDDEN_LOCAL_CHARS for ch in local)


def normalize_address(value: str) -> str | None:
    """Extract and normalize the email address from a sender header value.

    Recognizes ``alice@example.com``, ``Alice <alice@example.com>`` and the
    comment form ``alice@example.com (Alice)``.

    Args:
        value: Raw header value.

    Returns:
        The lower-cased address, or None if no address is recognized.
    """
    _, addr = parseaddr(value)
    candidate = addr.strip().strip(_QUOTES)

    if candidate.count("@") != 1:
        return None
    local, domain = candidate.split("@")
    if not _is_local_part(local) or not _is_domain(domain):
        return None
    return candidate.lower()


def extract_identity(headers: RawHeaders) -> str | None:
    """Return the normalized sender identity of a message, if any.

    Args:
        headers: Lower-cased header name to value mapping.

    Returns:
        Normalized sender address, or None when the From header is absent
        or holds no recognizable address.
    """
    value = headers.get("from")
    if not value:
        return None
    return normalize_address(value)
