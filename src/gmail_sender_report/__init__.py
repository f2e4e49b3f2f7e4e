"""Gmail Sender Report - count messages per sender across a whole mailbox.

This package lists every Gmail message, fetches sender headers concurrently
under the Gmail API rate limit, and writes a sorted per-sender CSV report.
"""

__version__ = "0.1.0"

from gmail_sender_report.config import DispatchConfig, Settings, get_settings

__all__ = ["DispatchConfig", "Settings", "get_settings", "__version__"]
