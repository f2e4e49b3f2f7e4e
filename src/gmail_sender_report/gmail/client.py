"""Gmail API client implementation.

This module provides the adapter between the report pipeline and the Gmail API.

Notes:
    The Google API client is synchronous and its HTTP transport is not
    thread-safe. Calls are wrapped with `asyncio.to_thread`, and every request
    is built with its own authorized `httplib2.Http` so that concurrent calls
    never share a connection.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol

import httplib2
import structlog
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError

from gmail_sender_report.config import Settings
from gmail_sender_report.exceptions import AuthenticationError, ConfigurationError, GmailAPIError
from gmail_sender_report.models import ItemRef

logger = structlog.get_logger()

METADATA_HEADERS: tuple[str, ...] = ("From",)


class MessageSource(Protocol):
    """Remote collection operations the pipeline depends on."""

    async def list_page(self, page_token: str | None = None) -> tuple[list[ItemRef], str | None]:
        ...

    async def get_message(self, item: ItemRef) -> dict[str, Any]:
        ...


def _error_reason(exc: HttpError) -> str | None:
    details = getattr(exc, "error_details", None)
    if not isinstance(details, list):
        try:
            data = json.loads(exc.content.decode("utf-8"))
            details = data["error"]["errors"]
        except (AttributeError, KeyError, TypeError, ValueError):
            return None
    for d in details:
        if isinstance(d, dict) and d.get("reason"):
            return str(d["reason"])
    return None


def _api_error(exc: HttpError) -> GmailAPIError:
    status = getattr(getattr(exc, "resp", None), "status", None)
    try:
        status_code = int(status) if status is not None else None
    except (TypeError, ValueError):
        status_code = None
    return GmailAPIError(str(exc), status_code=status_code, reason=_error_reason(exc))


class GmailClient:
    """Gmail API client for listing messages and reading their headers.

    This client handles authentication and the two read operations the
    report needs: paging through message ids and fetching metadata.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from gmail_sender_report.config import get_settings

        self.settings = settings or get_settings()
        self._service: Any | None = None
        logger.info("gmail_client_initialized")

    async def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            ConfigurationError: If the client secrets file is missing.
            AuthenticationError: If authentication fails.
        """

        if self._service is not None:
            return

        credentials_path = Path(self.settings.gmail_credentials_path)
        token_path = Path(self.settings.gmail_token_path)
        scope = self.settings.gmail_scope

        if not credentials_path.exists():
            raise ConfigurationError(
                f"Gmail credentials file not found: {credentials_path}. "
                "Download an OAuth client (Desktop app) from Google Cloud Console."
            )

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(credentials_path),
            token_path=str(token_path),
            scope=scope,
        )

        try:
            self._service = await asyncio.to_thread(
                self._build_service,
                credentials_path,
                token_path,
                scope,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    async def list_page(self, page_token: str | None = None) -> tuple[list[ItemRef], str | None]:
        """Fetch one page of message ids across all folders.

        Args:
            page_token: Continuation token from the previous page, or None for the first page.

        Returns:
            The page's message references and the next page token (None on the last page).

        Raises:
            AuthenticationError: If credentials are missing or can no longer be refreshed.
            GmailAPIError: If the API request fails.
        """

        await self._ensure_authenticated()

        logger.debug("listing_messages_page", page_token=page_token)
        response = await self._call(self._list_page_sync, page_token)

        items = [
            ItemRef(id=m["id"])
            for m in response.get("messages", []) or []
            if isinstance(m, dict) and isinstance(m.get("id"), str) and m["id"]
        ]
        return items, response.get("nextPageToken") or None

    async def get_message(self, item: ItemRef) -> dict[str, Any]:
        """Get the sender metadata of a message.

        Args:
            item: Reference to the message.

        Returns:
            Message data dictionary (format=metadata).

        Raises:
            AuthenticationError: If credentials are missing or can no longer be refreshed.
            GmailAPIError: If the API request fails.
        """

        await self._ensure_authenticated()

        logger.debug("getting_message", message_id=item.id)
        return await self._call(self._get_message_sync, item.id)

    async def _call(self, func: Any, *args: Any) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(func, *args)
        except HttpError as exc:
            raise _api_error(exc) from exc
        except RefreshError as exc:
            raise AuthenticationError(f"Gmail token refresh failed: {exc}") from exc
        except (TransportError, OSError, httplib2.HttpLib2Error) as exc:
            raise GmailAPIError(f"Network error talking to Gmail: {exc}") from exc

    async def _ensure_authenticated(self) -> None:
        if self._service is None:
            raise AuthenticationError(
                "Gmail client is not authenticated. Call await GmailClient.authenticate() first."
            )

    def _build_service(self, credentials_path: Path, token_path: Path, scope: str) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        import google_auth_httplib2
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build
        from googleapiclient.http import HttpRequest

        creds: Credentials | None = None
        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes=[scope])

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())

        if creds is None or not creds.valid:
            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=[scope])
            creds = flow.run_local_server(port=0)
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json(), encoding="utf-8")

        timeout = self.settings.per_call_timeout_ms / 1000.0

        def build_request(_http: Any, *args: Any, **kwargs: Any) -> HttpRequest:
            authorized = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http(timeout=timeout))
            return HttpRequest(authorized, *args, **kwargs)

        # cache_discovery=False prevents writing discovery docs to disk.
        return build(
            "gmail",
            "v1",
            credentials=creds,
            requestBuilder=build_request,
            cache_discovery=False,
        )

    def _list_page_sync(self, page_token: str | None) -> dict[str, Any]:
        assert self._service is not None
        request = (
            self._service.users()
            .messages()
            .list(
                userId=self.settings.gmail_user_id,
                maxResults=self.settings.list_page_size,
                pageToken=page_token,
                includeSpamTrash=True,
            )
        )
        return request.execute()

    def _get_message_sync(self, message_id: str) -> dict[str, Any]:
        assert self._service is not None
        request = (
            self._service.users()
            .messages()
            .get(
                userId=self.settings.gmail_user_id,
                id=message_id,
                format="metadata",
                metadataHeaders=list(METADATA_HEADERS),
            )
        )
        return request.execute()
