"""
Google Calendar adapter.
OAuth 2.0 against accounts.google.com and incremental event listing against
Calendar API v3 (`syncToken` cursor mode or `timeMin` window mode).
"""

from datetime import datetime
from typing import Any
from urllib.parse import urlencode

import httpx

from calsync.infrastructure.observability.logging import get_logger, preview
from calsync.models.domain.calendar_domain import (
    Attendee,
    CalendarProvider,
    ConferenceEntryPoint,
    EventTime,
    ProviderEvent,
)
from calsync.models.domain.oauth_domain import (
    AccountProfile,
    ProviderCredentials,
    TokenSet,
)
from calsync.services.calendar.errors import (
    CursorInvalidError,
    ProfileResolutionError,
    ProviderAuthorizationError,
    ProviderRequestError,
    ProviderUnavailableError,
    TokenExchangeError,
)
from calsync.services.calendar.providers.base import (
    CalendarProviderAdapter,
    EventPage,
    TokensRefreshedCallback,
)

logger = get_logger(__name__)

GOOGLE_OAUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_PRIMARY = "primary"

GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events.readonly",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
]

# Calendar API answers 410 Gone when a syncToken has expired
SYNC_TOKEN_EXPIRED_STATUS = 410


class GoogleCalendarAdapter(CalendarProviderAdapter):
    """Google Calendar implementation of the provider adapter."""

    provider = CalendarProvider.GOOGLE

    def build_authorization_url(self, state: str) -> str:
        self._require_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
            "response_type": "code",
            "state": state,
            "access_type": "offline",  # Request refresh token
            "prompt": "consent",  # Force consent so reconnects get a refresh token too
            "include_granted_scopes": "true",
        }
        url = f"{GOOGLE_OAUTH_BASE_URL}?{urlencode(params)}"
        logger.info(
            "Google authorization URL generated",
            state_preview=preview(state),
            scope_count=len(GOOGLE_CALENDAR_SCOPES),
        )
        return url

    async def exchange_code(self, code: str) -> TokenSet:
        self._require_config()
        logger.info("Exchanging Google authorization code", code_preview=preview(code, 12))
        return await self._post_token_form(
            GOOGLE_TOKEN_URL,
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
            operation="code_exchange",
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        self._require_config()
        tokens = await self._post_token_form(
            GOOGLE_TOKEN_URL,
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            operation="token_refresh",
        )
        # Google usually omits refresh_token on refresh; keep the existing one
        if not tokens.refresh_token:
            tokens.refresh_token = refresh_token
        return tokens

    async def revoke_token(self, token: str) -> bool:
        try:
            response = await self._client.post(
                GOOGLE_REVOKE_URL,
                data={"token": token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            logger.warning(
                "Network error during Google token revocation",
                token_preview=preview(token, 12),
                error=str(e),
            )
            return False

        if response.status_code != 200:
            logger.warning(
                "Google token revocation failed",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            return False

        logger.info("Google token revoked")
        return True

    async def resolve_account_profile(self, access_token: str) -> AccountProfile:
        response = await self._get_json(GOOGLE_USERINFO_URL, access_token, "userinfo")
        if not response.is_success:
            raise ProfileResolutionError(
                f"Google userinfo failed (HTTP {response.status_code})"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ProfileResolutionError("Google userinfo returned invalid JSON") from e

        account_id = data.get("id")
        if not account_id:
            raise ProfileResolutionError("Google userinfo response has no account id")

        return AccountProfile(
            account_id=str(account_id),
            email=data.get("email"),
            given_name=data.get("given_name"),
            family_name=data.get("family_name"),
            display_name=data.get("name"),
        )

    # ------------------------------------------------------------------
    # Event listing
    # ------------------------------------------------------------------

    async def list_events(
        self,
        credentials: ProviderCredentials,
        *,
        cursor: str | None,
        time_min: datetime | None,
        page_token: str | None,
        page_size: int,
        on_tokens_refreshed: TokensRefreshedCallback | None = None,
    ) -> EventPage:
        if credentials.needs_refresh():
            logger.info("Google access token near expiry, refreshing before request")
            await self._refresh_credentials(credentials, on_tokens_refreshed)

        params: dict[str, Any] = {
            "maxResults": page_size,
            "singleEvents": "true",
        }
        if cursor:
            params["syncToken"] = cursor
        elif time_min is not None:
            params["timeMin"] = time_min.isoformat()
        if page_token:
            params["pageToken"] = page_token

        url = f"{CALENDAR_API_BASE_URL}/calendars/{CALENDAR_PRIMARY}/events"
        response = await self._events_request(url, params, credentials)

        if response.status_code == 401 and credentials.refresh_token:
            logger.info("Google rejected access token, refreshing once")
            await self._refresh_credentials(credentials, on_tokens_refreshed)
            response = await self._events_request(url, params, credentials)

        data = self._handle_events_response(response, cursor_mode=bool(cursor))
        items = data.get("items", [])

        logger.debug(
            "Google events page fetched",
            item_count=len(items),
            has_next_page=bool(data.get("nextPageToken")),
            has_sync_token=bool(data.get("nextSyncToken")),
        )

        return EventPage(
            events=[to_provider_event(item) for item in items],
            next_page_token=data.get("nextPageToken"),
            next_sync_cursor=data.get("nextSyncToken"),
        )

    async def _events_request(
        self, url: str, params: dict, credentials: ProviderCredentials
    ) -> httpx.Response:
        try:
            return await self._client.get(
                url,
                params=params,
                headers={
                    "Authorization": f"Bearer {credentials.access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.RequestError as e:
            logger.error(
                "Network error listing Google events",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderUnavailableError(f"Network error listing events: {e}") from e

    async def _refresh_credentials(
        self,
        credentials: ProviderCredentials,
        on_tokens_refreshed: TokensRefreshedCallback | None,
    ) -> None:
        if not credentials.refresh_token:
            raise ProviderAuthorizationError("Access token expired and no refresh token stored")
        try:
            tokens = await self.refresh_access_token(credentials.refresh_token)
        except TokenExchangeError as e:
            raise ProviderAuthorizationError(f"Token refresh rejected: {e}") from e

        credentials.apply(tokens)
        if on_tokens_refreshed is not None:
            await on_tokens_refreshed(tokens)

    def _handle_events_response(self, response: httpx.Response, cursor_mode: bool) -> dict:
        """Map Calendar API status codes onto the calendar error taxonomy."""
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                raise ProviderRequestError(f"Invalid Calendar API response: {e}") from e

        status = response.status_code
        try:
            error_info = (response.json() or {}).get("error", {}) if response.text else {}
        except ValueError:
            error_info = {}
        message = error_info.get("message") if isinstance(error_info, dict) else None
        message = message or f"Calendar API error (HTTP {status})"

        logger.warning(
            "Calendar API list_events failed",
            status_code=status,
            error_message=message,
            cursor_mode=cursor_mode,
        )

        if status == SYNC_TOKEN_EXPIRED_STATUS:
            raise CursorInvalidError(f"Sync token expired: {message}")
        if status in (401, 403):
            raise ProviderAuthorizationError(f"Calendar access refused: {message}")
        if status == 429 or status >= 500:
            raise ProviderUnavailableError(f"Calendar API unavailable: {message}")
        raise ProviderRequestError(f"Calendar API rejected request: {message}")


def _event_time(raw: dict | None) -> EventTime | None:
    if not raw:
        return None
    return EventTime(
        date_time=raw.get("dateTime"),
        date=raw.get("date"),
        time_zone=raw.get("timeZone"),
    )


def to_provider_event(item: dict) -> ProviderEvent:
    """Translate a Calendar API v3 event resource into a ProviderEvent."""
    attendees = [
        Attendee(
            email=attendee.get("email"),
            display_name=attendee.get("displayName"),
            response_status=attendee.get("responseStatus"),
            organizer=bool(attendee.get("organizer")),
            is_self=bool(attendee.get("self")),
            optional=bool(attendee.get("optional")),
        )
        for attendee in item.get("attendees", [])
    ]

    conference = item.get("conferenceData") or {}
    entry_points = [
        ConferenceEntryPoint(entry_point_type=ep.get("entryPointType"), uri=ep.get("uri"))
        for ep in conference.get("entryPoints", [])
    ]

    return ProviderEvent(
        provider_event_id=item.get("id"),
        status=item.get("status") or "confirmed",
        title=item.get("summary"),
        description=item.get("description"),
        location=item.get("location"),
        start=_event_time(item.get("start")),
        end=_event_time(item.get("end")),
        organizer_email=(item.get("organizer") or {}).get("email"),
        attendees=attendees,
        meeting_link=item.get("hangoutLink"),
        conference_entry_points=entry_points,
        visibility=item.get("visibility"),
        ical_uid=item.get("iCalUID"),
        is_recurring=bool(item.get("recurringEventId") or item.get("recurrence")),
    )
