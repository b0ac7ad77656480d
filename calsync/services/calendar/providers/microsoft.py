"""
Microsoft Graph adapter.

OAuth and account identity are implemented; event sync is not, and the sync
engine reports Microsoft connections as skipped.
"""

from datetime import datetime
from urllib.parse import urlencode

from calsync.infrastructure.observability.logging import get_logger, preview
from calsync.models.domain.calendar_domain import CalendarProvider
from calsync.models.domain.oauth_domain import (
    AccountProfile,
    ProviderCredentials,
    TokenSet,
)
from calsync.services.calendar.errors import (
    ProfileResolutionError,
    ProviderNotSupportedError,
)
from calsync.services.calendar.providers.base import (
    CalendarProviderAdapter,
    EventPage,
    TokensRefreshedCallback,
)

logger = get_logger(__name__)

MICROSOFT_AUTHORITY = "https://login.microsoftonline.com/common/oauth2/v2.0"
MICROSOFT_AUTHORIZE_URL = f"{MICROSOFT_AUTHORITY}/authorize"
MICROSOFT_TOKEN_URL = f"{MICROSOFT_AUTHORITY}/token"
GRAPH_ME_URL = "https://graph.microsoft.com/v1.0/me"

MICROSOFT_CALENDAR_SCOPES = ["offline_access", "Calendars.Read", "User.Read"]
DEFAULT_EXPIRES_IN = 3600


class MicrosoftCalendarAdapter(CalendarProviderAdapter):
    provider = CalendarProvider.MICROSOFT
    sync_supported = False

    def _default_expires_in(self) -> int | None:
        return DEFAULT_EXPIRES_IN

    def build_authorization_url(self, state: str) -> str:
        self._require_config()
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "response_mode": "query",
            "scope": " ".join(MICROSOFT_CALENDAR_SCOPES),
            "state": state,
            "prompt": "consent",
        }
        logger.info("Microsoft authorization URL generated", state_preview=preview(state))
        return f"{MICROSOFT_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenSet:
        self._require_config()
        logger.info("Exchanging Microsoft authorization code", code_preview=preview(code, 12))
        return await self._post_token_form(
            MICROSOFT_TOKEN_URL,
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
                "scope": " ".join(MICROSOFT_CALENDAR_SCOPES),
            },
            operation="code_exchange",
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        self._require_config()
        tokens = await self._post_token_form(
            MICROSOFT_TOKEN_URL,
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
                "scope": " ".join(MICROSOFT_CALENDAR_SCOPES),
            },
            operation="token_refresh",
        )
        if not tokens.refresh_token:
            tokens.refresh_token = refresh_token
        return tokens

    async def resolve_account_profile(self, access_token: str) -> AccountProfile:
        response = await self._get_json(GRAPH_ME_URL, access_token, "graph_me")
        if not response.is_success:
            raise ProfileResolutionError(f"Graph /me failed (HTTP {response.status_code})")
        try:
            data = response.json()
        except ValueError as e:
            raise ProfileResolutionError("Graph /me returned invalid JSON") from e

        account_id = data.get("id")
        if not account_id:
            raise ProfileResolutionError("Graph /me response has no account id")

        return AccountProfile(
            account_id=str(account_id),
            email=data.get("mail") or data.get("userPrincipalName"),
            given_name=data.get("givenName"),
            family_name=data.get("surname"),
            display_name=data.get("displayName"),
        )

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
        raise ProviderNotSupportedError(
            "Microsoft calendar sync is not implemented", recoverable=False
        )
