"""
Provider adapter contract.

One adapter per calendar provider. The sync engine and OAuth flow only talk
to this interface; the registry maps the stored provider enum to an instance
once at startup.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from calsync.infrastructure.observability.logging import get_logger, preview
from calsync.models.domain.calendar_domain import CalendarProvider, ProviderEvent
from calsync.models.domain.oauth_domain import (
    AccountProfile,
    ProviderCredentials,
    TokenSet,
)
from calsync.services.calendar.errors import (
    ProviderNotConfiguredError,
    ProviderUnavailableError,
    TokenExchangeError,
)

logger = get_logger(__name__)

TokensRefreshedCallback = Callable[[TokenSet], Awaitable[None]]


@dataclass
class EventPage:
    """One page of provider events.

    `next_sync_cursor` is only set on the final page of a listing.
    """

    events: list[ProviderEvent] = field(default_factory=list)
    next_page_token: str | None = None
    next_sync_cursor: str | None = None


class CalendarProviderAdapter(ABC):
    """Capability interface shared by all calendar providers."""

    provider: CalendarProvider
    sync_supported: bool = True

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
        )

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _require_config(self) -> None:
        if not self.is_configured():
            raise ProviderNotConfiguredError(
                f"{self.provider.value} OAuth client credentials not configured",
                recoverable=False,
            )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    @abstractmethod
    def build_authorization_url(self, state: str) -> str: ...

    @abstractmethod
    async def exchange_code(self, code: str) -> TokenSet: ...

    @abstractmethod
    async def resolve_account_profile(self, access_token: str) -> AccountProfile: ...

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> TokenSet: ...

    async def revoke_token(self, token: str) -> bool:
        """Best-effort revocation. Providers without an endpoint return False."""
        return False

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    @abstractmethod
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
        """
        Fetch one page of events.

        Cursor mode when `cursor` is set, otherwise window mode from `time_min`.
        If the access token is refreshed along the way, `credentials` is updated
        in place and `on_tokens_refreshed` is awaited before the page request.

        Raises:
            CursorInvalidError: provider rejected the cursor as expired
            ProviderAuthorizationError: credentials refused after a refresh attempt
            ProviderUnavailableError: network failure or 5xx
            ProviderRequestError: any other rejected request
        """

    # ------------------------------------------------------------------
    # Shared HTTP helpers
    # ------------------------------------------------------------------

    async def _post_token_form(self, url: str, data: dict, operation: str) -> TokenSet:
        """POST to a token endpoint and parse the result into a TokenSet."""
        try:
            response = await self._client.post(
                url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            logger.error(
                "Network error calling token endpoint",
                provider=self.provider.value,
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderUnavailableError(f"Network error during {operation}: {e}") from e

        if response.status_code >= 500:
            raise ProviderUnavailableError(
                f"{operation} failed: provider returned HTTP {response.status_code}"
            )

        try:
            payload = response.json() if response.text else {}
        except ValueError:
            payload = {}

        if not response.is_success or not payload.get("access_token"):
            error_code = payload.get("error", "unknown")
            logger.error(
                "Token endpoint rejected request",
                provider=self.provider.value,
                operation=operation,
                status_code=response.status_code,
                error_code=error_code,
                error_description=payload.get("error_description"),
            )
            raise TokenExchangeError(
                f"{operation} failed: {error_code}",
                recoverable=False,
            )

        return TokenSet.from_token_response(payload, default_expires_in=self._default_expires_in())

    def _default_expires_in(self) -> int | None:
        return None

    async def _get_json(self, url: str, access_token: str, operation: str) -> httpx.Response:
        try:
            return await self._client.get(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.RequestError as e:
            logger.error(
                "Network error calling provider",
                provider=self.provider.value,
                operation=operation,
                token_preview=preview(access_token),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderUnavailableError(f"Network error during {operation}: {e}") from e
