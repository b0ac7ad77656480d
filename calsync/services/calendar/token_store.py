"""
Token persistence for calendar connections.

Adapters refresh access tokens mid-request; the store writes the new token
set to the connection row immediately, independent of how the surrounding
sync run ends.
"""

from calsync.infrastructure.observability.logging import get_logger
from calsync.models.domain.calendar_domain import CalendarConnection
from calsync.models.domain.oauth_domain import ProviderCredentials, TokenSet
from calsync.repositories.connection_repository import ConnectionRepository
from calsync.services.calendar.errors import ProviderAuthorizationError
from calsync.services.calendar.providers.base import TokensRefreshedCallback

logger = get_logger(__name__)


class TokenStore:
    def __init__(self, connections: ConnectionRepository):
        self.connections = connections

    def credentials_for(self, connection: CalendarConnection) -> ProviderCredentials:
        """Live credentials for one sync run of `connection`."""
        if not connection.access_token:
            raise ProviderAuthorizationError(
                "Connection has no stored access token",
                connection_id=connection.id,
            )
        return ProviderCredentials(
            access_token=connection.access_token,
            refresh_token=connection.refresh_token,
            expires_at=connection.token_expires_at,
        )

    async def persist_refreshed_tokens(self, connection_id: str, tokens: TokenSet) -> None:
        updated = await self.connections.update_tokens(
            connection_id,
            access_token=tokens.access_token,
            expires_at=tokens.expires_at,
            refresh_token=tokens.refresh_token,
        )
        if not updated:
            logger.warning("Refreshed tokens not persisted, connection missing", connection_id=connection_id)
            return

        logger.info(
            "Refreshed tokens persisted",
            connection_id=connection_id,
            expires_at=tokens.expires_at.isoformat() if tokens.expires_at else None,
            refresh_token_rotated=bool(tokens.refresh_token),
        )

    def refresh_callback(self, connection_id: str) -> TokensRefreshedCallback:
        async def _on_tokens_refreshed(tokens: TokenSet) -> None:
            await self.persist_refreshed_tokens(connection_id, tokens)

        return _on_tokens_refreshed
