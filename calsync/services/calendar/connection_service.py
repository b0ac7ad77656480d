"""
User-facing connection management: listing and disconnect.
"""

from calsync.infrastructure.observability.logging import get_logger
from calsync.models.domain.calendar_domain import CalendarConnection
from calsync.repositories.connection_repository import ConnectionRepository
from calsync.services.calendar.errors import ConnectionNotFoundError
from calsync.services.calendar.providers.registry import ProviderRegistry, get_adapter

logger = get_logger(__name__)


class ConnectionService:
    def __init__(self, connections: ConnectionRepository, providers: ProviderRegistry):
        self.connections = connections
        self.providers = providers

    async def list_connections(self, tenant_id: str, user_id: str) -> list[CalendarConnection]:
        return await self.connections.list_for_user(tenant_id, user_id)

    async def get_owned(self, tenant_id: str, user_id: str, connection_id: str) -> CalendarConnection:
        connection = await self.connections.get_by_id(connection_id, tenant_id)
        if connection is None or connection.user_id != user_id:
            raise ConnectionNotFoundError(
                f"Calendar connection {connection_id} not found",
                connection_id=connection_id,
                recoverable=False,
            )
        return connection

    async def disconnect(self, tenant_id: str, user_id: str, connection_id: str) -> bool:
        """
        Revoke the provider grant (best effort) and mark the connection REVOKED.

        Returns:
            bool: whether the provider confirmed the revocation
        """
        connection = await self.get_owned(tenant_id, user_id, connection_id)

        provider_revoked = False
        token = connection.refresh_token or connection.access_token
        if token:
            adapter = get_adapter(self.providers, connection.provider)
            try:
                provider_revoked = await adapter.revoke_token(token)
            except Exception as e:
                logger.warning(
                    "Provider token revocation failed, continuing disconnect",
                    connection_id=connection_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        await self.connections.revoke(connection_id)
        logger.info(
            "Calendar connection disconnected",
            connection_id=connection_id,
            tenant_id=tenant_id,
            provider=connection.provider.value,
            provider_revoked=provider_revoked,
        )
        return provider_revoked
