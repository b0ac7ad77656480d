"""
Calendar connection registry.

CRUD over `calendar_connections`. Tokens are encrypted on write and
decrypted on read, so callers only ever see plaintext domain objects.
Every mutation touches only the columns it owns; token refreshes and
cursor updates never overwrite each other.
"""

from datetime import datetime
from typing import Any

from calsync.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from calsync.infrastructure.observability.logging import get_logger
from calsync.models.domain.calendar_domain import (
    CalendarConnection,
    CalendarProvider,
    ConnectionStatus,
)
from calsync.models.domain.oauth_domain import TokenSet
from calsync.services.infrastructure.encryption_service import (
    decrypt_optional,
    encrypt_optional,
    encrypt_token,
)

logger = get_logger(__name__)

_CONNECTION_COLUMNS = """
    id::text AS id, tenant_id::text AS tenant_id, user_id::text AS user_id,
    provider, provider_account_id, access_token_encrypted, refresh_token_encrypted,
    token_expires_at, sync_cursor, status, last_sync_at, created_at, updated_at
"""


def _row_to_connection(row: dict[str, Any]) -> CalendarConnection:
    return CalendarConnection(
        id=row["id"],
        tenant_id=row["tenant_id"],
        user_id=row["user_id"],
        provider=CalendarProvider(row["provider"]),
        provider_account_id=row.get("provider_account_id"),
        access_token=decrypt_optional(row.get("access_token_encrypted")),
        refresh_token=decrypt_optional(row.get("refresh_token_encrypted")),
        token_expires_at=row.get("token_expires_at"),
        sync_cursor=row.get("sync_cursor"),
        status=ConnectionStatus(row["status"]),
        last_sync_at=row.get("last_sync_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class ConnectionRepository:
    """Postgres-backed store for CalendarConnection records."""

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_by_id(
        self, connection_id: str, tenant_id: str | None = None
    ) -> CalendarConnection | None:
        """Load a connection, optionally scoped to a tenant."""
        query = f"SELECT {_CONNECTION_COLUMNS} FROM calendar_connections WHERE id = %s"
        params: tuple = (connection_id,)
        if tenant_id is not None:
            query += " AND tenant_id = %s"
            params = (connection_id, tenant_id)

        row = await fetch_one(query, params)
        return _row_to_connection(row) if row else None

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def find_by_owner(
        self, tenant_id: str, user_id: str, provider: CalendarProvider
    ) -> CalendarConnection | None:
        query = f"""
        SELECT {_CONNECTION_COLUMNS}
        FROM calendar_connections
        WHERE tenant_id = %s AND user_id = %s AND provider = %s
        """
        row = await fetch_one(query, (tenant_id, user_id, provider.value))
        return _row_to_connection(row) if row else None

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_for_user(self, tenant_id: str, user_id: str) -> list[CalendarConnection]:
        query = f"""
        SELECT {_CONNECTION_COLUMNS}
        FROM calendar_connections
        WHERE tenant_id = %s AND user_id = %s
        ORDER BY created_at
        """
        rows = await fetch_all(query, (tenant_id, user_id))
        return [_row_to_connection(row) for row in rows]

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_ids_for_user(self, tenant_id: str, user_id: str) -> list[str]:
        query = """
        SELECT id::text AS id FROM calendar_connections
        WHERE tenant_id = %s AND user_id = %s
        """
        rows = await fetch_all(query, (tenant_id, user_id))
        return [row["id"] for row in rows]

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_active_ids(self) -> list[str]:
        """Every ACTIVE connection across tenants (batch sync job)."""
        rows = await fetch_all(
            "SELECT id::text AS id FROM calendar_connections WHERE status = %s ORDER BY id",
            (ConnectionStatus.ACTIVE.value,),
        )
        return [row["id"] for row in rows]

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def insert(
        self,
        tenant_id: str,
        user_id: str,
        provider: CalendarProvider,
        provider_account_id: str,
        tokens: TokenSet,
    ) -> CalendarConnection:
        """
        Create the owner's connection, or re-grant it when a concurrent
        callback already created one for (tenant, user, provider).
        """
        query = f"""
        INSERT INTO calendar_connections (
            tenant_id, user_id, provider, provider_account_id,
            access_token_encrypted, refresh_token_encrypted, token_expires_at,
            status, created_at, updated_at
        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
        ON CONFLICT (tenant_id, user_id, provider)
        DO UPDATE SET
            provider_account_id = EXCLUDED.provider_account_id,
            access_token_encrypted = EXCLUDED.access_token_encrypted,
            refresh_token_encrypted = COALESCE(
                EXCLUDED.refresh_token_encrypted, calendar_connections.refresh_token_encrypted
            ),
            token_expires_at = EXCLUDED.token_expires_at,
            status = EXCLUDED.status,
            updated_at = NOW()
        RETURNING {_CONNECTION_COLUMNS}
        """
        row = await fetch_one(
            query,
            (
                tenant_id,
                user_id,
                provider.value,
                provider_account_id,
                encrypt_token(tokens.access_token),
                encrypt_optional(tokens.refresh_token),
                tokens.expires_at,
                ConnectionStatus.ACTIVE.value,
            ),
        )
        connection = _row_to_connection(row)
        logger.info(
            "Calendar connection stored",
            connection_id=connection.id,
            tenant_id=tenant_id,
            provider=provider.value,
        )
        return connection

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def update_oauth_grant(
        self, connection_id: str, provider_account_id: str, tokens: TokenSet
    ) -> CalendarConnection:
        """Re-consent on an existing connection: new tokens, account id, ACTIVE."""
        query = f"""
        UPDATE calendar_connections
        SET provider_account_id = %s,
            access_token_encrypted = %s,
            refresh_token_encrypted = COALESCE(%s, refresh_token_encrypted),
            token_expires_at = %s,
            status = %s,
            updated_at = NOW()
        WHERE id = %s
        RETURNING {_CONNECTION_COLUMNS}
        """
        row = await fetch_one(
            query,
            (
                provider_account_id,
                encrypt_token(tokens.access_token),
                encrypt_optional(tokens.refresh_token),
                tokens.expires_at,
                ConnectionStatus.ACTIVE.value,
                connection_id,
            ),
        )
        return _row_to_connection(row)

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def update_tokens(
        self,
        connection_id: str,
        access_token: str,
        expires_at: datetime | None,
        refresh_token: str | None = None,
    ) -> bool:
        """Persist a refreshed access token. Leaves cursor and status untouched."""
        query = """
        UPDATE calendar_connections
        SET access_token_encrypted = %s,
            token_expires_at = COALESCE(%s, token_expires_at),
            refresh_token_encrypted = COALESCE(%s, refresh_token_encrypted),
            updated_at = NOW()
        WHERE id = %s
        """
        affected = await execute_query(
            query,
            (
                encrypt_token(access_token),
                expires_at,
                encrypt_optional(refresh_token),
                connection_id,
            ),
        )
        return affected > 0

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def update_sync_state(
        self, connection_id: str, sync_cursor: str | None, last_sync_at: datetime
    ) -> bool:
        """Record a finished sync. A None cursor keeps the stored one."""
        query = """
        UPDATE calendar_connections
        SET sync_cursor = COALESCE(%s, sync_cursor),
            last_sync_at = %s,
            status = CASE WHEN status = %s THEN %s ELSE status END,
            updated_at = NOW()
        WHERE id = %s
        """
        affected = await execute_query(
            query,
            (
                sync_cursor,
                last_sync_at,
                ConnectionStatus.ERROR.value,
                ConnectionStatus.ACTIVE.value,
                connection_id,
            ),
        )
        return affected > 0

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def clear_sync_cursor(self, connection_id: str) -> bool:
        affected = await execute_query(
            "UPDATE calendar_connections SET sync_cursor = NULL, updated_at = NOW() WHERE id = %s",
            (connection_id,),
        )
        return affected > 0

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def set_status(self, connection_id: str, status: ConnectionStatus) -> bool:
        affected = await execute_query(
            "UPDATE calendar_connections SET status = %s, updated_at = NOW() WHERE id = %s",
            (status.value, connection_id),
        )
        return affected > 0

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def revoke(self, connection_id: str) -> bool:
        """Mark REVOKED and drop the grant. The row and its events stay."""
        query = """
        UPDATE calendar_connections
        SET status = %s,
            access_token_encrypted = NULL,
            refresh_token_encrypted = NULL,
            token_expires_at = NULL,
            sync_cursor = NULL,
            updated_at = NOW()
        WHERE id = %s
        """
        affected = await execute_query(query, (ConnectionStatus.REVOKED.value, connection_id))
        return affected > 0
