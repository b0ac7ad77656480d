"""
Incremental calendar sync engine.

One call to `sync()` drains every page the provider has for a connection at
invocation time: cursor mode when a sync cursor is stored, otherwise a
fallback window reaching back a fixed number of days. Each page is fully
reconciled before the next one is requested, and the new cursor is only
stored after the final page. An expired cursor is cleared and the run is
repeated once in window mode.

The engine does not serialize runs for the same connection; callers hold a
SyncLockManager lease for that.
"""

from datetime import UTC, datetime, timedelta

from calsync.infrastructure.observability.logging import get_logger
from calsync.models.domain.calendar_domain import (
    CalendarConnection,
    ConnectionStatus,
    SyncMode,
    SyncResult,
)
from calsync.models.domain.oauth_domain import ProviderCredentials
from calsync.repositories.connection_repository import ConnectionRepository
from calsync.services.calendar.errors import (
    ConnectionNotFoundError,
    CursorInvalidError,
    ProviderAuthorizationError,
)
from calsync.services.calendar.providers.base import CalendarProviderAdapter
from calsync.services.calendar.providers.registry import ProviderRegistry, get_adapter
from calsync.services.calendar.reconciler import EventReconciler
from calsync.services.calendar.token_store import TokenStore

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 250
DEFAULT_FALLBACK_DAYS = 30


class CalendarSyncEngine:
    def __init__(
        self,
        connections: ConnectionRepository,
        reconciler: EventReconciler,
        token_store: TokenStore,
        providers: ProviderRegistry,
        page_size: int = DEFAULT_PAGE_SIZE,
        fallback_days: int = DEFAULT_FALLBACK_DAYS,
    ):
        self.connections = connections
        self.reconciler = reconciler
        self.token_store = token_store
        self.providers = providers
        self.page_size = page_size
        self.fallback_days = fallback_days

    async def sync(self, connection_id: str, tenant_id: str | None = None) -> SyncResult:
        """
        Run one full sync for a connection.

        Args:
            connection_id: Connection to sync
            tenant_id: When given, the connection must belong to this tenant

        Returns:
            SyncResult: counters for the run, or a skipped result

        Raises:
            ConnectionNotFoundError: connection missing (or in another tenant)
            CursorInvalidError: cursor rejected again after the window resync
            ProviderAuthorizationError: credentials refused; connection marked ERROR
            ProviderUnavailableError: provider unreachable, run aborted
        """
        connection = await self.connections.get_by_id(connection_id, tenant_id)
        if connection is None:
            raise ConnectionNotFoundError(
                f"Calendar connection {connection_id} not found",
                connection_id=connection_id,
                recoverable=False,
            )

        if connection.status == ConnectionStatus.REVOKED:
            logger.info("Skipping sync for revoked connection", connection_id=connection_id)
            return SyncResult(connection_id=connection_id, status="skipped", reason="revoked")

        adapter = get_adapter(self.providers, connection.provider)
        if not adapter.sync_supported:
            logger.info(
                "Calendar sync not implemented for provider",
                connection_id=connection_id,
                provider=connection.provider.value,
            )
            return SyncResult(connection_id=connection_id, status="skipped", reason="not_implemented")

        logger.info(
            "Calendar sync started",
            connection_id=connection_id,
            tenant_id=connection.tenant_id,
            provider=connection.provider.value,
            has_cursor=bool(connection.sync_cursor),
        )

        try:
            credentials = self.token_store.credentials_for(connection)
            try:
                result = await self._run(connection, adapter, credentials, connection.sync_cursor)
            except CursorInvalidError:
                if not connection.sync_cursor:
                    raise
                logger.warning(
                    "Sync cursor invalidated, resyncing from fallback window",
                    connection_id=connection_id,
                )
                await self.connections.clear_sync_cursor(connection_id)
                # A second cursor rejection propagates
                result = await self._run(connection, adapter, credentials, None)
                result.cursor_reset = True

        except ProviderAuthorizationError as e:
            logger.error(
                "Calendar provider refused credentials, marking connection ERROR",
                connection_id=connection_id,
                error=str(e),
            )
            await self.connections.set_status(connection_id, ConnectionStatus.ERROR)
            e.connection_id = connection_id
            raise
        except Exception as e:
            logger.error(
                "Calendar sync failed",
                connection_id=connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.info(
            "Calendar sync completed",
            connection_id=connection_id,
            mode=result.mode.value if result.mode else None,
            pages=result.pages,
            upserted=result.upserted,
            deleted=result.deleted,
            skipped_events=result.skipped_events,
            cursor_reset=result.cursor_reset,
        )
        return result

    async def _run(
        self,
        connection: CalendarConnection,
        adapter: CalendarProviderAdapter,
        credentials: ProviderCredentials,
        cursor: str | None,
    ) -> SyncResult:
        mode = SyncMode.CURSOR if cursor else SyncMode.WINDOW
        time_min = None
        if mode == SyncMode.WINDOW:
            time_min = datetime.now(UTC) - timedelta(days=self.fallback_days)

        result = SyncResult(connection_id=connection.id, mode=mode)
        on_tokens_refreshed = self.token_store.refresh_callback(connection.id)
        page_token: str | None = None

        while True:
            page = await adapter.list_events(
                credentials,
                cursor=cursor,
                time_min=time_min,
                page_token=page_token,
                page_size=self.page_size,
                on_tokens_refreshed=on_tokens_refreshed,
            )
            result.pages += 1
            synced_at = datetime.now(UTC)

            for event in page.events:
                outcome = await self.reconciler.apply(
                    connection.tenant_id,
                    connection.id,
                    connection.provider,
                    event,
                    synced_at=synced_at,
                )
                result.record(outcome)

            logger.debug(
                "Sync page reconciled",
                connection_id=connection.id,
                page=result.pages,
                event_count=len(page.events),
            )

            if not page.next_page_token:
                break
            page_token = page.next_page_token

        # Only the cursor issued with the final page terminates this batch
        next_cursor = page.next_sync_cursor
        await self.connections.update_sync_state(connection.id, next_cursor, datetime.now(UTC))
        result.next_cursor_stored = next_cursor is not None
        return result
