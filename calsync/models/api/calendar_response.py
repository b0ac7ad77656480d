# calsync/models/api/calendar_response.py
"""
Calendar API response models.
Used by routes for output formatting.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from calsync.models.domain.calendar_domain import CalendarConnection, SyncResult


class CalendarConnectionResponse(BaseModel):
    """One calendar connection of the authenticated user. Never carries tokens."""

    id: str = Field(..., description="Connection ID")
    provider: str = Field(..., description="GOOGLE or MICROSOFT")
    provider_account_id: str | None = Field(None, description="Account ID at the provider")
    status: str = Field(..., description="ACTIVE, REVOKED or ERROR")
    last_sync_at: datetime | None = Field(None, description="When the last sync finished")
    created_at: datetime | None = Field(None, description="When the connection was created")

    @classmethod
    def from_domain(cls, connection: CalendarConnection) -> "CalendarConnectionResponse":
        return cls(
            id=connection.id,
            provider=connection.provider.value,
            provider_account_id=connection.provider_account_id,
            status=connection.status.value,
            last_sync_at=connection.last_sync_at,
            created_at=connection.created_at,
        )


class CalendarConnectionsListResponse(BaseModel):
    connections: list[CalendarConnectionResponse] = Field(default_factory=list)
    total_count: int = Field(..., description="Number of connections")


class ConnectUrlResponse(BaseModel):
    """Authorization URL the browser should be redirected to."""

    url: str = Field(..., description="Provider authorization URL")


class SyncResultResponse(BaseModel):
    """Outcome of one sync run."""

    connection_id: str
    status: str = Field(..., description="success or skipped")
    reason: str | None = Field(None, description="Why the sync was skipped")
    mode: str | None = Field(None, description="cursor or window")
    pages: int = 0
    upserted: int = 0
    deleted: int = 0
    skipped_events: int = 0
    cursor_reset: bool = Field(False, description="Cursor expired and a window resync ran")
    next_cursor_stored: bool = False

    @classmethod
    def from_domain(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(
            connection_id=result.connection_id,
            status=result.status,
            reason=result.reason,
            mode=result.mode.value if result.mode else None,
            pages=result.pages,
            upserted=result.upserted,
            deleted=result.deleted,
            skipped_events=result.skipped_events,
            cursor_reset=result.cursor_reset,
            next_cursor_stored=result.next_cursor_stored,
        )


class DisconnectResponse(BaseModel):
    connection_id: str
    status: str = Field(..., description="Connection status after disconnect")
    provider_revoked: bool = Field(..., description="Provider confirmed token revocation")


class WebhookAckResponse(BaseModel):
    """Webhook acknowledgement. Providers only look at the status code."""

    received: bool = True
    action: str = Field(..., description="ignored, acknowledged, synced or sync_failed")
