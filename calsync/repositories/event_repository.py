"""
Storage for synced calendar events.

Upserts are keyed on (tenant_id, connection_id, provider, provider_event_id),
the only uniqueness constraint reconciliation relies on.
"""

from datetime import datetime
from typing import Any

from psycopg.types.json import Jsonb

from calsync.db.helpers import execute_query, fetch_all, fetch_val, with_db_retry
from calsync.models.domain.calendar_domain import (
    Attendee,
    CalendarEventRecord,
    CalendarProvider,
)

_EVENT_COLUMNS = """
    e.id::text AS id, e.tenant_id::text AS tenant_id, e.connection_id::text AS connection_id,
    e.provider, e.provider_event_id, e.ical_uid, e.title, e.description,
    e.start_at, e.end_at, e.is_all_day, e.is_recurring, e.location, e.organizer_email,
    e.attendees, e.attendee_count, e.conference_link, e.status, e.visibility,
    e.last_synced_at
"""


def _row_to_event(row: dict[str, Any]) -> CalendarEventRecord:
    return CalendarEventRecord(
        id=row["id"],
        tenant_id=row["tenant_id"],
        connection_id=row["connection_id"],
        provider=CalendarProvider(row["provider"]),
        provider_event_id=row["provider_event_id"],
        ical_uid=row.get("ical_uid"),
        title=row.get("title"),
        description=row.get("description"),
        start_at=row["start_at"],
        end_at=row["end_at"],
        is_all_day=row.get("is_all_day", False),
        is_recurring=row.get("is_recurring", False),
        location=row.get("location"),
        organizer_email=row.get("organizer_email"),
        attendees=[Attendee(**item) for item in row.get("attendees") or []],
        attendee_count=row.get("attendee_count") or 0,
        conference_link=row.get("conference_link"),
        status=row.get("status") or "confirmed",
        visibility=row.get("visibility"),
        last_synced_at=row.get("last_synced_at"),
    )


class EventRepository:
    """Postgres-backed store for CalendarEventRecord rows."""

    async def upsert(self, event: CalendarEventRecord) -> str:
        """Insert or update by natural key. Returns the local event id."""
        query = """
        INSERT INTO calendar_events (
            tenant_id, connection_id, provider, provider_event_id, ical_uid,
            title, description, start_at, end_at, is_all_day, is_recurring,
            location, organizer_email, attendees, attendee_count, conference_link,
            status, visibility, last_synced_at, created_at, updated_at
        ) VALUES (
            %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
            %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW()
        )
        ON CONFLICT (tenant_id, connection_id, provider, provider_event_id)
        DO UPDATE SET
            ical_uid = EXCLUDED.ical_uid,
            title = EXCLUDED.title,
            description = EXCLUDED.description,
            start_at = EXCLUDED.start_at,
            end_at = EXCLUDED.end_at,
            is_all_day = EXCLUDED.is_all_day,
            is_recurring = EXCLUDED.is_recurring,
            location = EXCLUDED.location,
            organizer_email = EXCLUDED.organizer_email,
            attendees = EXCLUDED.attendees,
            attendee_count = EXCLUDED.attendee_count,
            conference_link = EXCLUDED.conference_link,
            status = EXCLUDED.status,
            visibility = EXCLUDED.visibility,
            last_synced_at = EXCLUDED.last_synced_at,
            updated_at = NOW()
        RETURNING id::text
        """
        return await fetch_val(
            query,
            (
                event.tenant_id,
                event.connection_id,
                event.provider.value,
                event.provider_event_id,
                event.ical_uid,
                event.title,
                event.description,
                event.start_at,
                event.end_at,
                event.is_all_day,
                event.is_recurring,
                event.location,
                event.organizer_email,
                Jsonb([attendee.model_dump() for attendee in event.attendees]),
                event.attendee_count,
                event.conference_link,
                event.status,
                event.visibility,
                event.last_synced_at,
            ),
        )

    async def delete_by_provider_event_id(
        self, tenant_id: str, connection_id: str, provider_event_id: str
    ) -> int:
        query = """
        DELETE FROM calendar_events
        WHERE tenant_id = %s AND connection_id = %s AND provider_event_id = %s
        """
        return await execute_query(query, (tenant_id, connection_id, provider_event_id))

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_for_user_in_range(
        self, tenant_id: str, user_id: str, start: datetime, end: datetime
    ) -> list[CalendarEventRecord]:
        """Events whose owning connection belongs to the user (join path)."""
        query = f"""
        SELECT {_EVENT_COLUMNS}
        FROM calendar_events e
        JOIN calendar_connections c ON c.id = e.connection_id
        WHERE e.tenant_id = %s
          AND c.user_id = %s
          AND e.start_at >= %s
          AND e.start_at <= %s
        ORDER BY e.start_at
        """
        rows = await fetch_all(query, (tenant_id, user_id, start, end))
        return [_row_to_event(row) for row in rows]

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_for_connections_in_range(
        self, tenant_id: str, connection_ids: list[str], start: datetime, end: datetime
    ) -> list[CalendarEventRecord]:
        """Events belonging to any of the given connections (two-step path)."""
        if not connection_ids:
            return []
        query = f"""
        SELECT {_EVENT_COLUMNS}
        FROM calendar_events e
        WHERE e.tenant_id = %s
          AND e.connection_id = ANY(%s::uuid[])
          AND e.start_at >= %s
          AND e.start_at <= %s
        ORDER BY e.start_at
        """
        rows = await fetch_all(query, (tenant_id, connection_ids, start, end))
        return [_row_to_event(row) for row in rows]

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_by_ids(self, tenant_id: str, event_ids: list[str]) -> list[CalendarEventRecord]:
        if not event_ids:
            return []
        query = f"""
        SELECT {_EVENT_COLUMNS}
        FROM calendar_events e
        WHERE e.tenant_id = %s AND e.id = ANY(%s::uuid[])
        """
        rows = await fetch_all(query, (tenant_id, event_ids))
        return [_row_to_event(row) for row in rows]
