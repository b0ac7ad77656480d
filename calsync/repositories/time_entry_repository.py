"""
Time entry access needed by the suggestion flow.

The `time_entries` table belongs to the core CRUD layer; this module reads
which calendar events are already converted and inserts entries created
from accepted suggestions.
"""

from datetime import date

from calsync.db.helpers import fetch_all, fetch_val, with_db_retry


class TimeEntryRepository:
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_linked_event_ids(
        self, tenant_id: str, employee_id: str, start_date: date, end_date: date
    ) -> set[str]:
        """Calendar event ids already linked to a time entry in the range."""
        query = """
        SELECT calendar_event_id::text AS calendar_event_id
        FROM time_entries
        WHERE tenant_id = %s
          AND employee_id = %s
          AND date >= %s
          AND date <= %s
          AND calendar_event_id IS NOT NULL
        """
        rows = await fetch_all(query, (tenant_id, employee_id, start_date, end_date))
        return {row["calendar_event_id"] for row in rows}

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def find_linked_event_ids(self, tenant_id: str, event_ids: list[str]) -> set[str]:
        """Which of the given calendar events already have any time entry."""
        if not event_ids:
            return set()
        query = """
        SELECT DISTINCT calendar_event_id::text AS calendar_event_id
        FROM time_entries
        WHERE tenant_id = %s AND calendar_event_id = ANY(%s::uuid[])
        """
        rows = await fetch_all(query, (tenant_id, event_ids))
        return {row["calendar_event_id"] for row in rows}

    async def create_from_calendar_event(
        self,
        tenant_id: str,
        employee_id: str,
        project_id: str,
        entry_date: date,
        minutes: int,
        calendar_event_id: str,
        description: str | None,
        created_by_user_id: str,
    ) -> str:
        query = """
        INSERT INTO time_entries (
            tenant_id, employee_id, project_id, date, minutes, description,
            calendar_event_id, created_by_user_id, created_at, updated_at
        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
        RETURNING id::text
        """
        return await fetch_val(
            query,
            (
                tenant_id,
                employee_id,
                project_id,
                entry_date,
                minutes,
                description,
                calendar_event_id,
                created_by_user_id,
            ),
        )
