"""
Meeting-to-time-entry suggestions.

A suggestion is a synced calendar event in the requested range that no time
entry of the user's employee links to yet. Accepted suggestions are turned
into time entries carrying the calendar event id.
"""

from datetime import date

from calsync.db.helpers import DatabaseError
from calsync.infrastructure.observability.logging import get_logger
from calsync.models.domain.calendar_domain import (
    CalendarEventRecord,
    DateRange,
    Suggestion,
)
from calsync.models.domain.time_entry_domain import (
    AppliedSuggestion,
    SuggestionApplyItem,
    SuggestionApplyResult,
)
from calsync.repositories.connection_repository import ConnectionRepository
from calsync.repositories.event_repository import EventRepository
from calsync.repositories.time_entry_repository import TimeEntryRepository
from calsync.services.employee_service import EmployeeService

logger = get_logger(__name__)


class SuggestionService:
    def __init__(
        self,
        events: EventRepository,
        connections: ConnectionRepository,
        time_entries: TimeEntryRepository,
        employees: EmployeeService,
        use_join_query: bool = True,
    ):
        self.events = events
        self.connections = connections
        self.time_entries = time_entries
        self.employees = employees
        self.use_join_query = use_join_query

    async def get_suggestions(
        self, tenant_id: str, user_id: str, date_range: DateRange
    ) -> list[Suggestion]:
        events = await self._fetch_events(tenant_id, user_id, date_range)
        employee = await self.employees.ensure_employee(tenant_id, user_id)

        converted = await self.time_entries.list_linked_event_ids(
            tenant_id,
            employee.id,
            date.fromisoformat(date_range.start_date),
            date.fromisoformat(date_range.end_date),
        )
        # Entries may be dated outside the range they were suggested in
        converted |= await self.time_entries.find_linked_event_ids(
            tenant_id, [event.id for event in events]
        )

        suggestions = [Suggestion.from_event(event) for event in events if event.id not in converted]

        logger.info(
            "Suggestions computed",
            tenant_id=tenant_id,
            user_id=user_id,
            event_count=len(events),
            converted_count=len(converted),
            suggestion_count=len(suggestions),
        )
        return suggestions

    async def _fetch_events(
        self, tenant_id: str, user_id: str, date_range: DateRange
    ) -> list[CalendarEventRecord]:
        start, end = date_range.start_instant(), date_range.end_instant()

        if self.use_join_query:
            try:
                return await self.events.list_for_user_in_range(tenant_id, user_id, start, end)
            except DatabaseError as e:
                logger.warning(
                    "Join query for suggestions failed, using connection id lookup",
                    tenant_id=tenant_id,
                    error=str(e),
                )

        connection_ids = await self.connections.list_ids_for_user(tenant_id, user_id)
        return await self.events.list_for_connections_in_range(tenant_id, connection_ids, start, end)

    async def apply_suggestions(
        self, tenant_id: str, user_id: str, items: list[SuggestionApplyItem]
    ) -> SuggestionApplyResult:
        """
        Create time entries for accepted suggestions.

        Items referencing unknown events, events of other users, or events
        already converted are skipped with a warning; the rest still apply.
        """
        result = SuggestionApplyResult()
        if not items:
            return result

        employee = await self.employees.ensure_employee(tenant_id, user_id)
        event_ids = list(dict.fromkeys(item.calendar_event_id for item in items))

        owned_connections = set(await self.connections.list_ids_for_user(tenant_id, user_id))
        events = {
            event.id: event
            for event in await self.events.get_by_ids(tenant_id, event_ids)
            if event.connection_id in owned_connections
        }
        converted = await self.time_entries.find_linked_event_ids(tenant_id, event_ids)

        for index, item in enumerate(items):
            event = events.get(item.calendar_event_id)
            if event is None:
                result.warnings.append(
                    f"Item {index}: calendar event {item.calendar_event_id} not found"
                )
                continue
            if event.id in converted:
                result.warnings.append(
                    f"Item {index}: calendar event {item.calendar_event_id} already converted"
                )
                continue

            minutes = item.minutes or event.duration_minutes()
            if minutes <= 0:
                result.warnings.append(
                    f"Item {index}: calendar event {item.calendar_event_id} has no duration"
                )
                continue

            entry_date = item.entry_date or event.start_at.date()
            time_entry_id = await self.time_entries.create_from_calendar_event(
                tenant_id,
                employee.id,
                item.project_id,
                entry_date,
                minutes,
                calendar_event_id=event.id,
                description=item.description or event.title,
                created_by_user_id=user_id,
            )
            converted.add(event.id)
            result.created.append(
                AppliedSuggestion(
                    calendar_event_id=event.id,
                    time_entry_id=time_entry_id,
                    minutes=minutes,
                    entry_date=entry_date,
                )
            )

        logger.info(
            "Suggestions applied",
            tenant_id=tenant_id,
            user_id=user_id,
            created_count=result.created_count,
            warning_count=len(result.warnings),
        )
        return result
