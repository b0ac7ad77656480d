"""
Event reconciliation: applies one provider event to local storage.

Cancelled events are deleted, incomplete events are skipped, everything
else is upserted by (tenant, connection, provider, provider event id).
Storage failures propagate and abort the enclosing sync run.
"""

from datetime import UTC, datetime

from calsync.infrastructure.observability.logging import get_logger
from calsync.models.domain.calendar_domain import (
    CalendarEventRecord,
    CalendarProvider,
    ProviderEvent,
    ReconcileOutcome,
)
from calsync.repositories.event_repository import EventRepository
from calsync.services.calendar.errors import MalformedEventError

logger = get_logger(__name__)

VIDEO_ENTRY_POINT = "video"


def resolve_conference_link(event: ProviderEvent) -> str | None:
    """Direct meeting link first, then the first video entry point."""
    if event.meeting_link:
        return event.meeting_link
    for entry_point in event.conference_entry_points:
        if entry_point.entry_point_type == VIDEO_ENTRY_POINT and entry_point.uri:
            return entry_point.uri
    return None


def normalize_event(
    tenant_id: str,
    connection_id: str,
    provider: CalendarProvider,
    event: ProviderEvent,
    synced_at: datetime,
) -> CalendarEventRecord:
    """
    Build the stored shape of a provider event.

    Raises:
        MalformedEventError: id, start or end missing or unparseable
    """
    if not event.provider_event_id:
        raise MalformedEventError("event has no provider id", connection_id=connection_id)
    if event.start is None or event.end is None or event.start.is_empty() or event.end.is_empty():
        raise MalformedEventError(
            f"event {event.provider_event_id} has no start or end", connection_id=connection_id
        )

    try:
        start_at = event.start.to_datetime()
        end_at = event.end.to_datetime()
    except ValueError as e:
        raise MalformedEventError(
            f"event {event.provider_event_id} has invalid times: {e}", connection_id=connection_id
        ) from e

    return CalendarEventRecord(
        tenant_id=tenant_id,
        connection_id=connection_id,
        provider=provider,
        provider_event_id=event.provider_event_id,
        ical_uid=event.ical_uid,
        title=event.title,
        description=event.description,
        start_at=start_at,
        end_at=end_at,
        is_all_day=not event.start.has_time_of_day(),
        is_recurring=event.is_recurring,
        location=event.location,
        organizer_email=event.organizer_email,
        attendees=event.attendees,
        attendee_count=len(event.attendees),
        conference_link=resolve_conference_link(event),
        status=event.status or "confirmed",
        visibility=event.visibility,
        last_synced_at=synced_at,
    )


class EventReconciler:
    def __init__(self, events: EventRepository):
        self.events = events

    async def apply(
        self,
        tenant_id: str,
        connection_id: str,
        provider: CalendarProvider,
        event: ProviderEvent,
        synced_at: datetime | None = None,
    ) -> ReconcileOutcome:
        if event.is_cancelled():
            if not event.provider_event_id:
                return ReconcileOutcome.SKIPPED
            await self.events.delete_by_provider_event_id(
                tenant_id, connection_id, event.provider_event_id
            )
            return ReconcileOutcome.DELETED

        try:
            record = normalize_event(
                tenant_id,
                connection_id,
                provider,
                event,
                synced_at or datetime.now(UTC),
            )
        except MalformedEventError as e:
            logger.warning(
                "Skipping malformed calendar event",
                connection_id=connection_id,
                provider_event_id=event.provider_event_id,
                error=str(e),
            )
            return ReconcileOutcome.SKIPPED

        await self.events.upsert(record)
        return ReconcileOutcome.UPSERTED
