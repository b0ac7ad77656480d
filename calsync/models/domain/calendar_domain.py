"""
Calendar Domain Models
Domain models for calendar connections, synced events and time-entry suggestions.
Used by services for internal processing and business rules.
"""

import math
from datetime import UTC, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field


class CalendarProvider(str, Enum):
    GOOGLE = "GOOGLE"
    MICROSOFT = "MICROSOFT"

    @classmethod
    def from_slug(cls, slug: str) -> "CalendarProvider":
        """Resolve a URL path segment such as `google` to a provider."""
        try:
            return cls(slug.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown calendar provider '{slug}'") from None

    @property
    def slug(self) -> str:
        return self.value.lower()


class ConnectionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"
    ERROR = "ERROR"


class CalendarConnection(BaseModel):
    """A stored OAuth grant binding one tenant+user+provider to calendar access."""

    id: str
    tenant_id: str
    user_id: str
    provider: CalendarProvider
    provider_account_id: str | None = None
    access_token: str | None = None  # decrypted
    refresh_token: str | None = None  # decrypted
    token_expires_at: datetime | None = None
    sync_cursor: str | None = None
    status: ConnectionStatus = ConnectionStatus.ACTIVE
    last_sync_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_active(self) -> bool:
        return self.status == ConnectionStatus.ACTIVE

    def token_expired(self) -> bool:
        if not self.token_expires_at:
            return False
        return datetime.now(UTC) >= self.token_expires_at


class Attendee(BaseModel):
    email: str | None = None
    display_name: str | None = None
    response_status: str | None = None
    organizer: bool = False
    is_self: bool = False
    optional: bool = False


class EventTime(BaseModel):
    """Provider start/end marker: either a timestamp or a bare date (all-day)."""

    date_time: str | None = None
    date: str | None = None
    time_zone: str | None = None

    def is_empty(self) -> bool:
        return not self.date_time and not self.date

    def has_time_of_day(self) -> bool:
        return bool(self.date_time)

    def to_datetime(self) -> datetime:
        """
        Parse into an aware UTC datetime.

        Raises:
            ValueError: if neither field is set or the value cannot be parsed
        """
        if self.date_time:
            parsed = datetime.fromisoformat(self.date_time.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)
        if self.date:
            return datetime.strptime(self.date, "%Y-%m-%d").replace(tzinfo=UTC)
        raise ValueError("event time has neither dateTime nor date")


class ConferenceEntryPoint(BaseModel):
    entry_point_type: str | None = None
    uri: str | None = None


class ProviderEvent(BaseModel):
    """
    One event as reported by a provider, before reconciliation.

    Adapters translate their wire payloads into this shape; the reconciler
    decides what to store from it.
    """

    provider_event_id: str | None = None
    status: str = "confirmed"
    title: str | None = None
    description: str | None = None
    location: str | None = None
    start: EventTime | None = None
    end: EventTime | None = None
    organizer_email: str | None = None
    attendees: list[Attendee] = Field(default_factory=list)
    meeting_link: str | None = None
    conference_entry_points: list[ConferenceEntryPoint] = Field(default_factory=list)
    visibility: str | None = None
    ical_uid: str | None = None
    is_recurring: bool = False

    def is_cancelled(self) -> bool:
        return (self.status or "").lower() == "cancelled"


class CalendarEventRecord(BaseModel):
    """Canonical stored calendar event."""

    id: str | None = None
    tenant_id: str
    connection_id: str
    provider: CalendarProvider
    provider_event_id: str
    ical_uid: str | None = None
    title: str | None = None
    description: str | None = None
    start_at: datetime
    end_at: datetime
    is_all_day: bool = False
    is_recurring: bool = False
    location: str | None = None
    organizer_email: str | None = None
    attendees: list[Attendee] = Field(default_factory=list)
    attendee_count: int = 0
    conference_link: str | None = None
    status: str = "confirmed"
    visibility: str | None = None
    last_synced_at: datetime | None = None

    def duration_minutes(self) -> int:
        """Whole minutes between start and end, rounded half-up."""
        seconds = (self.end_at - self.start_at).total_seconds()
        return math.floor(seconds / 60 + 0.5)


class Suggestion(BaseModel):
    """Calendar event not yet linked to a logged time entry."""

    id: str
    provider: CalendarProvider
    provider_event_id: str
    title: str | None = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    is_all_day: bool = False
    location: str | None = None
    organizer_email: str | None = None
    attendee_count: int = 0
    attendees: list[Attendee] = Field(default_factory=list)
    conference_link: str | None = None

    @classmethod
    def from_event(cls, event: CalendarEventRecord) -> "Suggestion":
        return cls(
            id=event.id,
            provider=event.provider,
            provider_event_id=event.provider_event_id,
            title=event.title,
            start_time=event.start_at,
            end_time=event.end_at,
            duration_minutes=event.duration_minutes(),
            is_all_day=event.is_all_day,
            location=event.location,
            organizer_email=event.organizer_email,
            attendee_count=event.attendee_count,
            attendees=event.attendees,
            conference_link=event.conference_link,
        )


class Employee(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    first_name: str
    last_name: str
    email: str | None = None


class DateRange(BaseModel):
    """Inclusive calendar-day range, materialised as UTC instants."""

    start_date: str
    end_date: str

    def start_instant(self) -> datetime:
        return datetime.strptime(self.start_date, "%Y-%m-%d").replace(tzinfo=UTC)

    def end_instant(self) -> datetime:
        end_day = datetime.strptime(self.end_date, "%Y-%m-%d").replace(tzinfo=UTC)
        return end_day + timedelta(days=1) - timedelta(microseconds=1)


class SyncMode(str, Enum):
    CURSOR = "cursor"
    WINDOW = "window"


class ReconcileOutcome(str, Enum):
    UPSERTED = "upserted"
    DELETED = "deleted"
    SKIPPED = "skipped"


class SyncResult(BaseModel):
    connection_id: str
    status: str = "success"
    reason: str | None = None
    mode: SyncMode | None = None
    pages: int = 0
    upserted: int = 0
    deleted: int = 0
    skipped_events: int = 0
    cursor_reset: bool = False
    next_cursor_stored: bool = False

    def record(self, outcome: ReconcileOutcome) -> None:
        if outcome == ReconcileOutcome.UPSERTED:
            self.upserted += 1
        elif outcome == ReconcileOutcome.DELETED:
            self.deleted += 1
        else:
            self.skipped_events += 1
