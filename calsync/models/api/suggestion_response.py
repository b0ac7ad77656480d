# calsync/models/api/suggestion_response.py
"""
Suggestion API response models.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field

from calsync.models.domain.calendar_domain import Suggestion


class AttendeeResponse(BaseModel):
    email: str | None = None
    display_name: str | None = None
    response_status: str | None = None
    organizer: bool = False
    is_self: bool = False
    optional: bool = False


class SuggestionResponse(BaseModel):
    """A calendar event that can be turned into a time entry."""

    id: str = Field(..., description="Local calendar event ID")
    provider: str
    provider_event_id: str
    title: str | None = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int = Field(..., description="Event length, rounded to whole minutes")
    is_all_day: bool = False
    location: str | None = None
    organizer_email: str | None = None
    attendee_count: int = 0
    attendees: list[AttendeeResponse] = Field(default_factory=list)
    conference_link: str | None = None

    @classmethod
    def from_domain(cls, suggestion: Suggestion) -> "SuggestionResponse":
        return cls(
            id=suggestion.id,
            provider=suggestion.provider.value,
            provider_event_id=suggestion.provider_event_id,
            title=suggestion.title,
            start_time=suggestion.start_time,
            end_time=suggestion.end_time,
            duration_minutes=suggestion.duration_minutes,
            is_all_day=suggestion.is_all_day,
            location=suggestion.location,
            organizer_email=suggestion.organizer_email,
            attendee_count=suggestion.attendee_count,
            attendees=[AttendeeResponse(**a.model_dump()) for a in suggestion.attendees],
            conference_link=suggestion.conference_link,
        )


class SuggestionsListResponse(BaseModel):
    suggestions: list[SuggestionResponse] = Field(default_factory=list)
    total_count: int
    start_date: str
    end_date: str


class AppliedSuggestionResponse(BaseModel):
    calendar_event_id: str
    time_entry_id: str
    minutes: int
    entry_date: date


class SuggestionsApplyResponse(BaseModel):
    created: list[AppliedSuggestionResponse] = Field(default_factory=list)
    created_count: int
    warnings: list[str] = Field(default_factory=list)
