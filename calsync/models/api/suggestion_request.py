# calsync/models/api/suggestion_request.py
"""
Suggestion API request models.
Used by routes for input validation.
"""

from datetime import date

from pydantic import BaseModel, Field

from calsync.models.domain.time_entry_domain import SuggestionApplyItem


class SuggestionApplyItemRequest(BaseModel):
    """One accepted suggestion."""

    calendar_event_id: str = Field(..., min_length=1, description="Local calendar event ID")
    project_id: str = Field(..., min_length=1, description="Project to book the time on")
    entry_date: date | None = Field(None, description="Entry date (default: event start day)")
    minutes: int | None = Field(None, gt=0, le=1440, description="Minutes (default: event duration)")
    description: str | None = Field(None, max_length=1000, description="Entry description")

    def to_domain(self) -> SuggestionApplyItem:
        return SuggestionApplyItem(
            calendar_event_id=self.calendar_event_id,
            project_id=self.project_id,
            entry_date=self.entry_date,
            minutes=self.minutes,
            description=self.description,
        )


class SuggestionsApplyRequest(BaseModel):
    items: list[SuggestionApplyItemRequest] = Field(..., min_length=1, max_length=200)
