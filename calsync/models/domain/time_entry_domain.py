"""
Domain models for converting calendar suggestions into time entries.
"""

from datetime import date

from pydantic import BaseModel, Field


class SuggestionApplyItem(BaseModel):
    """One suggestion the user accepted."""

    calendar_event_id: str
    project_id: str
    entry_date: date | None = None  # defaults to the event's start day
    minutes: int | None = Field(default=None, gt=0)  # defaults to the event duration
    description: str | None = None  # defaults to the event title


class AppliedSuggestion(BaseModel):
    calendar_event_id: str
    time_entry_id: str
    minutes: int
    entry_date: date


class SuggestionApplyResult(BaseModel):
    created: list[AppliedSuggestion] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)
