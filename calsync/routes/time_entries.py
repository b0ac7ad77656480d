"""
Time entry suggestion routes.
Calendar events the user has not logged yet, and conversion of accepted
suggestions into time entries.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from calsync.auth.verify import auth_dependency, tenant_dependency, user_id_from_claims
from calsync.dependencies import get_suggestion_service
from calsync.infrastructure.observability.logging import get_logger
from calsync.models.api.suggestion_request import SuggestionsApplyRequest
from calsync.models.api.suggestion_response import (
    AppliedSuggestionResponse,
    SuggestionResponse,
    SuggestionsApplyResponse,
    SuggestionsListResponse,
)
from calsync.models.domain.calendar_domain import DateRange
from calsync.services.suggestion_service import SuggestionService

logger = get_logger(__name__)

router = APIRouter(prefix="/time-entries", tags=["time-entries"])

DATE_FORMAT = "%Y-%m-%d"


def _parse_date_range(start_date: str, end_date: str) -> DateRange:
    try:
        start = datetime.strptime(start_date, DATE_FORMAT).date()
        end = datetime.strptime(end_date, DATE_FORMAT).date()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="startDate and endDate must be YYYY-MM-DD",
        ) from e

    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="endDate must not be before startDate",
        )
    return DateRange(start_date=start.isoformat(), end_date=end.isoformat())


@router.get("/suggestions", response_model=SuggestionsListResponse)
async def get_suggestions(
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    claims: dict = Depends(auth_dependency),
    tenant_id: str = Depends(tenant_dependency),
    suggestions: SuggestionService = Depends(get_suggestion_service),
):
    """Calendar events in the inclusive date range not yet converted to time entries."""
    user_id = user_id_from_claims(claims)
    date_range = _parse_date_range(start_date, end_date)

    try:
        items = await suggestions.get_suggestions(tenant_id, user_id, date_range)
    except Exception as e:
        logger.error(
            "Error computing suggestions",
            user_id=user_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute suggestions",
        ) from e

    return SuggestionsListResponse(
        suggestions=[SuggestionResponse.from_domain(s) for s in items],
        total_count=len(items),
        start_date=date_range.start_date,
        end_date=date_range.end_date,
    )


@router.post("/suggestions/apply", response_model=SuggestionsApplyResponse)
async def apply_suggestions(
    request: SuggestionsApplyRequest,
    claims: dict = Depends(auth_dependency),
    tenant_id: str = Depends(tenant_dependency),
    suggestions: SuggestionService = Depends(get_suggestion_service),
):
    """Convert accepted suggestions into time entries; skipped items come back as warnings."""
    user_id = user_id_from_claims(claims)

    try:
        result = await suggestions.apply_suggestions(
            tenant_id, user_id, [item.to_domain() for item in request.items]
        )
    except Exception as e:
        logger.error(
            "Error applying suggestions",
            user_id=user_id,
            item_count=len(request.items),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to apply suggestions",
        ) from e

    return SuggestionsApplyResponse(
        created=[
            AppliedSuggestionResponse(
                calendar_event_id=c.calendar_event_id,
                time_entry_id=c.time_entry_id,
                minutes=c.minutes,
                entry_date=c.entry_date,
            )
            for c in result.created
        ],
        created_count=result.created_count,
        warnings=result.warnings,
    )
