"""
Service wiring.

Each provider builds its object once per process. Routes receive them through
FastAPI `Depends`, which is also where tests substitute fakes; jobs call the
providers directly.
"""

from functools import lru_cache

from calsync.config import settings
from calsync.repositories.connection_repository import ConnectionRepository
from calsync.repositories.employee_repository import EmployeeRepository
from calsync.repositories.event_repository import EventRepository
from calsync.repositories.time_entry_repository import TimeEntryRepository
from calsync.services.calendar.connection_service import ConnectionService
from calsync.services.calendar.oauth_flow import OAuthFlowService
from calsync.services.calendar.providers.registry import (
    ProviderRegistry,
    build_provider_registry,
)
from calsync.services.calendar.reconciler import EventReconciler
from calsync.services.calendar.sync_engine import CalendarSyncEngine
from calsync.services.calendar.sync_lock import SyncLockManager
from calsync.services.calendar.token_store import TokenStore
from calsync.services.employee_service import EmployeeService
from calsync.services.infrastructure.redis_client import fast_redis
from calsync.services.suggestion_service import SuggestionService


@lru_cache
def get_connection_repository() -> ConnectionRepository:
    return ConnectionRepository()


@lru_cache
def get_event_repository() -> EventRepository:
    return EventRepository()


@lru_cache
def get_provider_registry() -> ProviderRegistry:
    return build_provider_registry(settings)


@lru_cache
def get_employee_service() -> EmployeeService:
    return EmployeeService(EmployeeRepository())


@lru_cache
def get_sync_engine() -> CalendarSyncEngine:
    connections = get_connection_repository()
    return CalendarSyncEngine(
        connections=connections,
        reconciler=EventReconciler(get_event_repository()),
        token_store=TokenStore(connections),
        providers=get_provider_registry(),
        page_size=settings.CALENDAR_SYNC_PAGE_SIZE,
        fallback_days=settings.CALENDAR_SYNC_FALLBACK_DAYS,
    )


@lru_cache
def get_sync_lock_manager() -> SyncLockManager:
    return SyncLockManager(fast_redis, ttl_seconds=settings.CALENDAR_SYNC_LOCK_TTL_SECONDS)


@lru_cache
def get_oauth_flow_service() -> OAuthFlowService:
    return OAuthFlowService(
        providers=get_provider_registry(),
        connections=get_connection_repository(),
        employees=get_employee_service(),
    )


@lru_cache
def get_connection_service() -> ConnectionService:
    return ConnectionService(get_connection_repository(), get_provider_registry())


@lru_cache
def get_suggestion_service() -> SuggestionService:
    return SuggestionService(
        events=get_event_repository(),
        connections=get_connection_repository(),
        time_entries=TimeEntryRepository(),
        employees=get_employee_service(),
        use_join_query=settings.SUGGESTIONS_USE_JOIN_QUERY,
    )
