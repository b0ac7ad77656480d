"""Provider enum to adapter mapping, built once at startup."""

import httpx

from calsync.config import Settings
from calsync.models.domain.calendar_domain import CalendarProvider
from calsync.services.calendar.errors import ProviderNotSupportedError
from calsync.services.calendar.providers.base import CalendarProviderAdapter
from calsync.services.calendar.providers.google import GoogleCalendarAdapter
from calsync.services.calendar.providers.microsoft import MicrosoftCalendarAdapter

ProviderRegistry = dict[CalendarProvider, CalendarProviderAdapter]


def build_provider_registry(
    settings: Settings, http_client: httpx.AsyncClient | None = None
) -> ProviderRegistry:
    return {
        CalendarProvider.GOOGLE: GoogleCalendarAdapter(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.google_redirect_uri(),
            http_client=http_client,
            timeout=settings.CALENDAR_HTTP_TIMEOUT,
        ),
        CalendarProvider.MICROSOFT: MicrosoftCalendarAdapter(
            client_id=settings.MICROSOFT_CLIENT_ID,
            client_secret=settings.MICROSOFT_CLIENT_SECRET,
            redirect_uri=settings.microsoft_redirect_uri(),
            http_client=http_client,
            timeout=settings.CALENDAR_HTTP_TIMEOUT,
        ),
    }


def get_adapter(registry: ProviderRegistry, provider: CalendarProvider) -> CalendarProviderAdapter:
    adapter = registry.get(provider)
    if adapter is None:
        raise ProviderNotSupportedError(f"No adapter registered for {provider.value}")
    return adapter


async def close_registry(registry: ProviderRegistry) -> None:
    for adapter in registry.values():
        await adapter.close()
