"""
Calendar API Routes
Connect/disconnect calendar providers, trigger syncs, and receive provider
push notifications.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse, RedirectResponse

from calsync.auth.verify import auth_dependency, tenant_dependency, user_id_from_claims
from calsync.config import settings
from calsync.dependencies import (
    get_connection_service,
    get_oauth_flow_service,
    get_sync_engine,
    get_sync_lock_manager,
)
from calsync.infrastructure.observability.logging import get_logger, preview
from calsync.models.api.calendar_response import (
    CalendarConnectionResponse,
    CalendarConnectionsListResponse,
    ConnectUrlResponse,
    DisconnectResponse,
    SyncResultResponse,
    WebhookAckResponse,
)
from calsync.models.domain.calendar_domain import CalendarProvider, ConnectionStatus
from calsync.services.calendar.connection_service import ConnectionService
from calsync.services.calendar.errors import (
    CalendarSyncError,
    ConnectionNotFoundError,
    CursorInvalidError,
    InvalidStateError,
    ProviderAuthorizationError,
    ProviderNotConfiguredError,
    ProviderNotSupportedError,
    ProviderRequestError,
    ProviderUnavailableError,
    SyncInProgressError,
    TokenExchangeError,
)
from calsync.services.calendar.oauth_flow import OAuthFlowService
from calsync.services.calendar.sync_engine import CalendarSyncEngine
from calsync.services.calendar.sync_lock import SyncLockManager, sync_with_lock

logger = get_logger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])

GOOGLE_STATE_SYNC = "sync"
GOOGLE_STATE_EXISTS = "exists"


def _http_status_for(error: CalendarSyncError) -> int:
    if isinstance(error, ConnectionNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, SyncInProgressError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, InvalidStateError | ProviderNotConfiguredError | ProviderNotSupportedError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(
        error,
        ProviderAuthorizationError
        | ProviderUnavailableError
        | ProviderRequestError
        | CursorInvalidError
        | TokenExchangeError,
    ):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _parse_provider(slug: str) -> CalendarProvider:
    try:
        return CalendarProvider.from_slug(slug)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


@router.get("/connections", response_model=CalendarConnectionsListResponse)
async def list_connections(
    claims: dict = Depends(auth_dependency),
    tenant_id: str = Depends(tenant_dependency),
    connections: ConnectionService = Depends(get_connection_service),
):
    """List calendar connections of the authenticated user."""
    user_id = user_id_from_claims(claims)

    try:
        items = await connections.list_connections(tenant_id, user_id)
    except Exception as e:
        logger.error("Error listing calendar connections", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list calendar connections",
        ) from e

    return CalendarConnectionsListResponse(
        connections=[CalendarConnectionResponse.from_domain(c) for c in items],
        total_count=len(items),
    )


@router.get("/connect/{provider}", response_model=ConnectUrlResponse)
async def connect_calendar(
    provider: str,
    claims: dict = Depends(auth_dependency),
    tenant_id: str = Depends(tenant_dependency),
    oauth_flow: OAuthFlowService = Depends(get_oauth_flow_service),
):
    """Start the OAuth flow; the client redirects the browser to `url`."""
    user_id = user_id_from_claims(claims)
    calendar_provider = _parse_provider(provider)

    try:
        url = oauth_flow.build_authorization_url(tenant_id, user_id, calendar_provider)
    except CalendarSyncError as e:
        logger.warning(
            "Cannot build authorization URL", provider=calendar_provider.value, error=str(e)
        )
        raise HTTPException(status_code=_http_status_for(e), detail=str(e)) from e

    return ConnectUrlResponse(url=url)


@router.get("/callback/{provider}")
async def oauth_callback(
    provider: str,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    oauth_flow: OAuthFlowService = Depends(get_oauth_flow_service),
    engine: CalendarSyncEngine = Depends(get_sync_engine),
    locks: SyncLockManager = Depends(get_sync_lock_manager),
):
    """
    OAuth redirect target (public). Stores the grant, runs a first sync and
    sends the browser back to the frontend with a status flag.
    """
    if error:
        logger.warning("OAuth provider returned error", provider=provider, error=error)
        return RedirectResponse(settings.calendar_redirect_url("error", error))

    try:
        calendar_provider = CalendarProvider.from_slug(provider)
    except ValueError:
        return RedirectResponse(settings.calendar_redirect_url("error", "unsupported_provider"))

    try:
        connection_id = await oauth_flow.handle_callback(calendar_provider, code, state)
    except CalendarSyncError as e:
        logger.error(
            "OAuth callback failed",
            provider=calendar_provider.value,
            state_preview=preview(state),
            error=str(e),
            error_code=e.error_code,
        )
        return RedirectResponse(settings.calendar_redirect_url("error", e.error_code))
    except Exception as e:
        logger.error(
            "Unexpected error in OAuth callback",
            provider=calendar_provider.value,
            error=str(e),
            error_type=type(e).__name__,
        )
        return RedirectResponse(settings.calendar_redirect_url("error", "internal_error"))

    try:
        await sync_with_lock(engine, locks, connection_id)
    except Exception as e:
        # The grant is stored; a failed first sync can be retried manually
        logger.warning(
            "Initial sync after OAuth callback failed",
            connection_id=connection_id,
            error=str(e),
            error_type=type(e).__name__,
        )

    return RedirectResponse(settings.calendar_redirect_url("success"))


@router.post("/sync/{connection_id}", response_model=SyncResultResponse)
async def sync_connection(
    connection_id: str,
    claims: dict = Depends(auth_dependency),
    tenant_id: str = Depends(tenant_dependency),
    connections: ConnectionService = Depends(get_connection_service),
    engine: CalendarSyncEngine = Depends(get_sync_engine),
    locks: SyncLockManager = Depends(get_sync_lock_manager),
):
    """Run one sync for a connection owned by the user and return its counters."""
    user_id = user_id_from_claims(claims)

    try:
        await connections.get_owned(tenant_id, user_id, connection_id)
        result = await sync_with_lock(engine, locks, connection_id, tenant_id=tenant_id)
    except CalendarSyncError as e:
        logger.warning(
            "Manual calendar sync failed",
            connection_id=connection_id,
            error=str(e),
            error_code=e.error_code,
        )
        raise HTTPException(status_code=_http_status_for(e), detail=str(e)) from e
    except Exception as e:
        logger.error(
            "Unexpected error during calendar sync",
            connection_id=connection_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Calendar sync failed"
        ) from e

    return SyncResultResponse.from_domain(result)


@router.delete("/connections/{connection_id}", response_model=DisconnectResponse)
async def disconnect_calendar(
    connection_id: str,
    claims: dict = Depends(auth_dependency),
    tenant_id: str = Depends(tenant_dependency),
    connections: ConnectionService = Depends(get_connection_service),
):
    user_id = user_id_from_claims(claims)

    try:
        provider_revoked = await connections.disconnect(tenant_id, user_id, connection_id)
    except CalendarSyncError as e:
        raise HTTPException(status_code=_http_status_for(e), detail=str(e)) from e
    except Exception as e:
        logger.error("Error disconnecting calendar", connection_id=connection_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to disconnect calendar",
        ) from e

    return DisconnectResponse(
        connection_id=connection_id,
        status=ConnectionStatus.REVOKED.value,
        provider_revoked=provider_revoked,
    )


# ----------------------------------------------------------------------
# Webhooks (public)
# ----------------------------------------------------------------------


async def _sync_from_webhook(
    engine: CalendarSyncEngine, locks: SyncLockManager, connection_id: str, provider: str
) -> str:
    """Sync failures never fail the webhook; providers retry non-2xx aggressively."""
    try:
        await sync_with_lock(engine, locks, connection_id)
        return "synced"
    except Exception as e:
        logger.warning(
            "Webhook-triggered sync failed",
            provider=provider,
            connection_id=connection_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return "sync_failed"


async def _handle_google_webhook(
    request: Request, engine: CalendarSyncEngine, locks: SyncLockManager
) -> WebhookAckResponse:
    channel_id = request.headers.get("x-goog-channel-id")
    resource_state = request.headers.get("x-goog-resource-state")
    if not channel_id or not resource_state:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing channel headers")

    expected_token = settings.GOOGLE_WEBHOOK_TOKEN
    if not expected_token and settings.environment != "development":
        logger.error("Google webhook rejected, GOOGLE_WEBHOOK_TOKEN not configured", channel_id=channel_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google webhook verification not configured",
        )
    if expected_token:
        if request.headers.get("x-goog-channel-token") != expected_token:
            logger.warning("Google webhook channel token mismatch", channel_id=channel_id)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid channel token")

    if resource_state == GOOGLE_STATE_SYNC:
        logger.info("Google watch channel confirmed", connection_id=channel_id)
        return WebhookAckResponse(action="acknowledged")

    if resource_state != GOOGLE_STATE_EXISTS:
        logger.info("Google webhook state ignored", resource_state=resource_state)
        return WebhookAckResponse(action="ignored")

    action = await _sync_from_webhook(engine, locks, channel_id, "google")
    return WebhookAckResponse(action=action)


def _connection_id_from_client_state(client_state: str | None) -> str | None:
    if not client_state:
        return None
    secret = settings.MICROSOFT_WEBHOOK_CLIENT_STATE
    if not secret:
        return client_state
    connection_id, _, provided = client_state.partition(":")
    if provided != secret:
        return None
    return connection_id or None


async def _handle_microsoft_webhook(
    request: Request, engine: CalendarSyncEngine, locks: SyncLockManager
):
    validation_token = request.query_params.get("validationToken")
    if validation_token:
        # Subscription handshake: echo the token back verbatim
        return PlainTextResponse(validation_token)

    try:
        body = await request.json()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from e

    notifications = body.get("value") if isinstance(body, dict) else None
    if not isinstance(notifications, list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing notifications")

    connection_ids: list[str] = []
    for notification in notifications:
        if not isinstance(notification, dict):
            continue
        connection_id = _connection_id_from_client_state(notification.get("clientState"))
        if connection_id is None:
            logger.warning("Microsoft notification with unrecognised clientState ignored")
            continue
        if connection_id not in connection_ids:
            connection_ids.append(connection_id)

    if not connection_ids:
        return WebhookAckResponse(action="ignored")

    actions = [await _sync_from_webhook(engine, locks, cid, "microsoft") for cid in connection_ids]
    return WebhookAckResponse(action="sync_failed" if "sync_failed" in actions else "synced")


@router.post("/webhook/{provider}")
async def calendar_webhook(
    provider: str,
    request: Request,
    engine: CalendarSyncEngine = Depends(get_sync_engine),
    locks: SyncLockManager = Depends(get_sync_lock_manager),
):
    """Provider push notification (public)."""
    calendar_provider = _parse_provider(provider)

    if calendar_provider == CalendarProvider.GOOGLE:
        return await _handle_google_webhook(request, engine, locks)
    return await _handle_microsoft_webhook(request, engine, locks)
