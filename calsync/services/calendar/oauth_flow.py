"""
OAuth connect flow for calendar providers.

The callback is a stateless browser redirect, so the connecting tenant and
user travel in the `state` parameter as base64-encoded JSON
`{"tenantId": ..., "userId": ...}`.
"""

import base64
import binascii
import json

from pydantic import ValidationError

from calsync.infrastructure.observability.logging import get_logger, preview
from calsync.models.domain.calendar_domain import CalendarProvider
from calsync.models.domain.oauth_domain import OAuthStatePayload
from calsync.repositories.connection_repository import ConnectionRepository
from calsync.services.calendar.errors import InvalidStateError, TokenExchangeError
from calsync.services.calendar.providers.registry import ProviderRegistry, get_adapter
from calsync.services.employee_service import EmployeeService

logger = get_logger(__name__)


def encode_state(tenant_id: str, user_id: str) -> str:
    payload = json.dumps({"tenantId": tenant_id, "userId": user_id}, separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_state(state: str | None) -> OAuthStatePayload:
    """
    Recover the connect intent from a callback `state`.

    Raises:
        InvalidStateError: missing, truncated, non-JSON or incomplete state
    """
    if not state:
        raise InvalidStateError("OAuth state parameter missing")
    try:
        raw = base64.b64decode(state, validate=True)
        data = json.loads(raw.decode("utf-8"))
        if not isinstance(data, dict):
            raise ValueError("state payload is not an object")
        return OAuthStatePayload.model_validate(data)
    except (binascii.Error, UnicodeDecodeError, ValueError, ValidationError) as e:
        logger.warning("Invalid OAuth state", state_preview=preview(state), error=str(e))
        raise InvalidStateError("OAuth state parameter is invalid") from e


class OAuthFlowService:
    def __init__(
        self,
        providers: ProviderRegistry,
        connections: ConnectionRepository,
        employees: EmployeeService,
    ):
        self.providers = providers
        self.connections = connections
        self.employees = employees

    def build_authorization_url(
        self, tenant_id: str, user_id: str, provider: CalendarProvider
    ) -> str:
        adapter = get_adapter(self.providers, provider)
        state = encode_state(tenant_id, user_id)
        return adapter.build_authorization_url(state)

    async def handle_callback(
        self, provider: CalendarProvider, code: str | None, state: str | None
    ) -> str:
        """
        Complete an OAuth grant and upsert the connection.

        Returns:
            str: id of the created or updated connection

        Raises:
            InvalidStateError: state could not be decoded
            TokenExchangeError: code missing or rejected by the provider
            ProfileResolutionError: provider account id unavailable
        """
        intent = decode_state(state)
        if not code:
            raise TokenExchangeError("Authorization code missing from callback")

        adapter = get_adapter(self.providers, provider)
        tokens = await adapter.exchange_code(code)
        profile = await adapter.resolve_account_profile(tokens.access_token)

        try:
            await self.employees.ensure_employee(intent.tenant_id, intent.user_id, profile)
        except Exception as e:
            logger.warning(
                "Employee auto-provisioning failed during OAuth callback",
                tenant_id=intent.tenant_id,
                user_id=intent.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )

        existing = await self.connections.find_by_owner(intent.tenant_id, intent.user_id, provider)
        if existing:
            connection = await self.connections.update_oauth_grant(
                existing.id, profile.account_id, tokens
            )
            logger.info(
                "Calendar connection re-authorized",
                connection_id=connection.id,
                tenant_id=intent.tenant_id,
                provider=provider.value,
            )
        else:
            connection = await self.connections.insert(
                intent.tenant_id, intent.user_id, provider, profile.account_id, tokens
            )

        return connection.id
