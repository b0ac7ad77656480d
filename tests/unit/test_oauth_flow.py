import base64
import json
from urllib.parse import parse_qs, urlparse

import pytest

from calsync.models.domain.calendar_domain import CalendarProvider, ConnectionStatus
from calsync.models.domain.oauth_domain import AccountProfile, TokenSet
from calsync.services.calendar.errors import InvalidStateError, TokenExchangeError
from calsync.services.calendar.oauth_flow import decode_state, encode_state
from calsync.services.employee_service import derive_employee_names

TENANT_ID = "tenant-1"
USER_ID = "user-123"


class TestOAuthState:
    def test_round_trip(self):
        state = encode_state(TENANT_ID, USER_ID)

        intent = decode_state(state)

        assert intent.tenant_id == TENANT_ID
        assert intent.user_id == USER_ID

    def test_state_is_base64_json(self):
        decoded = json.loads(base64.b64decode(encode_state(TENANT_ID, USER_ID)))

        assert decoded == {"tenantId": TENANT_ID, "userId": USER_ID}

    @pytest.mark.parametrize(
        "state",
        [
            None,
            "",
            "not base64 at all!",
            encode_state(TENANT_ID, USER_ID)[:-6],
            base64.b64encode(b"plain text").decode(),
            base64.b64encode(b'["tenant-1", "user-123"]').decode(),
            base64.b64encode(b'{"tenantId": "tenant-1"}').decode(),
            base64.b64encode(b'{"tenantId": "", "userId": "user-123"}').decode(),
            base64.b64encode(b'{"tenant_id": "tenant-1", "user_id": "user-123"}').decode(),
        ],
    )
    def test_invalid_state_rejected(self, state):
        with pytest.raises(InvalidStateError):
            decode_state(state)


class TestEmployeeNames:
    def test_profile_names_used(self):
        profile = AccountProfile(account_id="a", given_name="Ada", family_name="Lovelace")

        assert derive_employee_names(profile) == ("Ada", "Lovelace")

    def test_display_name_split_when_parts_missing(self):
        profile = AccountProfile(account_id="a", display_name="Grace Brewster Hopper")

        assert derive_employee_names(profile) == ("Grace", "Brewster Hopper")

    def test_placeholders_when_nothing_known(self):
        assert derive_employee_names(None) == ("Calendar", "User")
        assert derive_employee_names(AccountProfile(account_id="a", given_name="Ada")) == ("Ada", "User")


def test_authorization_url_carries_encoded_intent(oauth_flow):
    url = oauth_flow.build_authorization_url(TENANT_ID, USER_ID, CalendarProvider.GOOGLE)

    state = parse_qs(urlparse(url).query)["state"][0]
    assert decode_state(state).user_id == USER_ID


@pytest.mark.asyncio
async def test_callback_creates_connection_and_employee(oauth_flow, connection_repo, employee_repo, fake_adapter):
    state = encode_state(TENANT_ID, USER_ID)

    connection_id = await oauth_flow.handle_callback(CalendarProvider.GOOGLE, "code-1", state)

    stored = connection_repo.rows[connection_id]
    assert stored.tenant_id == TENANT_ID
    assert stored.user_id == USER_ID
    assert stored.provider_account_id == "google-account-1"
    assert stored.access_token == "new-access"
    assert stored.refresh_token == "new-refresh"
    assert fake_adapter.exchanged_codes == ["code-1"]

    assert len(employee_repo.rows) == 1
    assert (employee_repo.rows[0].first_name, employee_repo.rows[0].last_name) == ("Ada", "Lovelace")


@pytest.mark.asyncio
async def test_repeat_callback_updates_existing_connection(oauth_flow, connection_repo, fake_adapter):
    existing = connection_repo.add(status=ConnectionStatus.ERROR, refresh_token="old-refresh")
    fake_adapter.tokens = TokenSet(access_token="second-access")

    connection_id = await oauth_flow.handle_callback(
        CalendarProvider.GOOGLE, "code-2", encode_state(TENANT_ID, USER_ID)
    )

    assert connection_id == existing.id
    assert len(connection_repo.rows) == 1
    stored = connection_repo.rows[existing.id]
    assert stored.access_token == "second-access"
    assert stored.refresh_token == "old-refresh"
    assert stored.status == ConnectionStatus.ACTIVE


@pytest.mark.asyncio
async def test_callback_without_code_fails(oauth_flow, connection_repo):
    with pytest.raises(TokenExchangeError):
        await oauth_flow.handle_callback(CalendarProvider.GOOGLE, None, encode_state(TENANT_ID, USER_ID))

    assert connection_repo.rows == {}


@pytest.mark.asyncio
async def test_callback_with_tampered_state_fails_before_exchange(oauth_flow, fake_adapter):
    with pytest.raises(InvalidStateError):
        await oauth_flow.handle_callback(CalendarProvider.GOOGLE, "code-1", "%%%")

    assert fake_adapter.exchanged_codes == []


@pytest.mark.asyncio
async def test_employee_failure_does_not_block_connection(oauth_flow, connection_repo, employee_repo):
    employee_repo.fail = True

    connection_id = await oauth_flow.handle_callback(
        CalendarProvider.GOOGLE, "code-1", encode_state(TENANT_ID, USER_ID)
    )

    assert connection_id in connection_repo.rows
    assert employee_repo.rows == []
