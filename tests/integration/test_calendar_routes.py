from urllib.parse import parse_qs, urlparse

import pytest

from calsync.auth.verify import auth_dependency
from calsync.models.domain.calendar_domain import ConnectionStatus
from calsync.services.calendar.errors import ProviderUnavailableError
from calsync.services.calendar.oauth_flow import decode_state, encode_state
from calsync.services.calendar.providers.base import EventPage

TENANT_HEADERS = {"X-Tenant-ID": "tenant-1"}


def _redirect_params(response) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(response.headers["location"]).query).items()}


def test_list_connections_never_exposes_tokens(client, connection_repo):
    mine = connection_repo.add(sync_cursor="C1")
    connection_repo.add(user_id="user-other")

    response = client.get("/calendar/connections", headers=TENANT_HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["total_count"] == 1
    assert data["connections"][0]["id"] == mine.id
    assert data["connections"][0]["provider"] == "GOOGLE"
    assert "access_token" not in data["connections"][0]
    assert "sync_cursor" not in data["connections"][0]


def test_tenant_context_required(client):
    response = client.get("/calendar/connections")

    assert response.status_code == 400


def test_tenant_read_from_token_claims(client, api_app, connection_repo):
    connection_repo.add()
    api_app.dependency_overrides[auth_dependency] = lambda: {
        "sub": "user-123",
        "app_metadata": {"tenant_id": "tenant-1"},
    }

    response = client.get("/calendar/connections")

    assert response.status_code == 200
    assert response.json()["total_count"] == 1


def test_header_matching_token_tenant_is_accepted(client, api_app, connection_repo):
    connection_repo.add()
    api_app.dependency_overrides[auth_dependency] = lambda: {
        "sub": "user-123",
        "app_metadata": {"tenant_id": "tenant-1"},
    }

    response = client.get("/calendar/connections", headers=TENANT_HEADERS)

    assert response.status_code == 200
    assert response.json()["total_count"] == 1


@pytest.mark.parametrize(
    "path",
    ["/calendar/connections", "/calendar/connect/google", "/time-entries/suggestions"],
)
def test_header_naming_another_tenant_is_forbidden(client, api_app, path):
    api_app.dependency_overrides[auth_dependency] = lambda: {
        "sub": "user-123",
        "app_metadata": {"tenant_id": "tenant-A"},
    }

    response = client.get(
        path,
        params={"startDate": "2025-01-06", "endDate": "2025-01-06"},
        headers={"X-Tenant-ID": "tenant-B"},
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Tenant ID mismatch between Token and Header"


def test_connect_returns_authorization_url(client):
    response = client.get("/calendar/connect/google", headers=TENANT_HEADERS)

    assert response.status_code == 200
    state = parse_qs(urlparse(response.json()["url"]).query)["state"][0]
    intent = decode_state(state)
    assert (intent.tenant_id, intent.user_id) == ("tenant-1", "user-123")


def test_connect_unknown_provider(client):
    response = client.get("/calendar/connect/yahoo", headers=TENANT_HEADERS)

    assert response.status_code == 400


def test_callback_stores_connection_and_runs_first_sync(client, connection_repo, fake_adapter):
    fake_adapter.script = [EventPage(events=[], next_sync_cursor="C1")]

    response = client.get(
        "/calendar/callback/google",
        params={"code": "auth-code", "state": encode_state("tenant-1", "user-123")},
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert _redirect_params(response) == {"status": "success"}
    (connection,) = connection_repo.rows.values()
    assert connection.sync_cursor == "C1"
    assert fake_adapter.calls[0]["cursor"] is None


def test_callback_succeeds_even_if_first_sync_fails(client, connection_repo, fake_adapter):
    fake_adapter.script = [ProviderUnavailableError("Calendar API unavailable")]

    response = client.get(
        "/calendar/callback/google",
        params={"code": "auth-code", "state": encode_state("tenant-1", "user-123")},
        follow_redirects=False,
    )

    assert _redirect_params(response)["status"] == "success"
    assert len(connection_repo.rows) == 1


def test_callback_relays_provider_error(client, connection_repo):
    response = client.get(
        "/calendar/callback/google",
        params={"error": "access_denied"},
        follow_redirects=False,
    )

    assert _redirect_params(response) == {"status": "error", "reason": "access_denied"}
    assert connection_repo.rows == {}


def test_callback_rejects_tampered_state(client, connection_repo):
    response = client.get(
        "/calendar/callback/google",
        params={"code": "auth-code", "state": "bm90LWpzb24="},
        follow_redirects=False,
    )

    assert _redirect_params(response) == {"status": "error", "reason": "invalid_state"}
    assert connection_repo.rows == {}


def test_callback_unknown_provider(client):
    response = client.get(
        "/calendar/callback/yahoo",
        params={"code": "auth-code", "state": encode_state("tenant-1", "user-123")},
        follow_redirects=False,
    )

    assert _redirect_params(response) == {"status": "error", "reason": "unsupported_provider"}


def test_manual_sync_returns_counters(client, connection_repo, fake_adapter):
    connection = connection_repo.add(sync_cursor="C0")
    fake_adapter.script = [EventPage(events=[], next_sync_cursor="C1")]

    response = client.post(f"/calendar/sync/{connection.id}", headers=TENANT_HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["mode"] == "cursor"
    assert data["pages"] == 1
    assert data["next_cursor_stored"] is True


def test_manual_sync_of_foreign_connection_is_not_found(client, connection_repo, fake_adapter):
    connection = connection_repo.add(user_id="user-other")

    response = client.post(f"/calendar/sync/{connection.id}", headers=TENANT_HEADERS)

    assert response.status_code == 404
    assert fake_adapter.calls == []


def test_manual_sync_while_sync_running_conflicts(client, connection_repo, fake_redis):
    connection = connection_repo.add()
    fake_redis.store[f"calendar_sync_lock:{connection.id}"] = "other-worker"

    response = client.post(f"/calendar/sync/{connection.id}", headers=TENANT_HEADERS)

    assert response.status_code == 409


def test_manual_sync_provider_outage_is_bad_gateway(client, connection_repo, fake_adapter, fake_redis):
    connection = connection_repo.add()
    fake_adapter.script = [ProviderUnavailableError("Calendar API unavailable")]

    response = client.post(f"/calendar/sync/{connection.id}", headers=TENANT_HEADERS)

    assert response.status_code == 502
    assert fake_redis.store == {}


def test_disconnect(client, connection_repo, fake_adapter):
    connection = connection_repo.add()

    response = client.delete(f"/calendar/connections/{connection.id}", headers=TENANT_HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "connection_id": connection.id,
        "status": "REVOKED",
        "provider_revoked": True,
    }
    assert connection_repo.rows[connection.id].status == ConnectionStatus.REVOKED


def test_disconnect_unknown_connection(client):
    response = client.delete("/calendar/connections/missing", headers=TENANT_HEADERS)

    assert response.status_code == 404
