import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from calsync.dependencies import (
    get_connection_service,
    get_oauth_flow_service,
    get_suggestion_service,
    get_sync_engine,
    get_sync_lock_manager,
)
from calsync.routes import calendar, time_entries


@pytest.fixture
def api_app(
    apply_auth_override,
    sync_engine,
    lock_manager,
    oauth_flow,
    connection_service,
    suggestion_service,
):
    app = FastAPI()
    app.include_router(calendar.router)
    app.include_router(time_entries.router)

    apply_auth_override(app)
    app.dependency_overrides[get_sync_engine] = lambda: sync_engine
    app.dependency_overrides[get_sync_lock_manager] = lambda: lock_manager
    app.dependency_overrides[get_oauth_flow_service] = lambda: oauth_flow
    app.dependency_overrides[get_connection_service] = lambda: connection_service
    app.dependency_overrides[get_suggestion_service] = lambda: suggestion_service
    return app


@pytest.fixture
def client(api_app):
    return TestClient(api_app)
