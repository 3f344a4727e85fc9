"""API test wiring: the real app with fake infrastructure behind its dependencies."""

import pytest
from fastapi.testclient import TestClient

from concierge.api.deps import get_authenticator, get_concierge_service
from concierge.domain.orchestrator import ConciergeOrchestrator, OrchestratorLimits
from concierge.service.concierge import ConciergeService
from tests.fakes import FakeAuthenticator, FakeGateway, ScriptedModel, text

AUTH = {"Authorization": "Bearer token-1"}
OTHER_AUTH = {"Authorization": "Bearer token-2"}


@pytest.fixture
def model() -> ScriptedModel:
    return ScriptedModel(text("Happy to help! Where would you like to go tonight?"))


@pytest.fixture
def client(store, registry, gateway: FakeGateway, model: ScriptedModel, now):
    """Create FastAPI test client with faked Redis, datastore, auth and model."""
    from concierge.main import app

    service = ConciergeService(
        store,
        ConciergeOrchestrator(model.model, registry, OrchestratorLimits(model_retry_backoff_seconds=0)),
        clock=lambda tz: now.astimezone(tz),
        mirror=gateway,
    )
    app.dependency_overrides[get_concierge_service] = lambda: service
    app.dependency_overrides[get_authenticator] = lambda: FakeAuthenticator(
        {"token-1": "member-1", "token-2": "member-2"}
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
