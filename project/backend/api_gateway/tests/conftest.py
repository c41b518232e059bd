import json
import random

import pytest
from fastapi.testclient import TestClient

from api_gateway.dependencies import get_billing_ledger, get_provider_gateway
from api_gateway.main import app
from modules.provider_gateway.catalog import ProviderCatalog
from modules.provider_gateway.credential_pool import CredentialPool
from modules.provider_gateway.failover import RetryPolicy
from modules.provider_gateway.gateway import ProviderGateway
from shared.billing import InMemoryBillingLedger
from shared.config import settings
from shared.errors import ProviderCallError
from shared.models.provider import ProviderFamily, ProviderSpec, ProviderTier

SCENE_RESPONSE = json.dumps({"title": "Barn Find", "scenes": [{"scene_number": 1, "description": "Truck in barn"}]})


class StubClient:
    """Provider client answering per secret: an exception is raised, anything else returned."""

    def __init__(self, behaviour=None, default=SCENE_RESPONSE):
        self.behaviour = behaviour or {}
        self.default = default
        self.calls = 0

    async def call(self, credential, messages, max_tokens=None):
        self.calls += 1
        outcome = self.behaviour.get(credential.secret, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _spec(name, tier, priority):
    return ProviderSpec(
        name=name,
        display_name=name.title(),
        tier=tier,
        priority=priority,
        family=ProviderFamily.OPENAI_COMPATIBLE,
        base_url=f"https://{name}.example/v1",
        model=f"{name}-model",
        key_prefix=f"{name.upper()}_API_KEY",
    )


@pytest.fixture()
def build_gateway():
    def _build(credentials, clients):
        catalog = ProviderCatalog([
            _spec("alpha", ProviderTier.HIGH_PERFORMANCE, 1),
            _spec("beta", ProviderTier.STABLE, 1),
        ])
        pool = CredentialPool(credentials, rng=random.Random(1))
        policy = RetryPolicy(rate_limit_delay=0.0, auth_delay=0.0, server_error_delay=0.0, unknown_delay=0.0)
        return ProviderGateway(catalog, pool, policy, clients=clients)

    return _build


@pytest.fixture()
def stub_client():
    return StubClient


@pytest.fixture()
def call_error():
    def _error(status_code, provider="alpha"):
        return ProviderCallError(f"HTTP {status_code}", provider=provider, status_code=status_code)

    return _error


@pytest.fixture()
def ledger():
    return InMemoryBillingLedger(balance=100)


@pytest.fixture()
def client_for(monkeypatch, ledger):
    """TestClient wired to the given gateway and the ledger fixture."""
    monkeypatch.setattr(settings, "script_batch_delay", 0.0)

    def _client(gateway):
        app.dependency_overrides[get_provider_gateway] = lambda: gateway
        app.dependency_overrides[get_billing_ledger] = lambda: ledger
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()
