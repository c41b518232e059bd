import random
from typing import Dict, List

import pytest

from modules.provider_gateway.catalog import ProviderCatalog
from modules.provider_gateway.credential_pool import CredentialPool
from modules.provider_gateway.failover import RetryPolicy
from shared.errors import ProviderCallError
from shared.models.provider import FailureClass, ProviderFamily, ProviderSpec, ProviderTier


def _spec(name: str, tier: ProviderTier, priority: int) -> ProviderSpec:
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
def specs() -> List[ProviderSpec]:
    return [
        _spec("gamma", ProviderTier.FALLBACK, 1),
        _spec("alpha", ProviderTier.HIGH_PERFORMANCE, 1),
        _spec("beta", ProviderTier.STABLE, 1),
        _spec("alpha2", ProviderTier.HIGH_PERFORMANCE, 2),
    ]


@pytest.fixture()
def catalog(specs) -> ProviderCatalog:
    return ProviderCatalog(specs)


@pytest.fixture()
def no_wait_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts_per_provider=3,
        rate_limit_delay=0.0,
        auth_delay=0.0,
        server_error_delay=0.0,
        unknown_delay=0.0,
    )


@pytest.fixture()
def make_pool():
    def _make(credentials: Dict[str, List[str]]) -> CredentialPool:
        return CredentialPool(credentials, rng=random.Random(7))

    return _make


class ScriptedWork:
    """
    Work function that fails with scripted failure classes, then succeeds.

    `script` maps provider name to a list of outcomes; each outcome is a
    FailureClass (raise) or a string (return).
    """

    def __init__(self, pool: CredentialPool, script: Dict[str, list]):
        self.pool = pool
        self.script = {name: list(outcomes) for name, outcomes in script.items()}
        self.calls: List[str] = []

    async def __call__(self, spec: ProviderSpec) -> str:
        self.calls.append(spec.name)
        credential = self.pool.next_credential(spec.name)
        outcomes = self.script.get(spec.name, [])
        outcome = outcomes.pop(0) if outcomes else FailureClass.SERVER_ERROR
        if isinstance(outcome, FailureClass):
            raise ProviderCallError(
                f"{spec.name} failed",
                provider=spec.name,
                failure_class=outcome,
                credential=credential,
            )
        return outcome


@pytest.fixture()
def scripted_work():
    return ScriptedWork
