import random
import threading

from modules.provider_gateway.credential_pool import CredentialPool
from shared.models.provider import FailureClass


def test_next_credential_returns_none_without_keys(make_pool):
    pool = make_pool({"alpha": []})
    assert pool.next_credential("alpha") is None
    assert pool.next_credential("unknown") is None


def test_quarantined_credentials_are_not_selected(make_pool):
    pool = make_pool({"alpha": ["k0", "k1", "k2"]})
    first = pool.next_credential("alpha")
    pool.report_failure("alpha", first, FailureClass.AUTH_OR_KEY)

    for _ in range(30):
        assert pool.next_credential("alpha").index != first.index


def test_rate_limit_quarantines_but_server_error_does_not(make_pool):
    pool = make_pool({"alpha": ["k0", "k1"]})
    cred = pool.next_credential("alpha")

    assert pool.report_failure("alpha", cred, FailureClass.SERVER_ERROR) is False
    assert pool.report_failure("alpha", cred, FailureClass.UNKNOWN) is False
    assert pool.status("alpha").quarantined == 0

    assert pool.report_failure("alpha", cred, FailureClass.RATE_LIMIT) is True
    assert pool.status("alpha").quarantined == 1


def test_report_failure_is_idempotent(make_pool):
    pool = make_pool({"alpha": ["k0", "k1", "k2"]})
    cred = pool.next_credential("alpha")

    pool.report_failure("alpha", cred, FailureClass.AUTH_OR_KEY)
    pool.report_failure("alpha", cred, FailureClass.AUTH_OR_KEY)

    status = pool.status("alpha")
    assert status.total == 3
    assert status.quarantined == 1
    assert status.available == 2


def test_fail_open_reset_when_every_key_is_quarantined(make_pool):
    pool = make_pool({"alpha": ["k0", "k1"]})
    for cred in pool.credentials("alpha"):
        pool.report_failure("alpha", cred, FailureClass.AUTH_OR_KEY)
    assert pool.status("alpha").quarantined == 2

    cred = pool.next_credential("alpha")

    assert cred is not None
    assert pool.status("alpha").quarantined == 0


def test_reset_single_provider_and_all(make_pool):
    pool = make_pool({"alpha": ["a0", "a1"], "beta": ["b0", "b1"]})
    pool.report_failure("alpha", pool.credentials("alpha")[0], FailureClass.RATE_LIMIT)
    pool.report_failure("beta", pool.credentials("beta")[0], FailureClass.RATE_LIMIT)

    pool.reset("alpha")
    assert pool.status("alpha").quarantined == 0
    assert pool.status("beta").quarantined == 1

    pool.reset()
    assert pool.status("beta").quarantined == 0


def test_health_covers_every_provider(make_pool):
    pool = make_pool({"alpha": ["a0"], "beta": []})
    health = pool.health()
    assert set(health) == {"alpha", "beta"}
    assert health["beta"].total == 0


def test_secret_not_in_repr_or_dump(make_pool):
    pool = make_pool({"alpha": ["sk-super-secret-value"]})
    cred = pool.next_credential("alpha")

    assert "sk-super-secret-value" not in repr(cred)
    assert "secret" not in cred.model_dump()
    assert cred.preview == "sk-sup..."


def test_concurrent_reporting_keeps_counts_consistent():
    pool = CredentialPool({"alpha": [f"k{i}" for i in range(50)]}, rng=random.Random(1))
    creds = pool.credentials("alpha")

    def worker(offset: int) -> None:
        for cred in creds[offset::4]:
            pool.report_failure("alpha", cred, FailureClass.RATE_LIMIT)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert pool.status("alpha").quarantined == 50
