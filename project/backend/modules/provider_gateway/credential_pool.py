"""
Per-provider credential pools with quarantine.

Keys that fail with an auth or rate-limit error are quarantined so later calls
rotate to the remaining keys. When every key of a provider is quarantined the
pool resets that provider and keeps serving (fail-open), so a temporary
upstream problem can never disable a provider for the rest of the process.
"""

import random
import threading
from typing import Dict, List, Mapping, Optional, Sequence

from shared.logging import get_logger
from shared.models.provider import Credential, CredentialStatus, FailureClass

logger = get_logger("provider_gateway.credential_pool")

QUARANTINE_CLASSES = {FailureClass.AUTH_OR_KEY, FailureClass.RATE_LIMIT}


class CredentialPool:
    """
    Thread-safe store of provider credentials.

    One instance is built at start-up and shared by every request.
    """

    def __init__(
        self,
        credentials: Mapping[str, Sequence[str]],
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            credentials: Mapping of provider name to secrets, in key-list order
            rng: Random source for key selection (injectable for tests)
        """
        self._lock = threading.Lock()
        self._rng = rng or random.Random()
        self._credentials: Dict[str, List[Credential]] = {
            provider: [
                Credential(provider=provider, index=index, secret=secret)
                for index, secret in enumerate(secrets)
            ]
            for provider, secrets in credentials.items()
        }

    @property
    def providers(self) -> List[str]:
        return list(self._credentials.keys())

    def total(self, provider: str) -> int:
        """Number of credentials configured for a provider (0 if unknown)."""
        return len(self._credentials.get(provider, []))

    def next_credential(self, provider: str) -> Optional[Credential]:
        """
        Pick a credential for the next call.

        Args:
            provider: Provider name

        Returns:
            A random non-quarantined credential, any credential after a
            fail-open reset, or None if the provider has no credentials
        """
        with self._lock:
            pool = self._credentials.get(provider)
            if not pool:
                return None

            eligible = [credential for credential in pool if not credential.quarantined]
            if not eligible:
                for credential in pool:
                    credential.quarantined = False
                eligible = list(pool)
                logger.warning(
                    "All credentials quarantined, resetting provider pool",
                    extra={"provider": provider, "total": len(pool)}
                )

            credential = self._rng.choice(eligible)
            logger.debug(
                "Selected credential",
                extra={
                    "provider": provider,
                    "credential_index": credential.index,
                    "key_preview": credential.preview,
                    "available": len(eligible),
                    "total": len(pool),
                }
            )
            return credential

    def report_failure(
        self,
        provider: str,
        credential: Optional[Credential],
        failure_class: FailureClass,
    ) -> bool:
        """
        Record a failed call made with `credential`.

        Auth/key and rate-limit failures quarantine the credential; server and
        unknown failures leave it eligible. Reporting twice equals reporting once.

        Returns:
            True if the credential is quarantined after this call
        """
        if credential is None or failure_class not in QUARANTINE_CLASSES:
            return False

        with self._lock:
            pool = self._credentials.get(provider, [])
            if credential.index >= len(pool):
                return False
            stored = pool[credential.index]
            if not stored.quarantined:
                stored.quarantined = True
                logger.warning(
                    "Quarantined credential",
                    extra={
                        "provider": provider,
                        "credential_index": stored.index,
                        "key_preview": stored.preview,
                        "failure_class": failure_class.value,
                    }
                )
            return True

    def status(self, provider: str) -> CredentialStatus:
        with self._lock:
            pool = self._credentials.get(provider, [])
            quarantined = sum(1 for credential in pool if credential.quarantined)
            return CredentialStatus(total=len(pool), quarantined=quarantined)

    def health(self) -> Dict[str, CredentialStatus]:
        """Status of every provider known to the pool."""
        return {provider: self.status(provider) for provider in self.providers}

    def reset(self, provider: Optional[str] = None) -> None:
        """Clear quarantine for one provider, or for all providers when None."""
        with self._lock:
            names = [provider] if provider is not None else list(self._credentials.keys())
            for name in names:
                for credential in self._credentials.get(name, []):
                    credential.quarantined = False
        logger.info("Reset credential quarantine", extra={"provider": provider or "all"})

    def credentials(self, provider: str) -> List[Credential]:
        """Snapshot of a provider's credentials (used by key probing)."""
        with self._lock:
            return [credential.model_copy() for credential in self._credentials.get(provider, [])]
