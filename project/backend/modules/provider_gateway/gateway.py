"""
Provider gateway.

Facade used by generation modules: draws a credential, calls the provider's
client and lets the failover executor handle retries and rotation.
"""

import asyncio
from typing import Any, Dict, List, Optional

from shared.config import settings
from shared.errors import ProviderCallError, ValidationError
from shared.logging import get_logger
from shared.models.provider import ProviderSpec

from .catalog import ProviderCatalog
from .classifier import classify_failure
from .config import PROBE_MAX_TOKENS, PROBE_PROMPT
from .credential_pool import CredentialPool
from .credential_source import load_credentials
from .failover import FailoverExecutor, FailoverResult, RetryPolicy
from .providers import Messages, build_client

logger = get_logger("provider_gateway")


class ProviderGateway:
    """Text generation across every configured provider."""

    def __init__(
        self,
        catalog: ProviderCatalog,
        pool: CredentialPool,
        policy: Optional[RetryPolicy] = None,
        clients: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            catalog: Ordered provider catalog
            pool: Shared credential pool
            policy: Retry policy (defaults to settings)
            clients: Provider name -> client override (built lazily otherwise)
        """
        self.catalog = catalog
        self.pool = pool
        self.executor = FailoverExecutor(catalog, pool, policy)
        self._clients: Dict[str, Any] = dict(clients or {})

    @classmethod
    def from_settings(cls, environ: Optional[Dict[str, str]] = None) -> "ProviderGateway":
        """Build a gateway from environment credentials and settings."""
        catalog = ProviderCatalog(enabled=settings.enabled_provider_list)
        pool = CredentialPool(load_credentials(environ))
        logger.info(
            "Provider gateway ready",
            extra={
                "providers": ",".join(catalog.names),
                "providers_with_keys": sum(1 for name in catalog.names if pool.total(name) > 0),
            }
        )
        return cls(catalog, pool)

    def client_for(self, spec: ProviderSpec) -> Any:
        if spec.name not in self._clients:
            self._clients[spec.name] = build_client(spec)
        return self._clients[spec.name]

    async def _call_once(self, spec: ProviderSpec, messages: Messages, max_tokens: Optional[int]) -> str:
        credential = self.pool.next_credential(spec.name)
        if credential is None:
            raise ProviderCallError(f"No credentials for {spec.name}", provider=spec.name)

        try:
            return await self.client_for(spec).call(credential, messages, max_tokens=max_tokens)
        except ProviderCallError as e:
            e.credential = credential
            raise
        except (asyncio.CancelledError, ValidationError):
            raise
        except Exception as e:
            raise ProviderCallError(
                f"{spec.name} call failed: {type(e).__name__}: {str(e)}",
                provider=spec.name,
                failure_class=classify_failure(e),
                credential=credential,
            ) from e

    async def generate_text(
        self,
        messages: Messages,
        preferred_provider: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        max_tokens: Optional[int] = None,
    ) -> FailoverResult:
        """
        Generate text with failover.

        Returns:
            FailoverResult whose value is the raw completion text

        Raises:
            ProvidersExhaustedError: Every provider failed
            GenerationCancelledError: cancel_event fired during backoff
        """

        async def work(spec: ProviderSpec) -> str:
            return await self._call_once(spec, messages, max_tokens)

        return await self.executor.run(work, preferred_provider=preferred_provider, cancel_event=cancel_event)

    async def aclose(self) -> None:
        """Release provider clients that hold connection pools."""
        for client in self._clients.values():
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()

    def health(self) -> Dict[str, Dict[str, Any]]:
        """Per-provider credential status for every catalog provider."""
        report: Dict[str, Dict[str, Any]] = {}
        for spec in self.catalog.ordered():
            status = self.pool.status(spec.name)
            report[spec.name] = {
                "display_name": spec.display_name,
                "tier": spec.tier.value,
                "total": status.total,
                "quarantined": status.quarantined,
                "available": status.available,
            }
        return report

    def reset(self, provider: Optional[str] = None) -> None:
        """Operator reset of credential quarantine."""
        if provider is not None and provider not in self.catalog:
            raise ValidationError(f"Unknown provider: {provider}")
        self.pool.reset(provider)

    async def probe_credentials(self, provider: str) -> List[Dict[str, Any]]:
        """
        Send a tiny request with every credential of a provider.

        Failing credentials are reported to the pool like regular failures.

        Returns:
            One entry per credential: index, key preview, ok, failure class, error
        """
        spec = self.catalog.get(provider)
        if spec is None:
            raise ValidationError(f"Unknown provider: {provider}")

        messages = [{"role": "user", "content": PROBE_PROMPT}]
        client = self.client_for(spec)
        results: List[Dict[str, Any]] = []

        for credential in self.pool.credentials(provider):
            entry: Dict[str, Any] = {
                "index": credential.index,
                "key_preview": credential.preview,
                "ok": False,
                "failure_class": None,
                "error": None,
            }
            try:
                await client.call(credential, messages, max_tokens=PROBE_MAX_TOKENS)
                entry["ok"] = True
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failure_class = classify_failure(e)
                self.pool.report_failure(provider, credential, failure_class)
                entry["failure_class"] = failure_class.value
                entry["error"] = str(e)[:300]
            results.append(entry)

        logger.info(
            "Probed provider credentials",
            extra={
                "provider": provider,
                "total": len(results),
                "working": sum(1 for entry in results if entry["ok"]),
            }
        )
        return results
