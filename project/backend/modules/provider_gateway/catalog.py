"""
Ordered provider catalog.
"""

from typing import Dict, Iterable, List, Optional

from shared.models.provider import TIER_ORDER, ProviderSpec

from .config import PROVIDER_CONFIGS


class ProviderCatalog:
    """Providers sorted by tier, then by priority inside the tier."""

    def __init__(
        self,
        specs: Optional[Iterable[ProviderSpec]] = None,
        enabled: Optional[List[str]] = None,
    ):
        """
        Args:
            specs: Provider specs (defaults to the built-in catalog)
            enabled: Optional allow-list of provider names; empty means all
        """
        specs = list(specs if specs is not None else PROVIDER_CONFIGS.values())
        if enabled:
            allowed = {name.lower() for name in enabled}
            specs = [spec for spec in specs if spec.name in allowed]

        self._specs: List[ProviderSpec] = sorted(
            specs, key=lambda spec: (TIER_ORDER.index(spec.tier), spec.priority)
        )
        self._by_name: Dict[str, ProviderSpec] = {spec.name: spec for spec in self._specs}

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def names(self) -> List[str]:
        return [spec.name for spec in self._specs]

    def get(self, name: str) -> Optional[ProviderSpec]:
        return self._by_name.get(name)

    def ordered(self, preferred: Optional[str] = None) -> List[ProviderSpec]:
        """
        Providers in attempt order.

        A known `preferred` provider is moved to the front; the rest keep their
        relative order. Unknown names are ignored.
        """
        if preferred and preferred in self._by_name:
            head = self._by_name[preferred]
            return [head] + [spec for spec in self._specs if spec.name != preferred]
        return list(self._specs)
