from modules.provider_gateway.catalog import ProviderCatalog
from modules.provider_gateway.config import PROVIDER_CONFIGS


def test_ordered_by_tier_then_priority(catalog):
    assert [spec.name for spec in catalog.ordered()] == ["alpha", "alpha2", "beta", "gamma"]


def test_preferred_provider_moves_to_front(catalog):
    names = [spec.name for spec in catalog.ordered("beta")]
    assert names == ["beta", "alpha", "alpha2", "gamma"]


def test_unknown_preferred_provider_is_ignored(catalog):
    assert [spec.name for spec in catalog.ordered("nope")] == catalog.names


def test_enabled_allow_list_filters(specs):
    catalog = ProviderCatalog(specs, enabled=["GAMMA", "alpha"])
    assert catalog.names == ["alpha", "gamma"]
    assert "beta" not in catalog


def test_default_catalog_order():
    catalog = ProviderCatalog()
    assert len(catalog) == len(PROVIDER_CONFIGS)
    assert catalog.names[:3] == ["openrouter", "mistral", "groq"]
    assert catalog.names[-1] == "gemini"
