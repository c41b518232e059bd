from modules.provider_gateway.config import PROVIDER_CONFIGS
from modules.provider_gateway.credential_source import discover_keys, load_credentials


def test_discover_keys_base_then_numbered():
    environ = {
        "GROQ_API_KEY": "base",
        "GROQ_API_KEY_1": "one",
        "GROQ_API_KEY_2": "two",
        "GROQ_API_KEY_4": "gap-ignored",
    }
    assert discover_keys(environ, "GROQ_API_KEY") == ["base", "one", "two"]


def test_discover_keys_unseparated_and_deduplicated():
    environ = {
        "GROQ_API_KEY1": "one",
        "GROQ_API_KEY2": "two",
        "GROQ_API_KEY_1": "one",
        "GROQ_API_KEY": "  ",
    }
    assert discover_keys(environ, "GROQ_API_KEY") == ["one", "two"]


def test_load_credentials_covers_catalog():
    environ = {"OPENROUTER_API_KEY": "sk-or-1", "GEMINI_API_KEY_1": "AIza-1"}

    credentials = load_credentials(environ)

    assert set(credentials) == set(PROVIDER_CONFIGS)
    assert credentials["openrouter"] == ["sk-or-1"]
    assert credentials["gemini"] == ["AIza-1"]
    assert credentials["groq"] == []
