"""
Provider gateway configuration.

Static provider catalog for text generation plus request constants.
"""
from typing import Dict

from shared.models.provider import ProviderFamily, ProviderSpec, ProviderTier

# OpenRouter asks for attribution headers on every request
OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://scriptforge.local",
    "X-Title": "ScriptForge",
}

# OpenRouter 402 retry: "You requested up to 900 tokens, but can only afford 858"
OPENROUTER_AFFORD_FLOOR = 50  # Below this an affordable budget is not worth a retry
OPENROUTER_AFFORD_MARGIN = 25  # Tokens shaved off the affordable budget on retry

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_MAX_OUTPUT_TOKENS = 6000
GEMINI_TEMPERATURE = 0.7

PROBE_PROMPT = "Reply with the single word OK."
PROBE_MAX_TOKENS = 5


PROVIDER_CONFIGS: Dict[str, ProviderSpec] = {
    # High performance tier
    "openrouter": ProviderSpec(
        name="openrouter",
        display_name="OpenRouter",
        tier=ProviderTier.HIGH_PERFORMANCE,
        priority=1,
        family=ProviderFamily.OPENAI_COMPATIBLE,
        base_url="https://openrouter.ai/api/v1",
        model="openai/gpt-4o-mini",
        key_prefix="OPENROUTER_API_KEY",
        max_tokens=900,  # Low-credit accounts reject larger budgets with 402
        supports_json_mode=True,
    ),
    "mistral": ProviderSpec(
        name="mistral",
        display_name="Mistral AI",
        tier=ProviderTier.HIGH_PERFORMANCE,
        priority=2,
        family=ProviderFamily.OPENAI_COMPATIBLE,
        base_url="https://api.mistral.ai/v1",
        model="mistral-large-latest",
        key_prefix="MISTRAL_API_KEY",
        supports_json_mode=True,
    ),
    "groq": ProviderSpec(
        name="groq",
        display_name="Groq",
        tier=ProviderTier.HIGH_PERFORMANCE,
        priority=3,
        family=ProviderFamily.OPENAI_COMPATIBLE,
        base_url="https://api.groq.com/openai/v1",
        model="llama-3.3-70b-versatile",
        key_prefix="GROQ_API_KEY",
        supports_json_mode=True,
    ),
    # Stable tier
    "github": ProviderSpec(
        name="github",
        display_name="GitHub Models",
        tier=ProviderTier.STABLE,
        priority=1,
        family=ProviderFamily.OPENAI_COMPATIBLE,
        base_url="https://models.github.ai/inference",
        model="gpt-4o-mini",
        key_prefix="GITHUB_TOKEN",
        max_tokens=2200,
    ),
    "deepseek": ProviderSpec(
        name="deepseek",
        display_name="DeepSeek",
        tier=ProviderTier.STABLE,
        priority=2,
        family=ProviderFamily.OPENAI_COMPATIBLE,
        base_url="https://api.deepseek.com/v1",
        model="deepseek-chat",
        key_prefix="DEEPSEEK_API_KEY",
        supports_json_mode=True,
    ),
    "openai": ProviderSpec(
        name="openai",
        display_name="OpenAI",
        tier=ProviderTier.STABLE,
        priority=3,
        family=ProviderFamily.OPENAI_COMPATIBLE,
        base_url="https://api.openai.com/v1",
        model="gpt-4o",
        key_prefix="OPENAI_API_KEY",
        supports_json_mode=True,
    ),
    # Fallback tier
    "cerebras": ProviderSpec(
        name="cerebras",
        display_name="Cerebras",
        tier=ProviderTier.FALLBACK,
        priority=1,
        family=ProviderFamily.OPENAI_COMPATIBLE,
        base_url="https://api.cerebras.ai/v1",
        model="llama3.1-8b",
        key_prefix="CEREBRAS_API_KEY",
    ),
    "xai": ProviderSpec(
        name="xai",
        display_name="XAI (Grok)",
        tier=ProviderTier.FALLBACK,
        priority=2,
        family=ProviderFamily.OPENAI_COMPATIBLE,
        base_url="https://api.x.ai/v1",
        model="grok-2-latest",
        key_prefix="XAI_API_KEY",
    ),
    "gemini": ProviderSpec(
        name="gemini",
        display_name="Gemini",
        tier=ProviderTier.FALLBACK,
        priority=3,
        family=ProviderFamily.GEMINI,
        base_url=GEMINI_BASE_URL,
        model="gemini-1.5-flash-latest",
        key_prefix="GEMINI_API_KEY",
        max_tokens=GEMINI_MAX_OUTPUT_TOKENS,
        temperature=GEMINI_TEMPERATURE,
    ),
}
