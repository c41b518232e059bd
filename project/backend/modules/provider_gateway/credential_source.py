"""
Credential discovery from the process environment.

Each provider may expose a base key plus numbered keys:
OPENROUTER_API_KEY, OPENROUTER_API_KEY_1, OPENROUTER_API_KEY_2, ...
(the unseparated form OPENROUTER_API_KEY1 is accepted as well).
"""

import os
from typing import Dict, Iterable, List, Mapping, Optional

from dotenv import load_dotenv

from shared.logging import get_logger
from shared.models.provider import ProviderSpec

from .config import PROVIDER_CONFIGS

logger = get_logger("provider_gateway.credentials")


def _numbered_keys(environ: Mapping[str, str], prefix: str, separator: str) -> List[str]:
    """Collect PREFIX<sep>1..n, stopping at the first gap."""
    keys: List[str] = []
    index = 1
    while True:
        value = environ.get(f"{prefix}{separator}{index}")
        if not value:
            break
        keys.append(value)
        index += 1
    return keys


def discover_keys(environ: Mapping[str, str], prefix: str) -> List[str]:
    """
    Ordered, de-duplicated list of secrets for one key prefix.

    Args:
        environ: Environment mapping
        prefix: Key prefix (e.g. "GROQ_API_KEY")

    Returns:
        Base key first, then numbered keys
    """
    candidates: List[str] = []
    base = environ.get(prefix)
    if base:
        candidates.append(base)
    candidates.extend(_numbered_keys(environ, prefix, "_"))
    candidates.extend(_numbered_keys(environ, prefix, ""))

    keys: List[str] = []
    for candidate in candidates:
        secret = candidate.strip()
        if secret and secret not in keys:
            keys.append(secret)
    return keys


def load_credentials(
    environ: Optional[Mapping[str, str]] = None,
    specs: Optional[Iterable[ProviderSpec]] = None,
    load_env_file: bool = True,
) -> Dict[str, List[str]]:
    """
    Read every provider's credentials once.

    Args:
        environ: Environment mapping (defaults to os.environ after loading .env)
        specs: Providers to look up (defaults to the full catalog)
        load_env_file: Load a .env file into os.environ first

    Returns:
        Mapping of provider name to its list of secrets (possibly empty)
    """
    if environ is None:
        if load_env_file:
            load_dotenv()
        environ = os.environ

    if specs is None:
        specs = PROVIDER_CONFIGS.values()

    credentials: Dict[str, List[str]] = {}
    for spec in specs:
        keys = discover_keys(environ, spec.key_prefix)
        credentials[spec.name] = keys
        logger.info(
            "Discovered provider credentials",
            extra={"provider": spec.name, "key_prefix": spec.key_prefix, "key_count": len(keys)}
        )
    return credentials
