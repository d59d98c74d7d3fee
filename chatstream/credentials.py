"""Credential resolution.

The engine resolves a credential once per request through
``await provider.get_credential(service_id, session_id)``. ``None`` means
the request is sent unauthenticated.
"""
import logging
import os
from typing import Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialProvider(Protocol):
    async def get_credential(self, service_id: str, session_id: Optional[str] = None) -> Optional[str]:
        ...


def default_env_var(service_id: str) -> str:
    """``google`` -> ``GOOGLE_API_KEY``."""
    return f"{service_id.upper().replace('-', '_')}_API_KEY"


class EnvCredentialProvider:
    """Reads API keys from environment variables.

    Usage:
        provider = EnvCredentialProvider({"google": "GEMINI_API_KEY"})
        key = await provider.get_credential("google")

    Services without an explicit mapping use ``<SERVICE>_API_KEY``.
    """

    def __init__(self, env_vars: Optional[Dict[str, str]] = None):
        self._env_vars: Dict[str, str] = dict(env_vars or {})

    def env_var_for(self, service_id: str) -> str:
        return self._env_vars.get(service_id) or default_env_var(service_id)

    async def get_credential(self, service_id: str, session_id: Optional[str] = None) -> Optional[str]:
        env_var = self.env_var_for(service_id)
        value = os.getenv(env_var)
        if not value:
            logger.debug("Environment variable '%s' is not set", env_var)
            return None
        return value


class StaticCredentialProvider:
    """Fixed credentials keyed by service id."""

    def __init__(self, credentials: Optional[Dict[str, str]] = None):
        self._credentials: Dict[str, str] = dict(credentials or {})

    async def get_credential(self, service_id: str, session_id: Optional[str] = None) -> Optional[str]:
        return self._credentials.get(service_id)


class ChainCredentialProvider:
    """Asks each provider in turn and returns the first credential found."""

    def __init__(self, providers: List[CredentialProvider]):
        self._providers = list(providers)

    async def get_credential(self, service_id: str, session_id: Optional[str] = None) -> Optional[str]:
        for provider in self._providers:
            credential = await provider.get_credential(service_id, session_id)
            if credential:
                return credential
        return None
