"""Tests for credential providers."""
import os

import pytest
from unittest.mock import patch

from chatstream.credentials import (
    ChainCredentialProvider,
    CredentialProvider,
    EnvCredentialProvider,
    StaticCredentialProvider,
    default_env_var,
)

pytestmark = pytest.mark.unit


class TestEnvCredentialProvider:
    """Test environment variable credentials."""

    @pytest.mark.parametrize("service,env_var", [
        ("google", "GOOGLE_API_KEY"),
        ("open-router", "OPEN_ROUTER_API_KEY"),
    ])
    def test_default_env_var(self, service, env_var):
        assert default_env_var(service) == env_var

    async def test_reads_default_variable(self):
        with patch.dict(os.environ, {"GOOGLE_API_KEY": "g-key"}):
            assert await EnvCredentialProvider().get_credential("google") == "g-key"

    async def test_explicit_mapping(self):
        """Test that a mapped variable name replaces the default."""
        provider = EnvCredentialProvider({"google": "GEMINI_API_KEY"})

        with patch.dict(os.environ, {"GEMINI_API_KEY": "gem", "GOOGLE_API_KEY": "goo"}):
            assert await provider.get_credential("google") == "gem"
        assert provider.env_var_for("google") == "GEMINI_API_KEY"

    async def test_unset_returns_none(self):
        with patch.dict(os.environ, {"GOOGLE_API_KEY": ""}):
            assert await EnvCredentialProvider().get_credential("google") is None

    def test_satisfies_protocol(self):
        assert isinstance(EnvCredentialProvider(), CredentialProvider)


class TestStaticAndChainProviders:
    """Test fixed and chained credentials."""

    async def test_static(self):
        provider = StaticCredentialProvider({"google": "k"})

        assert await provider.get_credential("google") == "k"
        assert await provider.get_credential("other") is None

    async def test_chain_returns_first_found(self):
        """Test that the chain skips providers without a credential."""
        chain = ChainCredentialProvider([
            StaticCredentialProvider({}),
            StaticCredentialProvider({"google": "second"}),
            StaticCredentialProvider({"google": "third"}),
        ])

        assert await chain.get_credential("google", "session-1") == "second"

    async def test_chain_exhausted(self):
        chain = ChainCredentialProvider([StaticCredentialProvider({})])
        assert await chain.get_credential("google") is None
