"""Provider adapter implementations."""
from chatstream.providers.base import ProviderAdapter
from chatstream.providers.google import GoogleAdapter

__all__ = ["GoogleAdapter", "ProviderAdapter"]
