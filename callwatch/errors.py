"""
Callwatch — Exception Hierarchy

Callwatch only raises its own errors while it is being configured: reading
the config file, resolving a provider, building a chat model. Once a model
is wrapped, failures of the wrapped call reach the caller unchanged.
"""

from __future__ import annotations


class CallwatchError(Exception):
    """Base exception for all Callwatch errors."""

    def __init__(self, message: str = "", **kwargs):
        self.detail = kwargs
        super().__init__(message)


class ConfigError(CallwatchError):
    """Invalid configuration or an unknown provider/model."""
    pass


class UnknownProviderError(ConfigError):
    """Requested provider has no registered factory."""

    def __init__(self, provider: str, supported: list[str]):
        self.provider = provider
        super().__init__(
            f"Unknown provider {provider!r}. Supported: {', '.join(supported)}",
            provider=provider,
            supported=supported,
        )
