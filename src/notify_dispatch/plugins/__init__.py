"""Plugin system public API exports."""

from notify_dispatch.plugins.logging_provider import LoggingProvider, logging_provider_factory
from notify_dispatch.plugins.registry import (
    CHANNEL_DEFAULT_PROVIDERS,
    CHANNEL_PROVIDER_CATALOG,
    ProviderRegistry,
)

__all__ = [
    "CHANNEL_DEFAULT_PROVIDERS",
    "CHANNEL_PROVIDER_CATALOG",
    "LoggingProvider",
    "ProviderRegistry",
    "logging_provider_factory",
]
