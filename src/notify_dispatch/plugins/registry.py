"""Provider registry for notification provider integrations.

The registry maps provider names to factories that build a provider instance
from decrypted tenant credentials, and keeps health information about every
provider so repeated failures inside fallback chains are visible to
operators. It also carries the catalog of well-known provider names per
channel used to pick a default when a request names no chain.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from notify_dispatch.core.errors import ProviderNotRegisteredError
from notify_dispatch.types import (
    Channel,
    Credentials,
    HealthStatus,
    NotificationProvider,
    ProviderFactory,
    utc_now,
)

__all__ = ["CHANNEL_DEFAULT_PROVIDERS", "CHANNEL_PROVIDER_CATALOG", "ProviderRegistry"]

_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_\-]*$")

CHANNEL_DEFAULT_PROVIDERS: Mapping[Channel, str] = {
    Channel.EMAIL: "sendgrid",
    Channel.SMS: "twilio",
    Channel.PUSH: "firebase",
    Channel.CHAT: "slack",
    Channel.IN_APP: "database-inbox",
}

CHANNEL_PROVIDER_CATALOG: Mapping[Channel, tuple[str, ...]] = {
    Channel.EMAIL: ("sendgrid", "ses", "mailgun"),
    Channel.SMS: ("twilio", "vonage"),
    Channel.PUSH: ("firebase", "huawei-pushkit", "pushover", "gotify", "ntfy"),
    Channel.CHAT: ("slack", "discord", "teams", "google-chat", "mattermost"),
    Channel.IN_APP: ("database-inbox",),
}


@dataclass(slots=True)
class _RegistryEntry:
    """Internal registry entry storing a factory and health data."""

    factory: ProviderFactory
    channels: frozenset[Channel] = field(default_factory=frozenset)
    health: HealthStatus | None = None


class ProviderRegistry:
    """Registry for provider factories with health tracking.

    Names are matched exactly (case-sensitive), the same way provider
    chains compare them.

    Args:
        unhealthy_threshold: Number of consecutive failures tolerated
            before the provider is reported unhealthy. Must be >= 1.
    """

    def __init__(self, *, unhealthy_threshold: int = 3) -> None:
        if unhealthy_threshold < 1:
            msg = "unhealthy_threshold must be >= 1"
            raise ValueError(msg)
        self._unhealthy_threshold: int = unhealthy_threshold
        self._entries: dict[str, _RegistryEntry] = {}

    def register(
        self,
        name: str,
        factory: ProviderFactory,
        *,
        channels: frozenset[Channel] | None = None,
    ) -> None:
        """Register a provider factory under the given name."""
        slug = self._normalize_name(name)
        if slug in self._entries:
            msg = f"Provider {slug!r} already registered"
            raise ValueError(msg)

        self._entries[slug] = _RegistryEntry(factory=factory, channels=channels or frozenset())

    def unregister(self, name: str) -> None:
        """Remove a provider from the registry if it exists."""
        slug = self._normalize_name(name)
        _ = self._entries.pop(slug, None)

    def __contains__(self, name: str) -> bool:
        return name.strip() in self._entries

    def get_provider(self, name: str, credentials: Credentials) -> NotificationProvider:
        """Build a provider instance for the given credentials.

        Raises:
            ProviderNotRegisteredError: If no factory is registered under ``name``
        """
        entry = self._entries.get(name.strip())
        if entry is None:
            raise ProviderNotRegisteredError(name)
        return entry.factory(credentials)

    def get_identifiers(self) -> tuple[str, ...]:
        """Return registered provider names sorted alphabetically."""
        return tuple(sorted(self._entries))

    def providers_for_channel(self, channel: Channel) -> tuple[str, ...]:
        """Return registered providers declared for a channel, sorted by name."""
        return tuple(
            name for name in sorted(self._entries) if channel in self._entries[name].channels
        )

    def default_provider(self, channel: Channel) -> str:
        """Return the default provider name for a channel.

        A registered provider declared for the channel wins over the catalog
        default only when the catalog default is not registered.
        """
        catalog_default = CHANNEL_DEFAULT_PROVIDERS[channel]
        if catalog_default in self._entries:
            return catalog_default
        registered = self.providers_for_channel(channel)
        if registered:
            return registered[0]
        return catalog_default

    def get_health(self, name: str) -> HealthStatus | None:
        """Return the most recent health status for the provider."""
        entry = self._entries.get(name.strip())
        if entry is None:
            return None
        return entry.health

    def record_success(self, name: str) -> HealthStatus | None:
        """Record a successful send and reset failure counters.

        Unknown names are ignored; the attempt log already captured them.
        """
        entry = self._entries.get(name.strip())
        if entry is None:
            return None
        entry.health = HealthStatus(
            is_healthy=True,
            last_check=utc_now(),
            consecutive_failures=0,
            error_message=None,
        )
        return entry.health

    def record_failure(
        self,
        name: str,
        *,
        error_message: str | None = None,
    ) -> HealthStatus | None:
        """Record a failure and update the health status accordingly."""
        entry = self._entries.get(name.strip())
        if entry is None:
            return None
        consecutive = entry.health.consecutive_failures + 1 if entry.health else 1
        entry.health = HealthStatus(
            is_healthy=consecutive < self._unhealthy_threshold,
            last_check=utc_now(),
            consecutive_failures=consecutive,
            error_message=error_message,
        )
        return entry.health

    def get_unhealthy_providers(self) -> tuple[str, ...]:
        """Return names of providers currently reported unhealthy."""
        return tuple(
            name
            for name in sorted(self._entries)
            if (health := self._entries[name].health) is not None and not health.is_healthy
        )

    @staticmethod
    def _normalize_name(name: str) -> str:
        slug = name.strip()
        if not _NAME_PATTERN.match(slug):
            msg = (
                "Provider names must start with a letter and contain only "
                "letters, numbers, hyphens, or underscores"
            )
            raise ValueError(msg)
        return slug
