"""Tests for the ProviderRegistry factories, channel catalog and health tracking."""

from __future__ import annotations

import pytest

from notify_dispatch.core.errors import ProviderNotRegisteredError
from notify_dispatch.plugins import (
    CHANNEL_DEFAULT_PROVIDERS,
    CHANNEL_PROVIDER_CATALOG,
    LoggingProvider,
    ProviderRegistry,
    logging_provider_factory,
)
from notify_dispatch.types import Channel, Credentials, RenderedContent
from tests.fixtures.fakes import ScriptedProvider, scripted_factory


def test_register_and_build_provider() -> None:
    """Factories are invoked with the credentials passed to get_provider."""
    registry = ProviderRegistry()
    seen: list[object] = []
    provider = ScriptedProvider("alpha")

    def factory(credentials: Credentials) -> ScriptedProvider:
        seen.append(credentials)
        return provider

    registry.register("alpha", factory)

    assert registry.get_provider("alpha", {"api_key": "k"}) is provider
    assert seen == [{"api_key": "k"}]
    assert registry.get_identifiers() == ("alpha",)
    assert "alpha" in registry


def test_duplicate_registration_rejected() -> None:
    registry = ProviderRegistry()
    registry.register("dup", scripted_factory(ScriptedProvider("dup")))

    with pytest.raises(ValueError, match="already registered"):
        registry.register("dup", scripted_factory(ScriptedProvider("dup")))


@pytest.mark.parametrize("name", ["", "1abc", "has space", "bad!"])
def test_invalid_names_rejected(name: str) -> None:
    registry = ProviderRegistry()
    with pytest.raises(ValueError, match="must start with a letter"):
        registry.register(name, scripted_factory(ScriptedProvider("x")))


def test_names_are_case_sensitive() -> None:
    registry = ProviderRegistry()
    registry.register("Mailer", scripted_factory(ScriptedProvider("Mailer")))

    assert "Mailer" in registry
    assert "mailer" not in registry
    with pytest.raises(ProviderNotRegisteredError):
        _ = registry.get_provider("mailer", {})


def test_unknown_provider_raises_not_registered() -> None:
    registry = ProviderRegistry()
    with pytest.raises(ProviderNotRegisteredError) as exc_info:
        _ = registry.get_provider("ghost", {})
    assert exc_info.value.provider == "ghost"
    assert exc_info.value.code == "PROVIDER_NOT_REGISTERED"


def test_unregister_removes_provider() -> None:
    registry = ProviderRegistry()
    registry.register("alpha", scripted_factory(ScriptedProvider("alpha")))
    registry.unregister("alpha")
    registry.unregister("alpha")

    assert "alpha" not in registry
    assert registry.get_identifiers() == ()


def test_providers_for_channel_and_defaults() -> None:
    registry = ProviderRegistry()
    registry.register("mail-b", scripted_factory(ScriptedProvider("mail-b")), channels=frozenset({Channel.EMAIL}))
    registry.register("mail-a", scripted_factory(ScriptedProvider("mail-a")), channels=frozenset({Channel.EMAIL}))

    assert registry.providers_for_channel(Channel.EMAIL) == ("mail-a", "mail-b")
    assert registry.providers_for_channel(Channel.SMS) == ()
    # Catalog default not registered: first registered provider for the channel wins
    assert registry.default_provider(Channel.EMAIL) == "mail-a"
    # Nothing registered for the channel: catalog default is reported
    assert registry.default_provider(Channel.SMS) == CHANNEL_DEFAULT_PROVIDERS[Channel.SMS]


def test_catalog_default_preferred_when_registered() -> None:
    registry = ProviderRegistry()
    default_name = CHANNEL_DEFAULT_PROVIDERS[Channel.PUSH]
    registry.register("aaa-push", scripted_factory(ScriptedProvider("aaa-push")), channels=frozenset({Channel.PUSH}))
    registry.register(default_name, scripted_factory(ScriptedProvider(default_name)), channels=frozenset({Channel.PUSH}))

    assert registry.default_provider(Channel.PUSH) == default_name


def test_catalog_lists_every_channel_default() -> None:
    for channel in Channel:
        assert CHANNEL_DEFAULT_PROVIDERS[channel] in CHANNEL_PROVIDER_CATALOG[channel]


def test_health_tracking_marks_unhealthy_after_threshold() -> None:
    registry = ProviderRegistry(unhealthy_threshold=2)
    registry.register("alpha", scripted_factory(ScriptedProvider("alpha")))

    first = registry.record_failure("alpha", error_message="timeout")
    assert first is not None
    assert first.is_healthy is True
    assert first.consecutive_failures == 1

    second = registry.record_failure("alpha", error_message="timeout")
    assert second is not None
    assert second.is_healthy is False
    assert registry.get_unhealthy_providers() == ("alpha",)

    recovered = registry.record_success("alpha")
    assert recovered is not None
    assert recovered.is_healthy is True
    assert recovered.consecutive_failures == 0
    assert registry.get_unhealthy_providers() == ()


def test_health_updates_for_unknown_provider_are_ignored() -> None:
    registry = ProviderRegistry()
    assert registry.record_failure("ghost", error_message="x") is None
    assert registry.record_success("ghost") is None
    assert registry.get_health("ghost") is None


def test_threshold_must_be_positive() -> None:
    with pytest.raises(ValueError, match="unhealthy_threshold"):
        _ = ProviderRegistry(unhealthy_threshold=0)


@pytest.mark.asyncio
async def test_logging_provider_sends_and_simulates_outage() -> None:
    factory = logging_provider_factory("relay")
    healthy = factory({})
    assert isinstance(healthy, LoggingProvider)
    assert await healthy.validate() is True

    result = await healthy.send({"user_id": "u-1"}, RenderedContent(body="hi"), {"channel": "email"})
    assert result.message_id is not None
    assert result.message_id.startswith("relay-")

    outage = factory({"fail": True})
    assert await outage.validate() is False
