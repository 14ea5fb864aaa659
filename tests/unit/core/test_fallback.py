"""Tests for the ProviderFallbackExecutor ordered fallback semantics."""

from __future__ import annotations

import asyncio

import pytest

from notify_dispatch.core.errors import ALL_PROVIDERS_FAILED
from notify_dispatch.core.fallback import (
    ProviderFallbackExecutor,
    build_failure_message,
    recipient_payload,
    validate_provider_chain,
)
from notify_dispatch.plugins import ProviderRegistry
from notify_dispatch.types import (
    Channel,
    Credentials,
    ExecutionResult,
    Priority,
    ProviderAttempt,
    ProviderChain,
    ProviderFactory,
    RenderedContent,
)
from notify_dispatch.utils.sanitization import REDACTED
from tests.fixtures.fakes import ScriptedProvider, make_request, scripted_factory

CONTENT = RenderedContent(body="Body", subject="Hello")


def _registry(*providers: ScriptedProvider) -> ProviderRegistry:
    registry = ProviderRegistry(unhealthy_threshold=1)
    for provider in providers:
        registry.register(provider.name, scripted_factory(provider))
    return registry


async def _execute(
    registry: ProviderRegistry,
    chain: ProviderChain,
    credentials: dict[str, Credentials] | None = None,
) -> ExecutionResult:
    executor = ProviderFallbackExecutor(registry)
    return await executor.execute_with_fallback(
        Channel.EMAIL,
        chain,
        make_request(Channel.EMAIL, priority=Priority.HIGH, metadata={"campaign": "c-1"}),
        credentials or {},
        content=CONTENT,
    )


@pytest.mark.asyncio
async def test_primary_success_never_contacts_fallbacks() -> None:
    primary = ScriptedProvider("p1")
    fallback = ScriptedProvider("p2")
    registry = _registry(primary, fallback)

    result = await _execute(registry, ProviderChain("p1", ("p2",)))

    assert result.success is True
    assert result.provider == "p1"
    assert result.message_id == "p1-msg"
    assert result.error is None
    assert [(a.provider, a.attempt, a.success) for a in result.attempts] == [("p1", 1, True)]
    assert fallback.validate_calls == 0
    assert fallback.send_calls == 0
    health = registry.get_health("p1")
    assert health is not None
    assert health.is_healthy is True


@pytest.mark.asyncio
async def test_fallback_used_after_primary_raises() -> None:
    primary = ScriptedProvider("p1", fail_with=RuntimeError("connection reset"))
    fallback = ScriptedProvider("p2")
    registry = _registry(primary, fallback)

    result = await _execute(registry, ProviderChain("p1", ("p2",)))

    assert result.success is True
    assert result.provider == "p2"
    assert len(result.attempts) == 2
    assert result.attempts[0] == ProviderAttempt(
        provider="p1",
        attempt=1,
        success=False,
        error="connection reset",
        timestamp=result.attempts[0].timestamp,
    )
    assert result.attempts[1].success is True
    assert result.attempts[1].attempt == 2
    assert registry.get_unhealthy_providers() == ("p1",)


@pytest.mark.asyncio
async def test_failed_validation_skips_send_and_falls_back() -> None:
    primary = ScriptedProvider("p1", valid=False)
    fallback = ScriptedProvider("p2")
    registry = _registry(primary, fallback)

    result = await _execute(registry, ProviderChain("p1", ("p2",)))

    assert result.success is True
    assert primary.send_calls == 0
    assert result.attempts[0].error == "Provider p1 validation failed"


@pytest.mark.asyncio
async def test_all_providers_failed_aggregates_every_attempt() -> None:
    registry = _registry(
        ScriptedProvider("p1", fail_with=RuntimeError("boom")),
        ScriptedProvider("p2", valid=False),
        ScriptedProvider("p3", fail_with=TimeoutError()),
    )

    result = await _execute(registry, ProviderChain("p1", ("p2", "p3")))

    assert result.success is False
    assert result.provider == "p3"
    assert result.message_id is None
    assert [attempt.attempt for attempt in result.attempts] == [1, 2, 3]
    assert all(not attempt.success for attempt in result.attempts)
    assert result.error is not None
    assert result.error.code == ALL_PROVIDERS_FAILED
    assert result.error.message == (
        "All providers failed. Attempts: p1: boom, p2: Provider p2 validation failed, p3: TimeoutError"
    )


@pytest.mark.asyncio
async def test_unregistered_provider_counts_as_failed_attempt() -> None:
    registry = _registry(ScriptedProvider("p2"))

    result = await _execute(registry, ProviderChain("ghost", ("p2",)))

    assert result.success is True
    assert result.attempts[0].provider == "ghost"
    assert result.attempts[0].error == "Provider 'ghost' is not registered"


@pytest.mark.asyncio
async def test_credentials_routed_per_provider() -> None:
    received: dict[str, Credentials] = {}
    registry = ProviderRegistry()

    def capture(name: str) -> ProviderFactory:
        def factory(credentials: Credentials) -> ScriptedProvider:
            received[name] = credentials
            return ScriptedProvider(name, valid=name != "p1")

        return factory

    registry.register("p1", capture("p1"))
    registry.register("p2", capture("p2"))

    _ = await _execute(
        registry,
        ProviderChain("p1", ("p2",)),
        {"p1": {"api_key": "one"}, "p2": {"api_key": "two"}},
    )

    assert received == {"p1": {"api_key": "one"}, "p2": {"api_key": "two"}}


@pytest.mark.asyncio
async def test_provider_receives_recipient_and_options() -> None:
    provider = ScriptedProvider("p1")
    registry = _registry(provider)

    _ = await _execute(registry, ProviderChain("p1"))

    assert provider.last_recipient == {
        "user_id": "u-1",
        "email": "ada@example.com",
        "phone": "+15550100",
        "user_type": None,
    }
    assert provider.last_options == {
        "channel": "email",
        "tenant_id": 1,
        "priority": "high",
        "metadata": {"campaign": "c-1"},
    }


@pytest.mark.asyncio
async def test_attempt_errors_are_sanitized() -> None:
    registry = _registry(
        ScriptedProvider("p1", fail_with=RuntimeError("POST https://x.io/send?api_key=abc123 failed")),
    )

    result = await _execute(registry, ProviderChain("p1"))

    assert result.attempts[0].error is not None
    assert "abc123" not in result.attempts[0].error
    assert REDACTED in result.attempts[0].error


@pytest.mark.asyncio
async def test_cancellation_propagates() -> None:
    registry = _registry(ScriptedProvider("p1", fail_with=asyncio.CancelledError()))  # type: ignore[arg-type]

    with pytest.raises(asyncio.CancelledError):
        _ = await _execute(registry, ProviderChain("p1", ("p2",)))


@pytest.mark.parametrize(
    ("chain", "expected"),
    [
        (ProviderChain("a"), True),
        (ProviderChain("a", ("b", "c")), True),
        (ProviderChain(""), False),
        (ProviderChain("a", ("b", "a")), False),
        (ProviderChain("a", ("b", "b")), False),
        (ProviderChain("a", ("A",)), True),
    ],
)
def test_validate_provider_chain(chain: ProviderChain, expected: bool) -> None:
    assert validate_provider_chain(chain) is expected


def test_build_failure_message_ignores_successful_attempts() -> None:
    attempts = [
        ProviderAttempt(provider="a", attempt=1, success=False, error="down"),
        ProviderAttempt(provider="b", attempt=2, success=True),
    ]
    assert build_failure_message(attempts) == "All providers failed. Attempts: a: down"


def test_recipient_payload_exposes_contact_fields() -> None:
    payload = recipient_payload(make_request())
    assert payload == {"user_id": "u-1", "email": "ada@example.com", "phone": "+15550100", "user_type": None}
