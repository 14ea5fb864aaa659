"""Property-based tests for provider chains, batch counters and queue scheduling."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import given, strategies as st

from notify_dispatch.core.batch import compute_batch_stats
from notify_dispatch.core.errors import ALL_PROVIDERS_FAILED
from notify_dispatch.core.fallback import (
    ProviderFallbackExecutor,
    build_failure_message,
    validate_provider_chain,
)
from notify_dispatch.core.processor import compute_delay_ms, queue_priority
from notify_dispatch.plugins import ProviderRegistry
from notify_dispatch.types import (
    Channel,
    ExecutionResult,
    NotificationRecord,
    NotificationStatus,
    ProviderChain,
    Recipient,
    RenderedContent,
)
from tests.fixtures.fakes import ScriptedProvider, make_request, scripted_factory

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)
_NAMES = st.sampled_from(["mail-a", "mail-b", "mail-c", "sms-a", "push-a"])
_STAMP = st.one_of(st.none(), st.just(NOW))


def _run_chain(outcomes: list[bool]) -> tuple[ExecutionResult, list[ScriptedProvider]]:
    providers = [
        ScriptedProvider(f"p{index}", fail_with=None if ok else RuntimeError(f"p{index} down"))
        for index, ok in enumerate(outcomes)
    ]
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider.name, scripted_factory(provider))
    chain = ProviderChain(providers[0].name, tuple(provider.name for provider in providers[1:]))

    result = asyncio.run(
        ProviderFallbackExecutor(registry).execute_with_fallback(
            Channel.EMAIL,
            chain,
            make_request(),
            {},
            content=RenderedContent(body="Body", subject="Hi"),
        )
    )
    return result, providers


@pytest.mark.property
class TestProviderChainInvariants:
    """Property-based tests for chain validation and ordered fallback."""

    @given(_NAMES, st.lists(_NAMES, max_size=5))
    def test_chain_valid_iff_no_duplicates(self, primary: str, fallbacks: list[str]) -> None:
        """Property: a chain is valid exactly when no provider repeats."""
        chain = ProviderChain(primary, tuple(fallbacks))

        assert validate_provider_chain(chain) == (len({primary, *fallbacks}) == len(fallbacks) + 1)

    @given(st.lists(_NAMES, max_size=5))
    def test_empty_primary_never_valid(self, fallbacks: list[str]) -> None:
        """Property: a blank primary invalidates any chain."""
        assert validate_provider_chain(ProviderChain("", tuple(fallbacks))) is False

    @given(st.lists(st.booleans(), min_size=1, max_size=6))
    def test_fallback_stops_at_first_success(self, outcomes: list[bool]) -> None:
        """Property: providers are tried in order and none after the first success."""
        result, providers = _run_chain(outcomes)

        tried = outcomes.index(True) + 1 if True in outcomes else len(outcomes)
        assert [attempt.provider for attempt in result.attempts] == [p.name for p in providers[:tried]]
        assert [attempt.attempt for attempt in result.attempts] == list(range(1, tried + 1))
        assert [p.send_calls for p in providers] == [1] * tried + [0] * (len(outcomes) - tried)
        assert result.success is (True in outcomes)

    @given(st.lists(st.just(False), min_size=1, max_size=6))
    def test_total_failure_reports_every_attempt(self, outcomes: list[bool]) -> None:
        """Property: an exhausted chain names every provider in its error."""
        result, providers = _run_chain(outcomes)

        assert result.error is not None
        assert result.error.code == ALL_PROVIDERS_FAILED
        assert result.error.message == build_failure_message(result.attempts)
        assert result.provider == providers[-1].name


@pytest.mark.property
class TestBatchStatsInvariants:
    """Property-based tests for batch counter recomputation."""

    @given(st.lists(st.tuples(_STAMP, _STAMP, _STAMP), max_size=20))
    def test_stats_bounded_and_idempotent(
        self,
        stamps: list[tuple[datetime | None, datetime | None, datetime | None]],
    ) -> None:
        """Property: counters never exceed the item count and recomputation is stable."""
        items = [
            NotificationRecord(
                id=index + 1,
                uuid=f"uuid-{index}",
                tenant_id=1,
                channel=Channel.EMAIL,
                recipient=Recipient(email="a@example.com"),
                content=RenderedContent(body="b"),
                status=NotificationStatus.QUEUED,
                priority_id=1,
                created_by="tests",
                sent_at=sent,
                delivered_at=delivered,
                failed_at=failed,
            )
            for index, (sent, delivered, failed) in enumerate(stamps)
        ]

        stats = compute_batch_stats(items)

        assert stats == compute_batch_stats(items)
        assert stats.sent == sum(1 for sent, _, _ in stamps if sent is not None)
        assert max(stats.sent, stats.delivered, stats.failed, 0) <= len(items)


@pytest.mark.property
class TestSchedulingInvariants:
    """Property-based tests for queue priority and delay."""

    @given(st.integers(min_value=1, max_value=3))
    def test_higher_priority_id_runs_first(self, priority_id: int) -> None:
        """Property: urgent ids map to strictly smaller queue priorities."""
        assert queue_priority(priority_id + 1) < queue_priority(priority_id)
        assert 1 <= queue_priority(priority_id) <= 4

    @given(st.integers(min_value=-10**6, max_value=10**6))
    def test_delay_never_negative(self, offset_seconds: int) -> None:
        """Property: past schedules run immediately, future ones wait their offset."""
        delay = compute_delay_ms(NOW + timedelta(seconds=offset_seconds), NOW)

        assert delay == max(offset_seconds * 1000, 0)
