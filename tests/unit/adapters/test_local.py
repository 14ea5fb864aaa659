"""Tests for wiring the local runtime from configuration."""

from __future__ import annotations

import pytest

from notify_dispatch.adapters.local import build_registry, open_local_runtime
from notify_dispatch.adapters.memory import StaticUserDirectory
from notify_dispatch.core.config import MainConfig
from notify_dispatch.plugins.registry import CHANNEL_DEFAULT_PROVIDERS
from notify_dispatch.types import (
    BroadcastOptions,
    BroadcastPolicy,
    Channel,
    DirectoryUser,
    NotificationStatus,
    Recipient,
)
from tests.fixtures.fakes import literal_content, make_request

EVERYONE = Recipient(user_id="u-1", email="ada@example.com", phone="+15550100")


def _config(**dispatch: object) -> MainConfig:
    return MainConfig.model_validate({"dispatch": dispatch})


class TestBuildRegistry:
    def test_catalog_defaults_and_chain_names_registered(self) -> None:
        config = _config(provider_chains={"email": {"primary": "mailer-a", "fallbacks": ["sendgrid"]}})

        registry = build_registry(config)

        assert set(registry.get_identifiers()) == {*CHANNEL_DEFAULT_PROVIDERS.values(), "mailer-a"}
        assert registry.providers_for_channel(Channel.EMAIL) == ("mailer-a", "sendgrid")
        assert registry.default_provider(Channel.SMS) == "twilio"

    def test_invalid_provider_name_rejected(self) -> None:
        config = _config(provider_chains={"sms": {"primary": "9-bad name"}})

        with pytest.raises(ValueError):
            _ = build_registry(config)


class TestOpenLocalRuntime:
    @pytest.mark.asyncio
    async def test_queued_mode_enqueues_jobs(self) -> None:
        async with open_local_runtime(_config()) as runtime:
            receipt = await runtime.service.send_single(make_request(Channel.SMS), created_by="tests")

        assert receipt.status == "queued"
        assert [job.notification_id for job in runtime.queues[Channel.SMS].jobs] == [receipt.id]
        record = runtime.notifications.get(receipt.id)
        assert record is not None
        assert record.status is NotificationStatus.QUEUED

    @pytest.mark.asyncio
    async def test_direct_mode_falls_back_on_failing_credentials(self) -> None:
        config = _config(
            delivery_mode="direct",
            provider_chains={"email": {"primary": "mailer-a", "fallbacks": ["mailer-b"]}},
        )

        async with open_local_runtime(config, credentials={"mailer-a": {"fail": True}}) as runtime:
            result = await runtime.service.broadcast(1, EVERYONE, [Channel.EMAIL], literal_content(), created_by="tests")

        assert result.success is True
        assert result.results[0].provider == "mailer-b"
        assert [attempt.provider for attempt in result.results[0].attempts] == ["mailer-a", "mailer-b"]
        assert all(queue.jobs == [] for queue in runtime.queues.values())
        assert [record.status for record in runtime.notifications.all()] == [NotificationStatus.SENT]

    @pytest.mark.asyncio
    async def test_race_leftovers_finish_before_exit(self) -> None:
        options = BroadcastOptions(policy=BroadcastPolicy.RACE)

        async with open_local_runtime(_config(delivery_mode="direct")) as runtime:
            result = await runtime.service.broadcast(
                1,
                EVERYONE,
                [Channel.EMAIL, Channel.SMS, Channel.PUSH],
                literal_content(),
                options,
                created_by="tests",
            )

        assert result.success is True
        assert runtime.fanout.pending_count == 0
        statuses = [record.status for record in runtime.notifications.all()]
        assert statuses == [NotificationStatus.SENT] * 3

    @pytest.mark.asyncio
    async def test_supplied_directory_enriches_recipients(self) -> None:
        directory = StaticUserDirectory([DirectoryUser(user_id="u-9", email="nine@example.com")])

        async with open_local_runtime(_config(), directory=directory) as runtime:
            _ = await runtime.service.send_single(
                make_request(Channel.EMAIL, recipient=Recipient(user_id="u-9")),
                created_by="tests",
            )

        assert runtime.queues[Channel.EMAIL].jobs[0].recipient["email"] == "nine@example.com"
