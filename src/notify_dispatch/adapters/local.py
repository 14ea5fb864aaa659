"""Wire a NotificationService from configuration with local collaborators.

Persistence, queues and events are in memory. Every provider named in the
configured chains, plus each channel's catalog default, is registered as a
LoggingProvider so chains run end to end without vendor integrations. The
user directory is HTTP when a base URL is configured, otherwise empty.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

from notify_dispatch.adapters.http_directory import HttpUserDirectory
from notify_dispatch.adapters.memory import (
    InMemoryBatchStore,
    InMemoryJobQueue,
    InMemoryNotificationStore,
    LoggingEventPublisher,
    StaticCredentialStore,
    StaticTemplateRenderer,
    StaticUserDirectory,
    build_queue_table,
)
from notify_dispatch.core.batch import BatchChunkCoordinator
from notify_dispatch.core.broadcast import ChannelFanoutOrchestrator
from notify_dispatch.core.config import MainConfig
from notify_dispatch.core.enrichment import DirectoryRecipientEnricher
from notify_dispatch.core.fallback import ProviderFallbackExecutor
from notify_dispatch.core.fanout import ChannelFanout
from notify_dispatch.core.multi import RecipientChannelMatrixOrchestrator
from notify_dispatch.core.processor import NotificationProcessor, QueueRouter
from notify_dispatch.core.senders import DirectChannelSender, QueuedChannelSender
from notify_dispatch.core.service import NotificationService
from notify_dispatch.core.timezone import TimezoneResolver
from notify_dispatch.core.validation import NotificationValidator
from notify_dispatch.plugins.logging_provider import logging_provider_factory
from notify_dispatch.plugins.registry import CHANNEL_DEFAULT_PROVIDERS, ProviderRegistry
from notify_dispatch.types import (
    Channel,
    ChannelSender,
    Credentials,
    RenderedContent,
    UserDirectory,
)

__all__ = ["LocalRuntime", "build_registry", "open_local_runtime"]


@dataclass(slots=True)
class LocalRuntime:
    """A wired service plus handles on its in-memory collaborators."""

    service: NotificationService
    registry: ProviderRegistry
    notifications: InMemoryNotificationStore
    batches: InMemoryBatchStore
    queues: dict[Channel, InMemoryJobQueue]
    events: LoggingEventPublisher
    fanout: ChannelFanout


def build_registry(config: MainConfig) -> ProviderRegistry:
    """Register a LoggingProvider under every provider name the config can reach."""
    channels_by_name: dict[str, set[Channel]] = {}
    for channel, name in CHANNEL_DEFAULT_PROVIDERS.items():
        channels_by_name.setdefault(name, set()).add(channel)
    for channel, chain in config.dispatch.chains().items():
        for name in chain.providers:
            channels_by_name.setdefault(name, set()).add(channel)

    registry = ProviderRegistry()
    for name in sorted(channels_by_name):
        registry.register(
            name,
            logging_provider_factory(name),
            channels=frozenset(channels_by_name[name]),
        )
    return registry


@asynccontextmanager
async def open_local_runtime(
    config: MainConfig,
    *,
    directory: UserDirectory | None = None,
    templates: Mapping[str, RenderedContent] | None = None,
    credentials: Mapping[str, Credentials] | None = None,
) -> AsyncIterator[LocalRuntime]:
    """Build the service, open the HTTP directory if any, and clean up on exit.

    Raced channels still running when the block exits are awaited first.
    """
    async with AsyncExitStack() as stack:
        user_directory: UserDirectory
        if directory is not None:
            user_directory = directory
        elif config.directory.base_url:
            user_directory = await stack.enter_async_context(
                HttpUserDirectory(
                    config.directory.base_url,
                    timeout_seconds=config.directory.timeout_seconds,
                )
            )
        else:
            user_directory = StaticUserDirectory()

        registry = build_registry(config)
        notifications = InMemoryNotificationStore()
        batches = InMemoryBatchStore()
        queues = build_queue_table(config.dispatch.queues)
        events = LoggingEventPublisher()
        validator = NotificationValidator()
        enricher = DirectoryRecipientEnricher(user_directory)
        chains = config.dispatch.chains()

        processor = NotificationProcessor(
            notifications,
            QueueRouter(queues),
            StaticTemplateRenderer(templates),
            events,
        )
        sender: ChannelSender
        if config.dispatch.delivery_mode == "direct":
            sender = DirectChannelSender(
                processor,
                ProviderFallbackExecutor(registry),
                StaticCredentialStore(credentials),
                registry.default_provider,
            )
        else:
            sender = QueuedChannelSender(processor)

        fanout = ChannelFanout(sender, validator)
        service = NotificationService(
            validator,
            enricher,
            sender,
            ChannelFanoutOrchestrator(fanout, enricher, default_chains=chains),
            RecipientChannelMatrixOrchestrator(
                fanout,
                enricher,
                TimezoneResolver(user_directory),
                default_chains=chains,
            ),
            BatchChunkCoordinator(
                batches,
                notifications,
                sender,
                enricher,
                validator,
                chains=chains,
                token_bytes=config.batch.token_bytes,
            ),
            default_chains=chains,
        )

        runtime = LocalRuntime(
            service=service,
            registry=registry,
            notifications=notifications,
            batches=batches,
            queues=queues,
            events=events,
            fanout=fanout,
        )
        try:
            yield runtime
        finally:
            await fanout.wait_for_pending()
