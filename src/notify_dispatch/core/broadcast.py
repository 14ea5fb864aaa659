"""Broadcast: one message to one recipient across several channels."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from uuid import uuid4

from notify_dispatch.core.errors import ConfigurationError, RequireAllSuccessError
from notify_dispatch.core.fallback import validate_provider_chain
from notify_dispatch.core.fanout import ChannelFanout, ChannelTask
from notify_dispatch.types import (
    BroadcastOptions,
    BroadcastResult,
    Channel,
    ChannelSendRequest,
    Content,
    Priority,
    ProviderChain,
    ProviderChainMap,
    Recipient,
    RecipientEnricher,
    utc_now,
)
from notify_dispatch.utils.logging import (
    get_logger,
    log_with_context,
    reset_correlation_id,
    set_correlation_id,
)

__all__ = ["ChannelFanoutOrchestrator", "check_content", "check_provider_chains"]


def check_content(content: Content) -> None:
    """Raise ConfigurationError unless exactly one content form is set."""
    if not content.is_well_formed:
        msg = "Exactly one of template reference or literal content must be provided"
        raise ConfigurationError(msg)


def check_provider_chains(chains: ProviderChainMap) -> None:
    """Raise ConfigurationError for the first invalid chain."""
    for channel, chain in chains.items():
        if not validate_provider_chain(chain):
            msg = f"Invalid provider chain for channel {channel.value}"
            raise ConfigurationError(msg)


class ChannelFanoutOrchestrator:
    """Send one logical message to one recipient over N channels.

    The recipient is enriched once and shared by every channel. All channel
    requests carry the same ``broadcast_id`` in their metadata.

    Args:
        fanout: Concurrent per-channel dispatcher
        enricher: Recipient enrichment collaborator
        default_chains: Provider chains used when the caller names none
        id_factory: Builds broadcast identifiers
        logger_obj: Optional logger override
    """

    def __init__(
        self,
        fanout: ChannelFanout,
        enricher: RecipientEnricher,
        *,
        default_chains: ProviderChainMap | None = None,
        id_factory: Callable[[], str] | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._fanout: ChannelFanout = fanout
        self._enricher: RecipientEnricher = enricher
        self._default_chains: dict[Channel, ProviderChain] = dict(default_chains or {})
        self._id_factory: Callable[[], str] = id_factory or (lambda: f"broadcast-{uuid4().hex}")
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def broadcast(
        self,
        tenant_id: int,
        recipient: Recipient,
        channels: Sequence[Channel],
        content: Content,
        options: BroadcastOptions | None = None,
        *,
        created_by: str,
        scheduled_at: datetime | None = None,
        priority: Priority = Priority.LOW,
        metadata: Mapping[str, object] | None = None,
    ) -> BroadcastResult:
        """Dispatch ``content`` to ``recipient`` on every channel.

        Raises:
            ConfigurationError: Before any dispatch, for zero channels, malformed
                content or an invalid provider chain
            RequireAllSuccessError: After every channel was attempted, when
                ``require_all_success`` is set and any channel failed
        """
        options = options or BroadcastOptions()
        if not channels:
            msg = "At least one channel must be specified"
            raise ConfigurationError(msg)
        check_content(content)
        check_provider_chains(options.provider_chains)

        broadcast_id = self._id_factory()
        token = set_correlation_id(broadcast_id)
        try:
            log_with_context(
                self._logger,
                logging.INFO,
                "Broadcasting notification",
                extra={
                    "tenant_id": tenant_id,
                    "channels": [channel.value for channel in channels],
                    "policy": options.policy.value,
                },
            )

            enriched = await self._enricher.enrich(recipient, tenant_id)

            request_metadata = {**(metadata or {}), "broadcast_id": broadcast_id}
            tasks: list[ChannelTask] = [
                (
                    ChannelSendRequest(
                        tenant_id=tenant_id,
                        channel=channel,
                        recipient=enriched,
                        content=content,
                        scheduled_at=scheduled_at,
                        priority=priority,
                        metadata=request_metadata,
                    ),
                    options.provider_chains.get(channel) or self._default_chains.get(channel),
                )
                for channel in channels
            ]
            results = await self._fanout.run(tasks, options.policy, created_by=created_by)
        finally:
            reset_correlation_id(token)

        success_count = sum(1 for result in results if result.success)
        failure_count = len(results) - success_count
        result = BroadcastResult(
            success=success_count > 0,
            broadcast_id=broadcast_id,
            total_channels=len(channels),
            success_count=success_count,
            failure_count=failure_count,
            results=results,
            timestamp=utc_now(),
            metadata={
                **(metadata or {}),
                "broadcast_id": broadcast_id,
                "tenant_id": tenant_id,
                "policy": options.policy.value,
            },
        )

        if options.require_all_success and failure_count > 0:
            msg = f"{failure_count} of {len(channels)} channels failed"
            raise RequireAllSuccessError(
                msg,
                failed=failure_count,
                total=len(channels),
                result=result,
            )

        return result
