"""Entry point tying the orchestrators together for each request shape."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime

from notify_dispatch.core.batch import BatchChunkCoordinator
from notify_dispatch.core.broadcast import ChannelFanoutOrchestrator
from notify_dispatch.core.errors import AllProvidersFailedError, ConfigurationError
from notify_dispatch.core.fallback import validate_provider_chain
from notify_dispatch.core.multi import RecipientChannelMatrixOrchestrator
from notify_dispatch.core.validation import NotificationValidator
from notify_dispatch.types import (
    Batch,
    BatchReceipt,
    BroadcastOptions,
    BroadcastResult,
    Channel,
    ChannelSender,
    ChannelSendRequest,
    ChunkReceipt,
    Content,
    MultiOptions,
    MultiResult,
    NotificationRecord,
    NotificationStatus,
    Priority,
    ProviderChain,
    ProviderChainMap,
    Recipient,
    RecipientEnricher,
    SendReceipt,
)
from notify_dispatch.utils.logging import get_logger, log_with_context

__all__ = ["NotificationService"]


class NotificationService:
    """Single, broadcast, multi and batch dispatch behind one object."""

    def __init__(
        self,
        validator: NotificationValidator,
        enricher: RecipientEnricher,
        sender: ChannelSender,
        broadcaster: ChannelFanoutOrchestrator,
        multi: RecipientChannelMatrixOrchestrator,
        batches: BatchChunkCoordinator,
        *,
        default_chains: ProviderChainMap | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._validator: NotificationValidator = validator
        self._enricher: RecipientEnricher = enricher
        self._sender: ChannelSender = sender
        self._broadcaster: ChannelFanoutOrchestrator = broadcaster
        self._multi: RecipientChannelMatrixOrchestrator = multi
        self._batches: BatchChunkCoordinator = batches
        self._default_chains: dict[Channel, ProviderChain] = dict(default_chains or {})
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def send_single(
        self,
        request: ChannelSendRequest,
        *,
        created_by: str,
        chain: ProviderChain | None = None,
    ) -> SendReceipt:
        """Validate, enrich, re-validate and dispatch one notification.

        Raises:
            ConfigurationError: Invalid request or provider chain
            AllProvidersFailedError: Inline delivery exhausted the provider chain
        """
        if chain is not None and not validate_provider_chain(chain):
            msg = f"Invalid provider chain for channel {request.channel.value}"
            raise ConfigurationError(msg)
        self._validator.validate(request)

        enriched = await self._enricher.enrich(request.recipient, request.tenant_id)
        request = ChannelSendRequest(
            tenant_id=request.tenant_id,
            channel=request.channel,
            recipient=enriched,
            content=request.content,
            scheduled_at=request.scheduled_at,
            priority=request.priority,
            metadata=request.metadata,
        )
        self._validator.validate(request)

        result = await self._sender.send(
            request,
            chain or self._default_chains.get(request.channel),
            created_by=created_by,
        )
        if not result.success:
            message = result.error.message if result.error else "All providers failed"
            raise AllProvidersFailedError(message, result)

        log_with_context(
            self._logger,
            logging.INFO,
            "Single notification accepted",
            extra={"channel": request.channel.value, "notification_uuid": result.notification_uuid},
        )
        status = result.status or NotificationStatus.QUEUED
        return SendReceipt(
            id=result.notification_id or 0,
            uuid=result.notification_uuid or "",
            status=status.value,
            message=f"Notification {status.value} successfully",
        )

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
        return await self._broadcaster.broadcast(
            tenant_id,
            recipient,
            channels,
            content,
            options,
            created_by=created_by,
            scheduled_at=scheduled_at,
            priority=priority,
            metadata=metadata,
        )

    async def send_multi(
        self,
        tenant_id: int,
        recipients: Sequence[Recipient],
        channels: Sequence[Channel],
        content: Content,
        options: MultiOptions | None = None,
        *,
        created_by: str,
        scheduled_at: datetime | str | None = None,
        priority: Priority = Priority.LOW,
        metadata: Mapping[str, object] | None = None,
    ) -> MultiResult:
        return await self._multi.send_multi(
            tenant_id,
            recipients,
            channels,
            content,
            options,
            created_by=created_by,
            scheduled_at=scheduled_at,
            priority=priority,
            metadata=metadata,
        )

    async def send_batch(
        self,
        tenant_id: int,
        items: Sequence[ChannelSendRequest],
        *,
        created_by: str,
        expected_total: int | None = None,
    ) -> BatchReceipt:
        return await self._batches.send_batch(
            tenant_id,
            items,
            created_by=created_by,
            expected_total=expected_total,
        )

    async def submit_chunk(
        self,
        batch_id: str,
        batch_token: str,
        items: Sequence[ChannelSendRequest],
        *,
        created_by: str,
    ) -> ChunkReceipt:
        return await self._batches.submit_chunk(batch_id, batch_token, items, created_by=created_by)

    async def get_batch_status(self, batch_id: str) -> Batch:
        return await self._batches.get_batch_status(batch_id)

    async def list_batch_items(
        self,
        batch_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[NotificationRecord]:
        return await self._batches.list_batch_items(batch_id, limit=limit, offset=offset)
