"""Chunked batch submission authenticated by a per-batch secret token.

The token is generated once when the batch is opened and returned to the
caller exactly once. Every chunk must present it; a mismatch is terminal.
Batch counters are never incremented in place: they are recomputed from the
full list of the batch's items, so repeated or concurrent refreshes converge
on the same values without locking.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Callable, Sequence
from datetime import datetime

from notify_dispatch.core.errors import AuthorizationError, ConfigurationError, NotFoundError
from notify_dispatch.core.validation import NotificationValidator
from notify_dispatch.types import (
    Batch,
    BatchReceipt,
    BatchStats,
    BatchStatus,
    BatchStore,
    Channel,
    ChannelSender,
    ChannelSendRequest,
    ChunkReceipt,
    NotificationRecord,
    NotificationStore,
    ProviderChain,
    ProviderChainMap,
    RecipientEnricher,
    utc_now,
)
from notify_dispatch.utils.logging import (
    get_logger,
    log_with_context,
    reset_correlation_id,
    set_correlation_id,
)

__all__ = ["BatchChunkCoordinator", "compute_batch_stats"]

DEFAULT_TOKEN_BYTES = 32
DEFAULT_PAGE_SIZE = 100


def compute_batch_stats(items: Sequence[NotificationRecord]) -> BatchStats:
    """Count items by terminal-state timestamps."""
    return BatchStats(
        sent=sum(1 for item in items if item.sent_at is not None),
        delivered=sum(1 for item in items if item.delivered_at is not None),
        failed=sum(1 for item in items if item.failed_at is not None),
    )


def _tokens_match(expected: str, presented: str) -> bool:
    return hmac.compare_digest(expected.encode(), presented.encode())


class BatchChunkCoordinator:
    """Open batches, authenticate chunks and refresh batch counters.

    Args:
        batches: Batch record persistence
        notifications: Notification record persistence, scanned for stats
        sender: Dispatches each chunk item the same way as a single send
        enricher: Recipient enrichment collaborator
        validator: Item validation, applied before and after enrichment
        chains: Provider chain per channel applied to chunk items
        token_bytes: Randomness used for each batch token
        clock: Source of the current time
        logger_obj: Optional logger override
    """

    def __init__(
        self,
        batches: BatchStore,
        notifications: NotificationStore,
        sender: ChannelSender,
        enricher: RecipientEnricher,
        validator: NotificationValidator | None = None,
        *,
        chains: ProviderChainMap | None = None,
        token_bytes: int = DEFAULT_TOKEN_BYTES,
        clock: Callable[[], datetime] = utc_now,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._batches: BatchStore = batches
        self._notifications: NotificationStore = notifications
        self._sender: ChannelSender = sender
        self._enricher: RecipientEnricher = enricher
        self._validator: NotificationValidator = validator or NotificationValidator()
        self._chains: dict[Channel, ProviderChain] = dict(chains or {})
        self._token_bytes: int = token_bytes
        self._clock: Callable[[], datetime] = clock
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def create_batch(
        self,
        tenant_id: int,
        created_by: str,
        *,
        status: BatchStatus,
        expected_total: int | None = None,
    ) -> BatchReceipt:
        """Open a batch and issue its secret token.

        The tenant and initial status are always supplied by the caller.
        """
        if expected_total is not None and expected_total < 0:
            msg = "expected_total must not be negative"
            raise ConfigurationError(msg)

        batch = await self._batches.create(
            batch_token=secrets.token_urlsafe(self._token_bytes),
            tenant_id=tenant_id,
            status=status,
            created_by=created_by,
            expected_total=expected_total,
        )
        log_with_context(
            self._logger,
            logging.INFO,
            "Batch opened",
            extra={
                "batch_id": batch.batch_id,
                "tenant_id": tenant_id,
                "expected_total": expected_total,
            },
        )
        return BatchReceipt(batch_id=batch.batch_id, batch_token=batch.batch_token)

    async def send_batch(
        self,
        tenant_id: int,
        items: Sequence[ChannelSendRequest],
        *,
        created_by: str,
        expected_total: int | None = None,
    ) -> BatchReceipt:
        """Open a batch and process its first chunk."""
        receipt = await self.create_batch(
            tenant_id,
            created_by,
            status=BatchStatus.PENDING,
            expected_total=expected_total,
        )
        chunk = await self.submit_chunk(
            receipt.batch_id,
            receipt.batch_token,
            items,
            created_by=created_by,
        )
        return BatchReceipt(
            batch_id=receipt.batch_id,
            batch_token=receipt.batch_token,
            chunk_processed=chunk.chunk_processed,
        )

    async def submit_chunk(
        self,
        batch_id: str,
        batch_token: str,
        items: Sequence[ChannelSendRequest],
        *,
        created_by: str,
    ) -> ChunkReceipt:
        """Authenticate a chunk and dispatch each of its items.

        Raises:
            NotFoundError: Unknown batch id
            AuthorizationError: Token does not match the batch's token
            ConfigurationError: An item is invalid or belongs to another tenant;
                checked before any item is dispatched
        """
        batch = await self._load(batch_id)
        if not _tokens_match(batch.batch_token, batch_token):
            log_with_context(
                self._logger,
                logging.WARNING,
                "Chunk rejected: invalid batch token",
                extra={"batch_id": batch_id},
            )
            msg = "Invalid batch token"
            raise AuthorizationError(msg)

        for item in items:
            if item.tenant_id != batch.tenant_id:
                msg = f"Chunk item tenant {item.tenant_id} does not match batch tenant {batch.tenant_id}"
                raise ConfigurationError(msg)
            self._validator.validate(item)

        token = set_correlation_id(batch_id)
        try:
            for item in items:
                enriched = await self._enricher.enrich(item.recipient, item.tenant_id)
                request = ChannelSendRequest(
                    tenant_id=item.tenant_id,
                    channel=item.channel,
                    recipient=enriched,
                    content=item.content,
                    scheduled_at=item.scheduled_at,
                    priority=item.priority,
                    metadata={**item.metadata, "batch_id": batch_id},
                )
                self._validator.validate(request)
                _ = await self._sender.send(
                    request,
                    self._chains.get(request.channel),
                    created_by=created_by,
                    batch_id=batch.id,
                )

            _ = await self.refresh_stats(batch_id)
            log_with_context(
                self._logger,
                logging.INFO,
                "Chunk processed",
                extra={"batch_id": batch_id, "chunk_processed": len(items)},
            )
        finally:
            reset_correlation_id(token)

        return ChunkReceipt(batch_id=batch_id, chunk_processed=len(items))

    async def refresh_stats(self, batch_id: str) -> Batch:
        """Recompute the batch counters from every item of the batch.

        Raises:
            NotFoundError: Unknown batch id
        """
        batch = await self._load(batch_id)
        items = await self._notifications.list_by_batch(batch.id)
        return await self._batches.update_stats(batch_id, compute_batch_stats(items), self._clock())

    async def get_batch_status(self, batch_id: str) -> Batch:
        """Return the persisted batch, counters included.

        Raises:
            NotFoundError: Unknown batch id
        """
        return await self._load(batch_id)

    async def list_batch_items(
        self,
        batch_id: str,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[NotificationRecord]:
        batch = await self._load(batch_id)
        return await self._notifications.list_by_batch(batch.id, limit=limit, offset=offset)

    async def _load(self, batch_id: str) -> Batch:
        batch = await self._batches.get(batch_id)
        if batch is None:
            msg = f"Batch {batch_id} not found"
            raise NotFoundError(msg)
        return batch
