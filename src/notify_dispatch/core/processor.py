"""Per-item processing shared by single sends, fan-outs and batch chunks.

Each item is rendered, persisted as a notification record and, in queued
delivery, handed to the channel's queue with its priority, delay and retry
policy. The queue layer owns retries; this module only decides what to
enqueue.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Final
from uuid import uuid4

from notify_dispatch.core.errors import ConfigurationError
from notify_dispatch.types import (
    Channel,
    ChannelSendRequest,
    Content,
    EventPublisher,
    JobQueue,
    LifecycleEvent,
    LifecycleEventType,
    NotificationRecord,
    NotificationStatus,
    NotificationStore,
    ProviderChain,
    QueueJob,
    QueueTable,
    RenderedContent,
    TemplateRenderer,
    utc_now,
)
from notify_dispatch.utils.logging import get_logger, log_with_context
from notify_dispatch.utils.sanitization import sanitize_exception

__all__ = [
    "JOB_ATTEMPTS",
    "JOB_BACKOFF_DELAY_MS",
    "NotificationProcessor",
    "QueueRouter",
    "compute_delay_ms",
    "queue_priority",
    "render_content",
]

JOB_ATTEMPTS: Final[int] = 3
JOB_BACKOFF_DELAY_MS: Final[int] = 2000

# Queue priority: lower number is served first
_QUEUE_PRIORITY_CEILING: Final[int] = 5

type Clock = Callable[[], datetime]


class QueueRouter:
    """Lookup table from channel to queue handle.

    Raises:
        ConfigurationError: At construction, if any channel has no queue
    """

    def __init__(self, queues: QueueTable) -> None:
        missing = [channel.value for channel in Channel if channel not in queues]
        if missing:
            msg = f"No queue configured for channel(s): {', '.join(missing)}"
            raise ConfigurationError(msg)
        self._queues: dict[Channel, JobQueue] = dict(queues)

    def queue_for(self, channel: Channel) -> JobQueue:
        return self._queues[channel]


def queue_priority(priority_id: int) -> int:
    """Map a persisted priority id (1 = low ... 4 = urgent) to a queue priority."""
    return _QUEUE_PRIORITY_CEILING - priority_id


def compute_delay_ms(scheduled_at: datetime | None, now: datetime) -> int:
    """Milliseconds until ``scheduled_at``; zero when unset or in the past.

    Naive datetimes are taken to be UTC.
    """
    if scheduled_at is None:
        return 0
    if scheduled_at.tzinfo is None:
        scheduled_at = scheduled_at.replace(tzinfo=UTC)
    delay = int((scheduled_at - now).total_seconds() * 1000)
    return max(delay, 0)


async def render_content(
    content: Content,
    tenant_id: int,
    renderer: TemplateRenderer,
) -> RenderedContent:
    """Render a template reference, or pass literal content through unchanged."""
    if content.template is not None:
        return await renderer.render(content.template, tenant_id)
    if content.literal is None:
        msg = "Either a template reference or literal content must be provided"
        raise ConfigurationError(msg)
    literal = content.literal
    return RenderedContent(body=literal.body, subject=literal.subject, html_body=literal.html_body)


def _chain_metadata(chain: ProviderChain) -> dict[str, object]:
    return {"primary": chain.primary, "fallbacks": list(chain.fallbacks)}


class NotificationProcessor:
    """Render, persist, enqueue and announce one notification.

    Args:
        store: Notification record persistence
        router: Channel to queue lookup table
        renderer: Template rendering collaborator
        publisher: Lifecycle event collaborator; failures are logged, never raised
        clock: Source of the current time, overridable in tests
        logger_obj: Optional logger override
    """

    def __init__(
        self,
        store: NotificationStore,
        router: QueueRouter,
        renderer: TemplateRenderer,
        publisher: EventPublisher,
        *,
        clock: Clock = utc_now,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._store: NotificationStore = store
        self._router: QueueRouter = router
        self._renderer: TemplateRenderer = renderer
        self._publisher: EventPublisher = publisher
        self._clock: Clock = clock
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def prepare(
        self,
        request: ChannelSendRequest,
        created_by: str,
        *,
        batch_id: int | None = None,
        chain: ProviderChain | None = None,
    ) -> NotificationRecord:
        """Render content and persist a pending notification record."""
        rendered = await render_content(request.content, request.tenant_id, self._renderer)

        metadata: dict[str, object] = dict(request.metadata)
        if chain is not None:
            metadata["provider_chain"] = _chain_metadata(chain)

        template = request.content.template
        record = NotificationRecord(
            id=0,  # assigned by the store
            uuid=str(uuid4()),
            tenant_id=request.tenant_id,
            channel=request.channel,
            recipient=request.recipient,
            content=rendered,
            status=NotificationStatus.PENDING,
            priority_id=request.priority.priority_id,
            created_by=created_by,
            scheduled_at=request.scheduled_at,
            batch_id=batch_id,
            template_id=(template.template_id or template.template_code) if template else None,
            metadata=metadata,
            created_at=self._clock(),
        )
        return await self._store.create(record)

    async def process(
        self,
        request: ChannelSendRequest,
        created_by: str,
        *,
        batch_id: int | None = None,
        chain: ProviderChain | None = None,
    ) -> NotificationRecord:
        """Persist the notification and enqueue it on its channel's queue.

        Returns:
            The persisted record, status ``queued``
        """
        record = await self.prepare(request, created_by, batch_id=batch_id, chain=chain)

        job = QueueJob(
            notification_id=record.id,
            notification_uuid=record.uuid,
            tenant_id=record.tenant_id,
            channel=record.channel,
            recipient={
                "user_id": record.recipient.user_id,
                "email": record.recipient.email,
                "phone": record.recipient.phone,
            },
            content=record.content,
            metadata=record.metadata,
            priority=queue_priority(record.priority_id),
            delay_ms=compute_delay_ms(record.scheduled_at, self._clock()),
            attempts=JOB_ATTEMPTS,
            backoff_delay_ms=JOB_BACKOFF_DELAY_MS,
        )
        await self._router.queue_for(record.channel).add(job)
        record = await self._store.update_status(
            record.id,
            NotificationStatus.QUEUED,
            timestamp=self._clock(),
        )

        log_with_context(
            self._logger,
            logging.INFO,
            "Notification queued",
            extra={
                "notification_uuid": record.uuid,
                "channel": record.channel.value,
                "tenant_id": record.tenant_id,
                "delay_ms": job.delay_ms,
                "queue_priority": job.priority,
            },
        )
        await self.publish(LifecycleEventType.QUEUED, record)
        return record

    async def publish(self, event_type: LifecycleEventType, record: NotificationRecord) -> None:
        """Publish a lifecycle event; a publisher failure never fails the dispatch."""
        event = LifecycleEvent(
            event_id=str(uuid4()),
            event_type=event_type,
            notification_id=record.id,
            tenant_id=record.tenant_id,
            channel=record.channel,
            recipient_user_id=record.recipient.user_id,
            timestamp=self._clock(),
        )
        try:
            await self._publisher.publish(event)
        except Exception as exc:
            log_with_context(
                self._logger,
                logging.WARNING,
                "Lifecycle event publish failed",
                extra={
                    "event_type": event_type.value,
                    "notification_uuid": record.uuid,
                    "error_message": sanitize_exception(exc),
                },
            )

    async def update_status(
        self,
        record: NotificationRecord,
        status: NotificationStatus,
    ) -> NotificationRecord:
        return await self._store.update_status(record.id, status, timestamp=self._clock())

