"""In-memory collaborators for local runs and tests.

Each class satisfies one collaborator protocol from ``notify_dispatch.types``
and keeps its state in plain Python containers guarded by an asyncio lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import datetime
from uuid import uuid4

from notify_dispatch.core.errors import ConfigurationError, NotFoundError
from notify_dispatch.types import (
    Batch,
    BatchStats,
    BatchStatus,
    Channel,
    Credentials,
    DirectoryUser,
    LifecycleEvent,
    NotificationRecord,
    NotificationStatus,
    QueueJob,
    RenderedContent,
    TemplateRef,
    utc_now,
)
from notify_dispatch.utils.logging import get_logger, log_with_context

__all__ = [
    "InMemoryBatchStore",
    "InMemoryJobQueue",
    "InMemoryNotificationStore",
    "LoggingEventPublisher",
    "StaticCredentialStore",
    "StaticTemplateRenderer",
    "StaticUserDirectory",
    "build_queue_table",
]


class InMemoryNotificationStore:
    """Notification records keyed by an auto-incremented id."""

    def __init__(self) -> None:
        self._records: dict[int, NotificationRecord] = {}
        self._next_id: int = 1
        self._lock: asyncio.Lock = asyncio.Lock()

    async def create(self, record: NotificationRecord) -> NotificationRecord:
        async with self._lock:
            stored = replace(record, id=self._next_id)
            self._records[stored.id] = stored
            self._next_id += 1
            return stored

    async def update_status(
        self,
        notification_id: int,
        status: NotificationStatus,
        *,
        timestamp: datetime,
    ) -> NotificationRecord:
        async with self._lock:
            record = self._records.get(notification_id)
            if record is None:
                msg = f"Notification {notification_id} not found"
                raise NotFoundError(msg)
            record.status = status
            match status:
                case NotificationStatus.SENT:
                    record.sent_at = timestamp
                case NotificationStatus.DELIVERED:
                    record.delivered_at = timestamp
                case NotificationStatus.FAILED:
                    record.failed_at = timestamp
                case NotificationStatus.PENDING | NotificationStatus.QUEUED:
                    pass
            return record

    async def list_by_batch(
        self,
        batch_id: int,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[NotificationRecord]:
        async with self._lock:
            # Newest first
            items = sorted(
                (record for record in self._records.values() if record.batch_id == batch_id),
                key=lambda record: record.id,
                reverse=True,
            )
        end = None if limit is None else offset + limit
        return items[offset:end]

    def get(self, notification_id: int) -> NotificationRecord | None:
        return self._records.get(notification_id)

    def all(self) -> list[NotificationRecord]:
        return [self._records[key] for key in sorted(self._records)]


class InMemoryBatchStore:
    """Batch records keyed by their public batch id."""

    def __init__(self) -> None:
        self._batches: dict[str, Batch] = {}
        self._next_id: int = 1
        self._lock: asyncio.Lock = asyncio.Lock()

    async def create(
        self,
        *,
        batch_token: str,
        tenant_id: int,
        status: BatchStatus,
        created_by: str,
        expected_total: int | None,
    ) -> Batch:
        async with self._lock:
            now = utc_now()
            batch = Batch(
                id=self._next_id,
                batch_id=str(uuid4()),
                batch_token=batch_token,
                tenant_id=tenant_id,
                status=status,
                created_by=created_by,
                expected_total=expected_total,
                created_at=now,
                updated_at=now,
            )
            self._batches[batch.batch_id] = batch
            self._next_id += 1
            return batch

    async def get(self, batch_id: str) -> Batch | None:
        return self._batches.get(batch_id)

    async def update_stats(self, batch_id: str, stats: BatchStats, updated_at: datetime) -> Batch:
        async with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                msg = f"Batch {batch_id} not found"
                raise NotFoundError(msg)
            batch.total_sent = stats.sent
            batch.total_delivered = stats.delivered
            batch.total_failed = stats.failed
            batch.updated_at = updated_at
            return batch


class InMemoryJobQueue:
    """Collects jobs for one channel; nothing is executed."""

    def __init__(self, name: str) -> None:
        self.name: str = name
        self.jobs: list[QueueJob] = []

    async def add(self, job: QueueJob) -> None:
        self.jobs.append(job)


def build_queue_table(names: Mapping[Channel, str]) -> dict[Channel, InMemoryJobQueue]:
    """Create one in-memory queue per channel, named from configuration."""
    return {channel: InMemoryJobQueue(name) for channel, name in names.items()}


class LoggingEventPublisher:
    """Writes lifecycle events to the log and keeps them for inspection."""

    def __init__(self, *, logger_obj: logging.Logger | None = None) -> None:
        self.events: list[LifecycleEvent] = []
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def publish(self, event: LifecycleEvent) -> None:
        self.events.append(event)
        log_with_context(
            self._logger,
            logging.DEBUG,
            "Lifecycle event",
            extra={
                "event_type": event.event_type.value,
                "notification_id": event.notification_id,
                "channel": event.channel.value,
                "tenant_id": event.tenant_id,
            },
        )


class StaticUserDirectory:
    """User directory backed by a fixed set of users."""

    def __init__(self, users: Iterable[DirectoryUser] = ()) -> None:
        self._users: dict[str, DirectoryUser] = {user.user_id: user for user in users}

    async def get_by_id(self, user_id: str) -> DirectoryUser | None:
        return self._users.get(user_id)


class StaticTemplateRenderer:
    """Renders templates from a fixed table with ``str.format_map`` placeholders.

    Templates are looked up by id, then by code.
    """

    def __init__(self, templates: Mapping[str, RenderedContent] | None = None) -> None:
        self._templates: dict[str, RenderedContent] = dict(templates or {})

    async def render(self, template: TemplateRef, tenant_id: int) -> RenderedContent:
        key = template.template_id or template.template_code
        stored = self._templates.get(key) if key else None
        if stored is None:
            msg = f"Template {key!r} not found for tenant {tenant_id}"
            raise NotFoundError(msg)

        variables = {name: str(value) for name, value in template.variables.items()}
        try:
            return RenderedContent(
                body=stored.body.format_map(variables),
                subject=stored.subject.format_map(variables) if stored.subject else None,
                html_body=stored.html_body.format_map(variables) if stored.html_body else None,
            )
        except KeyError as exc:
            msg = f"Template {key!r} references undefined variable {exc}"
            raise ConfigurationError(msg) from exc


class StaticCredentialStore:
    """Credentials per provider, shared by every tenant unless overridden."""

    def __init__(
        self,
        credentials: Mapping[str, Credentials] | None = None,
        *,
        tenant_overrides: Mapping[tuple[int, str], Credentials] | None = None,
    ) -> None:
        self._credentials: dict[str, Credentials] = dict(credentials or {})
        self._overrides: dict[tuple[int, str], Credentials] = dict(tenant_overrides or {})

    async def get_credentials(self, tenant_id: int, provider: str) -> Credentials:
        override = self._overrides.get((tenant_id, provider))
        if override is not None:
            return override
        return self._credentials.get(provider, {})
