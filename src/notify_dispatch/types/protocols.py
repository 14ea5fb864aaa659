"""Protocol definitions for collaborator interfaces.

The orchestrators depend only on these structural contracts, so every
collaborator (provider integrations, user directory, queue, event bus,
persistence, template rendering) can be substituted without inheritance.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from notify_dispatch.types.models import (
    Batch,
    BatchStats,
    BatchStatus,
    ChannelResult,
    ChannelSendRequest,
    DirectoryUser,
    LifecycleEvent,
    NotificationRecord,
    NotificationStatus,
    ProviderChain,
    ProviderSendResult,
    QueueJob,
    Recipient,
    RenderedContent,
    TemplateRef,
)


@runtime_checkable
class NotificationProvider(Protocol):
    """Concrete integration capable of sending on one channel."""

    async def validate(self) -> bool:
        """Check that the provider is usable with its credentials.

        Returns:
            True if the provider can attempt a send
        """
        ...

    async def send(
        self,
        recipient: Mapping[str, str | None],
        content: RenderedContent,
        options: Mapping[str, object],
    ) -> ProviderSendResult:
        """Deliver content to the recipient.

        Raises:
            Exception: Any failure; the fallback executor records it as an attempt
        """
        ...


class ProviderResolver(Protocol):
    """Builds provider instances by name and decrypted credentials."""

    def get_provider(
        self,
        name: str,
        credentials: Mapping[str, object],
    ) -> NotificationProvider: ...

    def record_success(self, name: str) -> object: ...

    def record_failure(self, name: str, *, error_message: str | None = None) -> object: ...


class RecipientEnricher(Protocol):
    """Fills missing recipient contact data from a directory.

    Implementations must return the input unchanged on lookup failure.
    """

    async def enrich(self, recipient: Recipient, tenant_id: int) -> Recipient: ...

    async def enrich_many(
        self,
        recipients: Sequence[Recipient],
        tenant_id: int,
    ) -> list[Recipient]: ...


class UserDirectory(Protocol):
    """External user directory."""

    async def get_by_id(self, user_id: str) -> DirectoryUser | None: ...


class JobQueue(Protocol):
    """Queue handle for one channel. Owns retry and backoff."""

    async def add(self, job: QueueJob) -> None: ...


class EventPublisher(Protocol):
    """Event/telemetry bus."""

    async def publish(self, event: LifecycleEvent) -> None: ...


class TemplateRenderer(Protocol):
    """Template rendering collaborator."""

    async def render(self, template: TemplateRef, tenant_id: int) -> RenderedContent: ...


class CredentialStore(Protocol):
    """Returns decrypted provider credentials for a tenant."""

    async def get_credentials(self, tenant_id: int, provider: str) -> Mapping[str, object]: ...


class NotificationStore(Protocol):
    """Persistence for notification records."""

    async def create(self, record: NotificationRecord) -> NotificationRecord: ...

    async def update_status(
        self,
        notification_id: int,
        status: NotificationStatus,
        *,
        timestamp: datetime,
    ) -> NotificationRecord: ...

    async def list_by_batch(
        self,
        batch_id: int,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[NotificationRecord]: ...


class BatchStore(Protocol):
    """Persistence for batch records."""

    async def create(
        self,
        *,
        batch_token: str,
        tenant_id: int,
        status: BatchStatus,
        created_by: str,
        expected_total: int | None,
    ) -> Batch: ...

    async def get(self, batch_id: str) -> Batch | None: ...

    async def update_stats(self, batch_id: str, stats: BatchStats, updated_at: datetime) -> Batch: ...


class ChannelSender(Protocol):
    """Dispatches one channel request and reports the outcome as data."""

    async def send(
        self,
        request: ChannelSendRequest,
        chain: ProviderChain | None,
        *,
        created_by: str,
        batch_id: int | None = None,
    ) -> ChannelResult: ...
