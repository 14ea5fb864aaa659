"""Data models for notify-dispatch.

This module defines the dataclasses exchanged between the orchestrators and
their collaborators. Request-side models are frozen; result-side models are
mutable so the orchestrators can assemble them incrementally.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


def utc_now() -> datetime:
    """Return timezone-aware current datetime."""
    return datetime.now(tz=UTC)


class Channel(StrEnum):
    """Notification delivery medium."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    CHAT = "chat"
    IN_APP = "in_app"


class Priority(StrEnum):
    """Notification priority as requested by the caller."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def priority_id(self) -> int:
        """Persisted priority identifier (1 = low ... 4 = urgent)."""
        return _PRIORITY_IDS[self]


_PRIORITY_IDS: Mapping[Priority, int] = {
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
    Priority.URGENT: 4,
}


class NotificationStatus(StrEnum):
    """Lifecycle status of a persisted notification record."""

    PENDING = "pending"
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class BatchStatus(StrEnum):
    """Lifecycle status of a batch."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


class TimezoneMode(StrEnum):
    """Policy used to pick a recipient's delivery time zone."""

    CLIENT = "client"
    USER = "user"
    MIXED = "mixed"


class BroadcastPolicy(StrEnum):
    """Stop rule applied to a per-recipient channel fan-out."""

    PARALLEL_ALL = "parallel_all"
    RACE = "race"


class LifecycleEventType(StrEnum):
    """Lifecycle events published to the event collaborator."""

    QUEUED = "notification.queued"
    SENT = "notification.sent"
    FAILED = "notification.failed"


@dataclass(slots=True, frozen=True)
class Recipient:
    """Recipient identifier tuple.

    At least one of ``user_id``, ``email`` or ``phone`` must be populated
    before a request passes validation.
    """

    user_id: str | None = None
    email: str | None = None
    phone: str | None = None
    user_type: str | None = None
    metadata: Mapping[str, object] = field(default_factory=dict)

    @property
    def has_identifier(self) -> bool:
        return bool(self.user_id or self.email or self.phone)

    @property
    def identifier(self) -> str:
        """Best available identifier, used to label per-recipient results."""
        return self.user_id or self.email or self.phone or "unknown"


@dataclass(slots=True, frozen=True)
class TemplateRef:
    """Reference to a stored template, by id or by code."""

    template_id: str | None = None
    template_code: str | None = None
    variables: Mapping[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class LiteralContent:
    """Caller-supplied literal message content."""

    body: str
    subject: str | None = None
    html_body: str | None = None


@dataclass(slots=True, frozen=True)
class Content:
    """Either a template reference or literal content, never both."""

    template: TemplateRef | None = None
    literal: LiteralContent | None = None

    @property
    def is_well_formed(self) -> bool:
        return (self.template is None) != (self.literal is None)


@dataclass(slots=True, frozen=True)
class RenderedContent:
    """Content ready to hand to a provider."""

    body: str
    subject: str | None = None
    html_body: str | None = None


@dataclass(slots=True, frozen=True)
class ChannelSendRequest:
    """One notification intent for one recipient on one channel."""

    tenant_id: int
    channel: Channel
    recipient: Recipient
    content: Content
    scheduled_at: datetime | None = None
    priority: Priority = Priority.LOW
    metadata: Mapping[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ProviderChain:
    """Primary provider plus ordered fallbacks for one channel."""

    primary: str
    fallbacks: tuple[str, ...] = ()

    @property
    def providers(self) -> tuple[str, ...]:
        return (self.primary, *self.fallbacks)


@dataclass(slots=True, frozen=True)
class ErrorDetail:
    """Structured error reported as data on results."""

    code: str
    message: str


@dataclass(slots=True, frozen=True)
class ProviderAttempt:
    """Outcome of trying a single provider inside a chain."""

    provider: str
    attempt: int
    success: bool
    error: str | None = None
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class ExecutionResult:
    """Result of running a provider chain."""

    success: bool
    provider: str
    attempts: list[ProviderAttempt]
    message_id: str | None = None
    error: ErrorDetail | None = None


@dataclass(slots=True)
class ChannelResult:
    """Outcome of one channel for one recipient."""

    channel: Channel
    success: bool
    message_id: str | None = None
    provider: str | None = None
    timestamp: datetime = field(default_factory=utc_now)
    error: ErrorDetail | None = None
    attempts: tuple[ProviderAttempt, ...] = ()
    notification_id: int | None = None
    notification_uuid: str | None = None
    status: NotificationStatus | None = None


@dataclass(slots=True)
class BroadcastResult:
    """Aggregate result of a broadcast."""

    success: bool
    broadcast_id: str
    total_channels: int
    success_count: int
    failure_count: int
    results: list[ChannelResult]
    timestamp: datetime = field(default_factory=utc_now)
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True)
class UserChannelResult:
    """Outcome of every requested channel for one recipient."""

    recipient_id: str
    channels: list[ChannelResult]
    success_count: int
    failure_count: int
    timezone: str | None = None
    scheduled_at: datetime | None = None


@dataclass(slots=True)
class MultiResult:
    """Aggregate result of a multi-recipient, multi-channel send."""

    success: bool
    multi_id: str
    total_recipients: int
    total_channels: int
    user_results: list[UserChannelResult]
    timestamp: datetime = field(default_factory=utc_now)
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class TimezoneOptions:
    """Timezone resolution policy for scheduled multi-sends."""

    mode: TimezoneMode = TimezoneMode.USER
    timezone: str | None = None


@dataclass(slots=True, frozen=True)
class BroadcastOptions:
    """Caller options for a broadcast."""

    policy: BroadcastPolicy = BroadcastPolicy.PARALLEL_ALL
    require_all_success: bool = False
    provider_chains: Mapping[Channel, ProviderChain] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class MultiOptions:
    """Caller options for a multi-send."""

    stop_on_first_channel_success: bool = False
    require_all_channels_success: bool = False
    parallel_recipients: bool = True
    provider_chains: Mapping[Channel, ProviderChain] = field(default_factory=dict)
    timezone_options: TimezoneOptions | None = None


@dataclass(slots=True)
class NotificationRecord:
    """Persisted notification. Terminal timestamps are written by delivery workers."""

    id: int
    uuid: str
    tenant_id: int
    channel: Channel
    recipient: Recipient
    content: RenderedContent
    status: NotificationStatus
    priority_id: int
    created_by: str
    scheduled_at: datetime | None = None
    batch_id: int | None = None
    template_id: str | None = None
    metadata: dict[str, object] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    failed_at: datetime | None = None


@dataclass(slots=True)
class Batch:
    """Batch of chunked submissions sharing one identity and secret token."""

    id: int
    batch_id: str
    batch_token: str
    tenant_id: int
    status: BatchStatus
    created_by: str
    expected_total: int | None = None
    total_sent: int = 0
    total_delivered: int = 0
    total_failed: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class BatchStats:
    """Counters recomputed from the items of a batch."""

    sent: int
    delivered: int
    failed: int


@dataclass(slots=True, frozen=True)
class BatchReceipt:
    """Returned once, when a batch is opened. Carries the secret token."""

    batch_id: str
    batch_token: str
    chunk_processed: int = 0


@dataclass(slots=True, frozen=True)
class ChunkReceipt:
    """Acknowledgment of a processed chunk."""

    batch_id: str
    chunk_processed: int


@dataclass(slots=True, frozen=True)
class SendReceipt:
    """Acknowledgment of a queued single send."""

    id: int
    uuid: str
    status: str = "queued"
    message: str = "Notification queued successfully"


@dataclass(slots=True, frozen=True)
class QueueJob:
    """Job handed to the channel queue collaborator."""

    notification_id: int
    notification_uuid: str
    tenant_id: int
    channel: Channel
    recipient: Mapping[str, str | None]
    content: RenderedContent
    metadata: Mapping[str, object]
    priority: int
    delay_ms: int
    attempts: int = 3
    backoff_delay_ms: int = 2000


@dataclass(slots=True, frozen=True)
class LifecycleEvent:
    """Fire-and-forget lifecycle notification."""

    event_id: str
    event_type: LifecycleEventType
    notification_id: int
    tenant_id: int
    channel: Channel
    recipient_user_id: str | None
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class DirectoryUser:
    """User record returned by the user directory."""

    user_id: str
    email: str | None = None
    phone: str | None = None
    user_type: str | None = None
    timezone: str | None = None
    metadata: Mapping[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ProviderSendResult:
    """Provider acknowledgment of a send."""

    message_id: str | None = None


@dataclass(slots=True)
class HealthStatus:
    """Provider health status.

    Tracks consecutive failures so the registry can report providers that
    keep failing inside fallback chains.
    """

    is_healthy: bool
    last_check: datetime
    consecutive_failures: int
    error_message: str | None
