"""Type definitions and protocols for notify-dispatch.

This package provides:
- Data models (dataclasses)
- Protocol definitions (structural subtyping interfaces)
- Type aliases (PEP 695 syntax)
"""

from notify_dispatch.types.aliases import (
    Credentials,
    ProviderChainMap,
    ProviderFactory,
    QueueTable,
)
from notify_dispatch.types.models import (
    Batch,
    BatchReceipt,
    BatchStats,
    BatchStatus,
    BroadcastOptions,
    BroadcastPolicy,
    BroadcastResult,
    Channel,
    ChannelResult,
    ChannelSendRequest,
    ChunkReceipt,
    Content,
    DirectoryUser,
    ErrorDetail,
    ExecutionResult,
    HealthStatus,
    LifecycleEvent,
    LifecycleEventType,
    LiteralContent,
    MultiOptions,
    MultiResult,
    NotificationRecord,
    NotificationStatus,
    Priority,
    ProviderAttempt,
    ProviderChain,
    ProviderSendResult,
    QueueJob,
    Recipient,
    RenderedContent,
    SendReceipt,
    TemplateRef,
    TimezoneMode,
    TimezoneOptions,
    UserChannelResult,
    utc_now,
)
from notify_dispatch.types.protocols import (
    BatchStore,
    ChannelSender,
    CredentialStore,
    EventPublisher,
    JobQueue,
    NotificationProvider,
    NotificationStore,
    ProviderResolver,
    RecipientEnricher,
    TemplateRenderer,
    UserDirectory,
)

__all__ = [
    # Type aliases
    "Credentials",
    "ProviderChainMap",
    "ProviderFactory",
    "QueueTable",
    # Data models
    "Batch",
    "BatchReceipt",
    "BatchStats",
    "BatchStatus",
    "BroadcastOptions",
    "BroadcastPolicy",
    "BroadcastResult",
    "Channel",
    "ChannelResult",
    "ChannelSendRequest",
    "ChunkReceipt",
    "Content",
    "DirectoryUser",
    "ErrorDetail",
    "ExecutionResult",
    "HealthStatus",
    "LifecycleEvent",
    "LifecycleEventType",
    "LiteralContent",
    "MultiOptions",
    "MultiResult",
    "NotificationRecord",
    "NotificationStatus",
    "Priority",
    "ProviderAttempt",
    "ProviderChain",
    "ProviderSendResult",
    "QueueJob",
    "Recipient",
    "RenderedContent",
    "SendReceipt",
    "TemplateRef",
    "TimezoneMode",
    "TimezoneOptions",
    "UserChannelResult",
    "utc_now",
    # Protocols
    "BatchStore",
    "ChannelSender",
    "CredentialStore",
    "EventPublisher",
    "JobQueue",
    "NotificationProvider",
    "NotificationStore",
    "ProviderResolver",
    "RecipientEnricher",
    "TemplateRenderer",
    "UserDirectory",
]
