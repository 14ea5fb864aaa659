"""Channel senders used by the single-send path and both fan-out orchestrators.

``QueuedChannelSender`` persists and enqueues; delivery workers run the
provider chain later. ``DirectChannelSender`` persists and then runs the
provider chain inline, recording the terminal status on the record. A
credential lookup or chain run that raises still leaves the record FAILED.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from notify_dispatch.core.fallback import ProviderFallbackExecutor
from notify_dispatch.core.processor import NotificationProcessor
from notify_dispatch.types import (
    Channel,
    ChannelResult,
    ChannelSendRequest,
    Credentials,
    CredentialStore,
    LifecycleEventType,
    NotificationStatus,
    ProviderChain,
)
from notify_dispatch.utils.logging import get_logger, log_with_context
from notify_dispatch.utils.sanitization import sanitize_exception

__all__ = ["DEFAULT_PROVIDER_LABEL", "DirectChannelSender", "QueuedChannelSender"]

# Reported when no chain was supplied and the worker picks the tenant's default
DEFAULT_PROVIDER_LABEL = "default"


class QueuedChannelSender:
    """Hand each channel request to the notification processor's queue."""

    def __init__(self, processor: NotificationProcessor) -> None:
        self._processor: NotificationProcessor = processor

    async def send(
        self,
        request: ChannelSendRequest,
        chain: ProviderChain | None,
        *,
        created_by: str,
        batch_id: int | None = None,
    ) -> ChannelResult:
        record = await self._processor.process(
            request,
            created_by,
            batch_id=batch_id,
            chain=chain,
        )
        return ChannelResult(
            channel=request.channel,
            success=True,
            message_id=record.uuid,
            provider=chain.primary if chain is not None else DEFAULT_PROVIDER_LABEL,
            notification_id=record.id,
            notification_uuid=record.uuid,
            status=record.status,
        )


class DirectChannelSender:
    """Run the provider chain inline for each channel request.

    Without a chain, the channel's default provider is tried alone.

    Args:
        processor: Renders and persists the record, publishes lifecycle events
        executor: Runs provider chains
        credential_store: Supplies decrypted credentials per tenant and provider
        default_provider: Returns the provider name used when no chain is given
    """

    def __init__(
        self,
        processor: NotificationProcessor,
        executor: ProviderFallbackExecutor,
        credential_store: CredentialStore,
        default_provider: Callable[[Channel], str],
        *,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._processor: NotificationProcessor = processor
        self._executor: ProviderFallbackExecutor = executor
        self._credential_store: CredentialStore = credential_store
        self._default_provider: Callable[[Channel], str] = default_provider
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def send(
        self,
        request: ChannelSendRequest,
        chain: ProviderChain | None,
        *,
        created_by: str,
        batch_id: int | None = None,
    ) -> ChannelResult:
        effective_chain = chain or ProviderChain(primary=self._default_provider(request.channel))
        record = await self._processor.prepare(
            request,
            created_by,
            batch_id=batch_id,
            chain=chain,
        )

        try:
            credentials: dict[str, Credentials] = {}
            for name in effective_chain.providers:
                credentials[name] = await self._credential_store.get_credentials(request.tenant_id, name)

            result = await self._executor.execute_with_fallback(
                request.channel,
                effective_chain,
                request,
                credentials,
                content=record.content,
            )
        except Exception as exc:
            # prepare() already persisted the record
            record = await self._processor.update_status(record, NotificationStatus.FAILED)
            await self._processor.publish(LifecycleEventType.FAILED, record)
            log_with_context(
                self._logger,
                logging.ERROR,
                "Channel delivery raised before completing",
                extra={
                    "notification_uuid": record.uuid,
                    "channel": request.channel.value,
                    "error_message": sanitize_exception(exc),
                },
            )
            raise

        status = NotificationStatus.SENT if result.success else NotificationStatus.FAILED
        record = await self._processor.update_status(record, status)
        await self._processor.publish(
            LifecycleEventType.SENT if result.success else LifecycleEventType.FAILED,
            record,
        )

        log_with_context(
            self._logger,
            logging.INFO if result.success else logging.WARNING,
            "Channel delivered inline" if result.success else "Channel delivery failed",
            extra={
                "notification_uuid": record.uuid,
                "channel": request.channel.value,
                "provider": result.provider,
                "attempt_count": len(result.attempts),
            },
        )

        return ChannelResult(
            channel=request.channel,
            success=result.success,
            message_id=result.message_id,
            provider=result.provider,
            error=result.error,
            attempts=tuple(result.attempts),
            notification_id=record.id,
            notification_uuid=record.uuid,
            status=record.status,
        )
