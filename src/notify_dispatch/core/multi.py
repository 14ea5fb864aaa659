"""Multi-send: one message to M recipients, each over N channels.

Every recipient runs the same channel fan-out as a broadcast. Recipients run
concurrently by default, or one after another when sequential processing is
requested; in that case a recipient's whole channel set resolves before the
next recipient starts. One recipient's failure never aborts the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from uuid import uuid4

from notify_dispatch.core.broadcast import check_content, check_provider_chains
from notify_dispatch.core.errors import ConfigurationError, RequireAllSuccessError
from notify_dispatch.core.fanout import ChannelFanout, ChannelTask
from notify_dispatch.core.timezone import DEFAULT_TIMEZONE, TimezoneResolver, validate_timezone
from notify_dispatch.types import (
    BroadcastPolicy,
    Channel,
    ChannelSendRequest,
    Content,
    MultiOptions,
    MultiResult,
    Priority,
    ProviderChain,
    ProviderChainMap,
    Recipient,
    RecipientEnricher,
    TimezoneMode,
    UserChannelResult,
    utc_now,
)
from notify_dispatch.utils.logging import (
    get_logger,
    log_with_context,
    reset_correlation_id,
    set_correlation_id,
)
from notify_dispatch.utils.sanitization import sanitize_exception

__all__ = ["RecipientChannelMatrixOrchestrator"]


class RecipientChannelMatrixOrchestrator:
    """Dispatch a recipients × channels matrix with per-recipient policies.

    Args:
        fanout: Concurrent per-channel dispatcher shared with broadcasts
        enricher: Recipient enrichment collaborator
        timezones: Resolves delivery zones for scheduled sends
        default_chains: Provider chains used when the caller names none
        id_factory: Builds multi-send identifiers
        logger_obj: Optional logger override
    """

    def __init__(
        self,
        fanout: ChannelFanout,
        enricher: RecipientEnricher,
        timezones: TimezoneResolver,
        *,
        default_chains: ProviderChainMap | None = None,
        id_factory: Callable[[], str] | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._fanout: ChannelFanout = fanout
        self._enricher: RecipientEnricher = enricher
        self._timezones: TimezoneResolver = timezones
        self._default_chains: dict[Channel, ProviderChain] = dict(default_chains or {})
        self._id_factory: Callable[[], str] = id_factory or (lambda: f"multi-{uuid4().hex}")
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

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
        """Send ``content`` to every recipient on every channel.

        Sequential recipients run one at a time: with
        ``stop_on_first_channel_success``, channels still running after a
        recipient's winner finish before the next recipient starts.

        Raises:
            ConfigurationError: Before enrichment, for an invalid request shape
            RequireAllSuccessError: After every recipient was processed, when
                ``require_all_channels_success`` is set and any channel failed
        """
        options = options or MultiOptions()
        base_instant = self._validate(recipients, channels, content, options, scheduled_at)

        multi_id = self._id_factory()
        token = set_correlation_id(multi_id)
        try:
            log_with_context(
                self._logger,
                logging.INFO,
                "Processing multi-send",
                extra={
                    "tenant_id": tenant_id,
                    "recipient_count": len(recipients),
                    "channels": [channel.value for channel in channels],
                    "parallel_recipients": options.parallel_recipients,
                },
            )

            enriched = await self._enricher.enrich_many(recipients, tenant_id)

            zones: dict[str, str] | None = None
            if base_instant is not None and options.timezone_options is not None:
                zones = await self._timezones.resolve_many(
                    enriched,
                    tenant_id,
                    options.timezone_options,
                )

            request_metadata = {**(metadata or {}), "multi_id": multi_id}

            async def run_one(recipient: Recipient) -> UserChannelResult:
                return await self._process_recipient_safely(
                    tenant_id,
                    recipient,
                    channels,
                    content,
                    options,
                    created_by=created_by,
                    base_instant=base_instant,
                    zones=zones,
                    priority=priority,
                    metadata=request_metadata,
                )

            user_results: list[UserChannelResult]
            if options.parallel_recipients:
                async with asyncio.TaskGroup() as task_group:
                    running = [task_group.create_task(run_one(recipient)) for recipient in enriched]
                user_results = [task.result() for task in running]
            else:
                user_results = []
                for recipient in enriched:
                    user_results.append(await run_one(recipient))
                    await self._fanout.wait_for_pending()
        finally:
            reset_correlation_id(token)

        result = MultiResult(
            success=any(user.success_count > 0 for user in user_results),
            multi_id=multi_id,
            total_recipients=len(recipients),
            total_channels=len(channels),
            user_results=user_results,
            timestamp=utc_now(),
            metadata={**(metadata or {}), "multi_id": multi_id, "tenant_id": tenant_id},
        )

        if options.require_all_channels_success:
            failed = sum(user.failure_count for user in user_results)
            if failed > 0:
                total = len(recipients) * len(channels)
                msg = f"{failed} of {total} recipient channels failed"
                raise RequireAllSuccessError(msg, failed=failed, total=total, result=result)

        return result

    def _validate(
        self,
        recipients: Sequence[Recipient],
        channels: Sequence[Channel],
        content: Content,
        options: MultiOptions,
        scheduled_at: datetime | str | None,
    ) -> datetime | None:
        if not recipients:
            msg = "At least one recipient must be specified"
            raise ConfigurationError(msg)
        if not channels:
            msg = "At least one channel must be specified"
            raise ConfigurationError(msg)
        if options.stop_on_first_channel_success and options.require_all_channels_success:
            msg = (
                "stop_on_first_channel_success and require_all_channels_success "
                "cannot both be set"
            )
            raise ConfigurationError(msg)
        check_content(content)
        check_provider_chains(options.provider_chains)

        tz_options = options.timezone_options
        if tz_options is not None and tz_options.mode is TimezoneMode.CLIENT:
            if not tz_options.timezone:
                msg = 'Timezone must be provided when mode is "client"'
                raise ConfigurationError(msg)
            if not validate_timezone(tz_options.timezone):
                msg = f"Invalid timezone: {tz_options.timezone}"
                raise ConfigurationError(msg)

        if scheduled_at is None:
            return None
        return self._timezones.calculate_scheduled_time(scheduled_at, DEFAULT_TIMEZONE)

    async def _process_recipient_safely(
        self,
        tenant_id: int,
        recipient: Recipient,
        channels: Sequence[Channel],
        content: Content,
        options: MultiOptions,
        *,
        created_by: str,
        base_instant: datetime | None,
        zones: Mapping[str, str] | None,
        priority: Priority,
        metadata: Mapping[str, object],
    ) -> UserChannelResult:
        try:
            return await self._process_recipient(
                tenant_id,
                recipient,
                channels,
                content,
                options,
                created_by=created_by,
                base_instant=base_instant,
                zones=zones,
                priority=priority,
                metadata=metadata,
            )
        except Exception as exc:
            log_with_context(
                self._logger,
                logging.ERROR,
                "Recipient processing failed",
                extra={
                    "recipient_id": recipient.identifier,
                    "error_message": sanitize_exception(exc),
                },
            )
            return UserChannelResult(
                recipient_id=recipient.identifier,
                channels=[],
                success_count=0,
                failure_count=len(channels),
            )

    async def _process_recipient(
        self,
        tenant_id: int,
        recipient: Recipient,
        channels: Sequence[Channel],
        content: Content,
        options: MultiOptions,
        *,
        created_by: str,
        base_instant: datetime | None,
        zones: Mapping[str, str] | None,
        priority: Priority,
        metadata: Mapping[str, object],
    ) -> UserChannelResult:
        zone: str | None = None
        scheduled_at = base_instant
        if base_instant is not None and zones is not None:
            zone = zones.get(recipient.identifier, DEFAULT_TIMEZONE)
            scheduled_at = self._timezones.calculate_scheduled_time(base_instant, zone)

        tasks: list[ChannelTask] = [
            (
                ChannelSendRequest(
                    tenant_id=tenant_id,
                    channel=channel,
                    recipient=recipient,
                    content=content,
                    scheduled_at=scheduled_at,
                    priority=priority,
                    metadata=metadata,
                ),
                options.provider_chains.get(channel) or self._default_chains.get(channel),
            )
            for channel in channels
        ]
        policy = (
            BroadcastPolicy.RACE
            if options.stop_on_first_channel_success
            else BroadcastPolicy.PARALLEL_ALL
        )
        results = await self._fanout.run(tasks, policy, created_by=created_by)

        success_count = sum(1 for result in results if result.success)
        failure_count = len(results) - success_count
        if options.require_all_channels_success and failure_count > 0:
            log_with_context(
                self._logger,
                logging.WARNING,
                "Recipient channels failed with all-channels-success required",
                extra={
                    "recipient_id": recipient.identifier,
                    "failed": failure_count,
                    "total": len(results),
                },
            )

        return UserChannelResult(
            recipient_id=recipient.identifier,
            channels=results,
            success_count=success_count,
            failure_count=failure_count,
            timezone=zone,
            scheduled_at=scheduled_at,
        )
