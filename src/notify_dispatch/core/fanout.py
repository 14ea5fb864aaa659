"""Concurrent per-recipient channel fan-out.

Every channel of one recipient is dispatched concurrently. A channel that
raises is converted into a failed ChannelResult, so a sibling's failure
never cancels or corrupts another channel's outcome.

Two stop rules are supported:

- parallel_all: wait for every channel and return every outcome
- race: return the first success as soon as it lands; the other channels
  keep running and their outcomes are logged. If nothing succeeds, every
  collected outcome is returned, including the raced failures. Cancelling
  a race before it has a winner cancels every channel still running.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from notify_dispatch.core.errors import DispatchError
from notify_dispatch.core.validation import NotificationValidator
from notify_dispatch.types import (
    BroadcastPolicy,
    ChannelResult,
    ChannelSender,
    ChannelSendRequest,
    ErrorDetail,
    ProviderChain,
)
from notify_dispatch.utils.logging import get_logger, log_with_context
from notify_dispatch.utils.sanitization import sanitize_url

__all__ = ["ChannelFanout", "ChannelTask", "failed_channel_result"]

type ChannelTask = tuple[ChannelSendRequest, ProviderChain | None]


def failed_channel_result(request: ChannelSendRequest, exc: Exception) -> ChannelResult:
    """Describe an exception raised while dispatching one channel."""
    if isinstance(exc, DispatchError):
        error = ErrorDetail(code=exc.code, message=sanitize_url(exc.message))
    else:
        error = ErrorDetail(code=type(exc).__name__, message=sanitize_url(str(exc)))
    return ChannelResult(channel=request.channel, success=False, error=error)


class ChannelFanout:
    """Dispatch one recipient's channels concurrently under a stop rule.

    Args:
        sender: Dispatches a single channel request
        validator: Per-channel request checks; a violation fails that channel only
        logger_obj: Optional logger override
    """

    def __init__(
        self,
        sender: ChannelSender,
        validator: NotificationValidator | None = None,
        *,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._sender: ChannelSender = sender
        self._validator: NotificationValidator = validator or NotificationValidator()
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        self._pending: set[asyncio.Task[ChannelResult]] = set()

    @property
    def pending_count(self) -> int:
        """Number of raced channels still running after a winner returned."""
        return len(self._pending)

    async def run(
        self,
        tasks: Sequence[ChannelTask],
        policy: BroadcastPolicy,
        *,
        created_by: str,
    ) -> list[ChannelResult]:
        if policy is BroadcastPolicy.RACE:
            return await self._race(tasks, created_by=created_by)
        return await self._parallel_all(tasks, created_by=created_by)

    async def wait_for_pending(self) -> None:
        """Wait for raced channels that were still running when a winner returned."""
        if self._pending:
            _ = await asyncio.gather(*self._pending, return_exceptions=True)

    async def _send_one(
        self,
        request: ChannelSendRequest,
        chain: ProviderChain | None,
        *,
        created_by: str,
    ) -> ChannelResult:
        try:
            self._validator.validate(request)
            return await self._sender.send(request, chain, created_by=created_by)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            result = failed_channel_result(request, exc)
            log_with_context(
                self._logger,
                logging.ERROR,
                "Channel dispatch raised",
                extra={
                    "channel": request.channel.value,
                    "error_code": result.error.code if result.error else None,
                    "error_message": result.error.message if result.error else None,
                },
            )
            return result

    async def _parallel_all(
        self,
        tasks: Sequence[ChannelTask],
        *,
        created_by: str,
    ) -> list[ChannelResult]:
        async with asyncio.TaskGroup() as task_group:
            running = [
                task_group.create_task(self._send_one(request, chain, created_by=created_by))
                for request, chain in tasks
            ]
        return [task.result() for task in running]

    async def _race(
        self,
        tasks: Sequence[ChannelTask],
        *,
        created_by: str,
    ) -> list[ChannelResult]:
        running = [
            asyncio.create_task(self._send_one(request, chain, created_by=created_by))
            for request, chain in tasks
        ]
        collected: list[ChannelResult] = []

        try:
            for next_done in asyncio.as_completed(running):
                result = await next_done
                collected.append(result)
                if result.success:
                    self._detach([task for task in running if not task.done()], winner=result)
                    return [result]
        except asyncio.CancelledError:
            unfinished = [task for task in running if not task.done()]
            for task in unfinished:
                _ = task.cancel()
            _ = await asyncio.gather(*unfinished, return_exceptions=True)
            raise

        return collected

    def _detach(self, leftovers: list[asyncio.Task[ChannelResult]], *, winner: ChannelResult) -> None:
        for task in leftovers:
            self._pending.add(task)
            task.add_done_callback(self._on_detached_done)

        if leftovers:
            log_with_context(
                self._logger,
                logging.DEBUG,
                "Race won, remaining channels continue in background",
                extra={"winning_channel": winner.channel.value, "remaining": len(leftovers)},
            )

    def _on_detached_done(self, task: asyncio.Task[ChannelResult]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        result = task.result()
        log_with_context(
            self._logger,
            logging.INFO if result.success else logging.WARNING,
            "Raced channel finished after winner",
            extra={
                "channel": result.channel.value,
                "success": result.success,
                "error_code": result.error.code if result.error else None,
            },
        )
