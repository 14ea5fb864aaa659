"""Ordered provider fallback for a single channel.

Providers of a chain are tried strictly in order, one at a time; the first
successful send wins and later providers are never contacted. Every
provider that was tried leaves exactly one attempt record. Retries of a
whole job are the queue layer's concern, not this executor's.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from notify_dispatch.core.errors import (
    ALL_PROVIDERS_FAILED,
    DispatchError,
    ProviderAttemptFailure,
)
from notify_dispatch.types import (
    Channel,
    ChannelSendRequest,
    Credentials,
    ErrorDetail,
    ExecutionResult,
    ProviderAttempt,
    ProviderChain,
    ProviderResolver,
    ProviderSendResult,
    RenderedContent,
)
from notify_dispatch.utils.logging import get_logger, log_with_context
from notify_dispatch.utils.sanitization import sanitize_url

__all__ = ["ProviderFallbackExecutor", "build_failure_message", "validate_provider_chain"]


def validate_provider_chain(chain: ProviderChain) -> bool:
    """Return True when the chain has a non-empty primary and no duplicates.

    Names are compared exactly (case-sensitive). Pure check, safe to call
    before any dispatch work.

    Examples:
        >>> validate_provider_chain(ProviderChain("primary", ("backup", "primary")))
        False
        >>> validate_provider_chain(ProviderChain("primary", ("backup", "tertiary")))
        True
    """
    if not chain.primary:
        return False
    providers = chain.providers
    return len(set(providers)) == len(providers)


def build_failure_message(attempts: list[ProviderAttempt]) -> str:
    """Concatenate every failed attempt's error into one message."""
    details = ", ".join(
        f"{attempt.provider}: {attempt.error}" for attempt in attempts if not attempt.success
    )
    return f"All providers failed. Attempts: {details}"


def recipient_payload(request: ChannelSendRequest) -> dict[str, str | None]:
    """Contact fields handed to a provider."""
    recipient = request.recipient
    return {
        "user_id": recipient.user_id,
        "email": recipient.email,
        "phone": recipient.phone,
        "user_type": recipient.user_type,
    }


def _describe_failure(exc: Exception) -> str:
    if isinstance(exc, DispatchError):
        return sanitize_url(exc.message)
    message = str(exc)
    return sanitize_url(message) if message else type(exc).__name__


class ProviderFallbackExecutor:
    """Run a provider chain until one provider delivers.

    Args:
        resolver: Builds provider instances by name and credentials and
            receives health updates for every attempt
        logger_obj: Optional logger override
    """

    def __init__(
        self,
        resolver: ProviderResolver,
        *,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._resolver: ProviderResolver = resolver
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def execute_with_fallback(
        self,
        channel: Channel,
        chain: ProviderChain,
        request: ChannelSendRequest,
        credentials: Mapping[str, Credentials],
        *,
        content: RenderedContent,
    ) -> ExecutionResult:
        """Try each provider of ``chain`` in order.

        Args:
            channel: Channel being dispatched
            chain: Primary provider and ordered fallbacks
            request: The channel request; supplies recipient and metadata
            credentials: Decrypted credentials keyed by provider name
            content: Rendered content to deliver

        Returns:
            Successful result from the first provider that delivered, or a
            failed result whose error aggregates every attempt with code
            ``ALL_PROVIDERS_FAILED``. Provider failures are never raised.
        """
        providers = chain.providers
        attempts: list[ProviderAttempt] = []
        recipient = recipient_payload(request)
        options: dict[str, object] = {
            "channel": channel.value,
            "tenant_id": request.tenant_id,
            "priority": request.priority.value,
            "metadata": dict(request.metadata),
        }

        log_with_context(
            self._logger,
            logging.DEBUG,
            "Executing provider chain",
            extra={"channel": channel.value, "providers": " -> ".join(providers)},
        )

        for index, name in enumerate(providers, start=1):
            try:
                result = await self._try_provider(
                    name,
                    credentials.get(name, {}),
                    recipient,
                    content,
                    options,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = _describe_failure(exc)
                attempts.append(
                    ProviderAttempt(provider=name, attempt=index, success=False, error=error)
                )
                _ = self._resolver.record_failure(name, error_message=error)
                log_with_context(
                    self._logger,
                    logging.WARNING,
                    "Provider attempt failed",
                    extra={
                        "channel": channel.value,
                        "provider": name,
                        "attempt": index,
                        "total_providers": len(providers),
                        "error_message": error,
                    },
                )
                continue

            attempts.append(ProviderAttempt(provider=name, attempt=index, success=True))
            _ = self._resolver.record_success(name)
            log_with_context(
                self._logger,
                logging.INFO,
                "Provider delivered",
                extra={"channel": channel.value, "provider": name, "attempt": index},
            )
            return ExecutionResult(
                success=True,
                provider=name,
                attempts=attempts,
                message_id=result.message_id,
            )

        return ExecutionResult(
            success=False,
            provider=providers[-1],
            attempts=attempts,
            error=ErrorDetail(code=ALL_PROVIDERS_FAILED, message=build_failure_message(attempts)),
        )

    async def _try_provider(
        self,
        name: str,
        credentials: Credentials,
        recipient: Mapping[str, str | None],
        content: RenderedContent,
        options: Mapping[str, object],
    ) -> ProviderSendResult:
        provider = self._resolver.get_provider(name, credentials)
        if not await provider.validate():
            raise ProviderAttemptFailure(name, f"Provider {name} validation failed")
        return await provider.send(recipient, content, options)
