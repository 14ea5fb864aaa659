"""Provider that records sends in the log instead of calling a vendor API.

Registered under every configured provider name for local runs, so chains
and fallbacks can be exercised end to end without real integrations.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from uuid import uuid4

from notify_dispatch.types import (
    Credentials,
    ProviderFactory,
    ProviderSendResult,
    RenderedContent,
)
from notify_dispatch.utils.logging import get_logger, log_with_context

__all__ = ["LoggingProvider", "logging_provider_factory"]


class LoggingProvider:
    """NotificationProvider that logs each send and returns a synthetic message id.

    Credentials may carry ``fail: true`` to simulate an outage, which makes
    ``validate`` return False so the chain falls back.
    """

    def __init__(self, name: str, credentials: Credentials) -> None:
        self.name: str = name
        self._credentials: Credentials = credentials
        self._logger: logging.Logger = get_logger(__name__)

    async def validate(self) -> bool:
        return not bool(self._credentials.get("fail", False))

    async def send(
        self,
        recipient: Mapping[str, str | None],
        content: RenderedContent,
        options: Mapping[str, object],
    ) -> ProviderSendResult:
        message_id = f"{self.name}-{uuid4().hex}"
        log_with_context(
            self._logger,
            logging.INFO,
            "Provider send recorded",
            extra={
                "provider": self.name,
                "recipient_user_id": recipient.get("user_id"),
                "subject": content.subject,
                "body_length": len(content.body),
                "option_keys": sorted(options),
                "message_id": message_id,
            },
        )
        return ProviderSendResult(message_id=message_id)


def logging_provider_factory(name: str) -> ProviderFactory:
    """Return a provider factory producing LoggingProvider instances named ``name``."""

    def factory(credentials: Credentials) -> LoggingProvider:
        return LoggingProvider(name, credentials)

    return factory
