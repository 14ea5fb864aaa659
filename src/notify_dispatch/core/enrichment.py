"""Recipient enrichment from the user directory.

Missing contact data is filled from the directory record. Any lookup problem
is a soft failure: it is logged and the recipient is returned unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import replace

from notify_dispatch.core.errors import EnrichmentDegradation
from notify_dispatch.types import Recipient, UserDirectory
from notify_dispatch.utils.logging import get_logger, log_with_context
from notify_dispatch.utils.sanitization import sanitize_exception

__all__ = ["DirectoryRecipientEnricher"]


class DirectoryRecipientEnricher:
    """Fill missing email, phone and user type from a user directory."""

    def __init__(
        self,
        directory: UserDirectory,
        *,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._directory: UserDirectory = directory
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def enrich(self, recipient: Recipient, tenant_id: int) -> Recipient:
        if not recipient.user_id or (recipient.email and recipient.phone):
            return recipient

        try:
            user = await self._directory.get_by_id(recipient.user_id)
        except Exception as exc:
            self._log_degradation(
                EnrichmentDegradation(f"Directory lookup failed: {sanitize_exception(exc)}"),
                recipient,
                tenant_id,
            )
            return recipient

        if user is None:
            self._log_degradation(
                EnrichmentDegradation("User not found in directory"),
                recipient,
                tenant_id,
            )
            return recipient

        metadata = dict(recipient.metadata)
        if user.email:
            metadata["user_email"] = user.email
        if user.phone:
            metadata["user_phone"] = user.phone
        if user.user_type:
            metadata["user_type"] = user.user_type

        return replace(
            recipient,
            email=recipient.email or user.email,
            phone=recipient.phone or user.phone,
            user_type=recipient.user_type or user.user_type,
            metadata=metadata,
        )

    async def enrich_many(self, recipients: Sequence[Recipient], tenant_id: int) -> list[Recipient]:
        """Enrich recipients concurrently, preserving input order."""
        return list(
            await asyncio.gather(*(self.enrich(recipient, tenant_id) for recipient in recipients))
        )

    def _log_degradation(
        self,
        degradation: EnrichmentDegradation,
        recipient: Recipient,
        tenant_id: int,
    ) -> None:
        log_with_context(
            self._logger,
            logging.WARNING,
            "Recipient enrichment skipped",
            extra={
                "recipient_id": recipient.user_id,
                "tenant_id": tenant_id,
                "error_code": degradation.code,
                "error_message": degradation.message,
            },
        )
