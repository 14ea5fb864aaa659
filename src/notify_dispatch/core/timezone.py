"""Delivery timezone resolution for scheduled multi-sends.

Three policies decide a recipient's zone:

- client: the caller's zone applies to everyone and must be a real IANA zone
- user: the directory's zone, then a ``timezone`` metadata field, then UTC
- mixed: the caller's zone when present and valid, otherwise the user policy

The user policy never raises; directory outages degrade to UTC.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Final
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from notify_dispatch.core.errors import ConfigurationError
from notify_dispatch.types import Recipient, TimezoneMode, TimezoneOptions, UserDirectory
from notify_dispatch.utils.logging import get_logger, log_with_context
from notify_dispatch.utils.sanitization import sanitize_exception

__all__ = [
    "DEFAULT_TIMEZONE",
    "TimezoneResolver",
    "common_timezones",
    "format_in_timezone",
    "validate_timezone",
]

DEFAULT_TIMEZONE: Final[str] = "UTC"

DEFAULT_DISPLAY_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S %Z"

_COMMON_TIMEZONES: Final[tuple[str, ...]] = (
    "UTC",
    "America/New_York",
    "America/Chicago",
    "America/Denver",
    "America/Los_Angeles",
    "America/Toronto",
    "America/Mexico_City",
    "America/Sao_Paulo",
    "Europe/London",
    "Europe/Paris",
    "Europe/Berlin",
    "Europe/Madrid",
    "Europe/Rome",
    "Europe/Moscow",
    "Asia/Dubai",
    "Asia/Kolkata",
    "Asia/Shanghai",
    "Asia/Tokyo",
    "Asia/Singapore",
    "Asia/Hong_Kong",
    "Australia/Sydney",
    "Australia/Melbourne",
    "Pacific/Auckland",
)


def _load_zone(zone: object) -> ZoneInfo | None:
    if not isinstance(zone, str) or not zone.strip():
        return None
    try:
        return ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def validate_timezone(zone: object) -> bool:
    """Return True if ``zone`` names a real IANA timezone.

    Examples:
        >>> validate_timezone("Europe/Paris")
        True
        >>> validate_timezone("Mars/Olympus_Mons")
        False
    """
    return _load_zone(zone) is not None


def format_in_timezone(
    instant: datetime,
    zone: str,
    fmt: str = DEFAULT_DISPLAY_FORMAT,
) -> str:
    """Format an instant as wall-clock time in ``zone``.

    Naive instants are taken to be UTC.

    Raises:
        ConfigurationError: If ``zone`` is not a valid IANA timezone
    """
    tz = _load_zone(zone)
    if tz is None:
        msg = f"Invalid timezone: {zone}"
        raise ConfigurationError(msg)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(tz).strftime(fmt)


def common_timezones() -> list[str]:
    """Return a fresh list of frequently used IANA zones."""
    return list(_COMMON_TIMEZONES)


class TimezoneResolver:
    """Resolve delivery timezones for recipients.

    Args:
        directory: User directory consulted by the user and mixed policies
        logger_obj: Optional logger override
    """

    def __init__(
        self,
        directory: UserDirectory,
        *,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._directory: UserDirectory = directory
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def resolve(
        self,
        recipient_id: str | None,
        tenant_id: int,
        options: TimezoneOptions | None = None,
        *,
        metadata: Mapping[str, object] | None = None,
    ) -> str:
        """Resolve one recipient's timezone.

        Args:
            recipient_id: Directory user id; None skips the directory lookup
            tenant_id: Owning tenant, used for log context
            options: Resolution policy; defaults to the user policy
            metadata: Recipient metadata checked after the directory record

        Raises:
            ConfigurationError: In client mode, when the zone is missing or invalid
        """
        options = options or TimezoneOptions()

        match options.mode:
            case TimezoneMode.CLIENT:
                return self._require_client_zone(options)
            case TimezoneMode.MIXED:
                if validate_timezone(options.timezone):
                    return options.timezone  # pyright: ignore[reportReturnType]  # narrowed by validate_timezone
                if options.timezone is not None:
                    log_with_context(
                        self._logger,
                        logging.WARNING,
                        "Supplied timezone invalid, falling back to recipient timezone",
                        extra={"timezone": options.timezone, "recipient_id": recipient_id},
                    )
                return await self._resolve_user_zone(recipient_id, tenant_id, metadata)
            case TimezoneMode.USER:
                return await self._resolve_user_zone(recipient_id, tenant_id, metadata)

    async def resolve_many(
        self,
        recipients: Sequence[Recipient],
        tenant_id: int,
        options: TimezoneOptions | None = None,
    ) -> dict[str, str]:
        """Resolve timezones for many recipients, keyed by recipient identifier.

        Client mode assigns the supplied zone to everyone without contacting
        the directory. Other modes resolve each recipient concurrently.

        Raises:
            ConfigurationError: In client mode, when the zone is missing or invalid
        """
        options = options or TimezoneOptions()

        if options.mode is TimezoneMode.CLIENT:
            zone = self._require_client_zone(options)
            return {recipient.identifier: zone for recipient in recipients}

        zones = await asyncio.gather(
            *(
                self.resolve(
                    recipient.user_id,
                    tenant_id,
                    options,
                    metadata=recipient.metadata,
                )
                for recipient in recipients
            )
        )
        return {
            recipient.identifier: zone for recipient, zone in zip(recipients, zones, strict=True)
        }

    def calculate_scheduled_time(self, base: str | datetime, zone: str) -> datetime:
        """Express ``base`` as an aware datetime in ``zone``.

        ISO 8601 strings are accepted; naive values are taken to be UTC.

        Raises:
            ConfigurationError: If the instant cannot be parsed or the zone is invalid
        """
        if isinstance(base, str):
            try:
                instant = datetime.fromisoformat(base)
            except ValueError as exc:
                msg = f"Invalid base time format: {base}"
                raise ConfigurationError(msg) from exc
        else:
            instant = base

        tz = _load_zone(zone)
        if tz is None:
            msg = f"Invalid timezone: {zone}"
            raise ConfigurationError(msg)

        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        return instant.astimezone(tz)

    @staticmethod
    def _require_client_zone(options: TimezoneOptions) -> str:
        if not options.timezone:
            msg = 'Timezone must be provided when mode is "client"'
            raise ConfigurationError(msg)
        if not validate_timezone(options.timezone):
            msg = f"Invalid timezone: {options.timezone}"
            raise ConfigurationError(msg)
        return options.timezone

    async def _resolve_user_zone(
        self,
        user_id: str | None,
        tenant_id: int,
        metadata: Mapping[str, object] | None,
    ) -> str:
        if user_id:
            try:
                user = await self._directory.get_by_id(user_id)
            except Exception as exc:
                log_with_context(
                    self._logger,
                    logging.WARNING,
                    "Timezone lookup failed, using UTC",
                    extra={
                        "recipient_id": user_id,
                        "tenant_id": tenant_id,
                        "error_message": sanitize_exception(exc),
                    },
                )
                return DEFAULT_TIMEZONE

            if user is not None:
                if validate_timezone(user.timezone):
                    return user.timezone  # pyright: ignore[reportReturnType]  # narrowed by validate_timezone
                directory_zone = user.metadata.get("timezone")
                if isinstance(directory_zone, str) and validate_timezone(directory_zone):
                    return directory_zone

        recipient_zone = (metadata or {}).get("timezone")
        if isinstance(recipient_zone, str) and validate_timezone(recipient_zone):
            return recipient_zone

        log_with_context(
            self._logger,
            logging.DEBUG,
            "No valid timezone found, using UTC",
            extra={"recipient_id": user_id, "tenant_id": tenant_id},
        )
        return DEFAULT_TIMEZONE
