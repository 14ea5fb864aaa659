"""Error taxonomy for dispatch orchestration.

Configuration, authorization and not-found errors propagate to the caller
immediately. Provider attempt failures never leave the fallback executor;
they are recorded in the attempt log. An exhausted chain is reported as the
``error`` field of the execution result rather than raised, except on the
single-send path where the caller asked for an exception.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from notify_dispatch.types import ErrorDetail

if TYPE_CHECKING:
    from notify_dispatch.types import BroadcastResult, ChannelResult, MultiResult

__all__ = [
    "ALL_PROVIDERS_FAILED",
    "AllProvidersFailedError",
    "AuthorizationError",
    "ConfigurationError",
    "DirectoryLookupError",
    "DispatchError",
    "EnrichmentDegradation",
    "NotFoundError",
    "ProviderAttemptFailure",
    "ProviderNotRegisteredError",
    "RequireAllSuccessError",
]

ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"


class DispatchError(Exception):
    """Base exception for dispatch failures. Carries a stable error code."""

    code: str = "DISPATCH_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def to_detail(self) -> ErrorDetail:
        """Render the error as structured data for result objects."""
        return ErrorDetail(code=self.code, message=self.message)


class ConfigurationError(DispatchError):
    """Invalid request shape, detected before any dispatch work begins."""

    code = "CONFIGURATION_ERROR"


class AuthorizationError(DispatchError):
    """Batch token mismatch. Terminal, never retried."""

    code = "UNAUTHORIZED"


class NotFoundError(DispatchError):
    """Unknown batch identifier."""

    code = "NOT_FOUND"


class ProviderAttemptFailure(DispatchError):
    """A single provider's validate or send failed.

    Raised inside the fallback executor and converted into a failed
    attempt record; callers never see it.
    """

    code = "PROVIDER_ATTEMPT_FAILED"

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider: str = provider


class ProviderNotRegisteredError(ProviderAttemptFailure):
    """No factory is registered under the requested provider name."""

    code = "PROVIDER_NOT_REGISTERED"

    def __init__(self, provider: str) -> None:
        super().__init__(provider, f"Provider {provider!r} is not registered")


class AllProvidersFailedError(DispatchError):
    """Every provider in a chain failed."""

    code = ALL_PROVIDERS_FAILED

    def __init__(self, message: str, result: ChannelResult | None = None) -> None:
        super().__init__(message)
        self.result: ChannelResult | None = result


class RequireAllSuccessError(DispatchError):
    """Post-hoc gate: every channel was attempted but at least one failed."""

    code = "REQUIRE_ALL_SUCCESS_FAILED"

    def __init__(
        self,
        message: str,
        *,
        failed: int,
        total: int,
        result: BroadcastResult | MultiResult,
    ) -> None:
        super().__init__(message)
        self.failed: int = failed
        self.total: int = total
        self.result: BroadcastResult | MultiResult = result


class DirectoryLookupError(DispatchError):
    """User directory could not be queried."""

    code = "DIRECTORY_LOOKUP_FAILED"


class EnrichmentDegradation(DispatchError):
    """Soft failure: enrichment skipped, dispatch continues with caller data.

    Logged at the enrichment boundary and never propagated.
    """

    code = "ENRICHMENT_DEGRADED"
