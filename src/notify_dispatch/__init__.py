"""Notify Dispatch - multi-tenant notification dispatch orchestration.

This package fans notifications out across channels and recipients, runs
per-channel provider fallback chains, resolves delivery time zones for
scheduled sends, and coordinates chunked batch submissions.
"""

from notify_dispatch.__main__ import main

__all__ = ["main"]
