"""Collaborator implementations: in-memory stores, HTTP user directory, local wiring."""

from __future__ import annotations

from notify_dispatch.adapters.http_directory import HttpUserDirectory, parse_directory_user
from notify_dispatch.adapters.local import LocalRuntime, build_registry, open_local_runtime
from notify_dispatch.adapters.memory import (
    InMemoryBatchStore,
    InMemoryJobQueue,
    InMemoryNotificationStore,
    LoggingEventPublisher,
    StaticCredentialStore,
    StaticTemplateRenderer,
    StaticUserDirectory,
    build_queue_table,
)

__all__ = [
    "HttpUserDirectory",
    "InMemoryBatchStore",
    "InMemoryJobQueue",
    "InMemoryNotificationStore",
    "LocalRuntime",
    "LoggingEventPublisher",
    "StaticCredentialStore",
    "StaticTemplateRenderer",
    "StaticUserDirectory",
    "build_queue_table",
    "build_registry",
    "open_local_runtime",
    "parse_directory_user",
]
