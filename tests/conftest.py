"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from notify_dispatch.adapters.memory import (
    InMemoryBatchStore,
    InMemoryJobQueue,
    InMemoryNotificationStore,
    LoggingEventPublisher,
    StaticTemplateRenderer,
    build_queue_table,
)
from notify_dispatch.core.processor import NotificationProcessor, QueueRouter
from notify_dispatch.types import Channel, RenderedContent
from notify_dispatch.utils.logging import clear_correlation_id


@pytest.fixture(autouse=True)
def _reset_correlation_id() -> Iterator[None]:
    """Keep correlation IDs from leaking between tests."""
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def notification_store() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def batch_store() -> InMemoryBatchStore:
    return InMemoryBatchStore()


@pytest.fixture
def publisher() -> LoggingEventPublisher:
    return LoggingEventPublisher()


@pytest.fixture
def templates() -> dict[str, RenderedContent]:
    return {
        "welcome": RenderedContent(subject="Welcome {name}", body="Hi {name}, welcome aboard."),
    }


@pytest.fixture
def queues() -> dict[Channel, InMemoryJobQueue]:
    return build_queue_table({channel: f"{channel.value}-queue" for channel in Channel})


@pytest.fixture
def processor(
    notification_store: InMemoryNotificationStore,
    queues: dict[Channel, InMemoryJobQueue],
    publisher: LoggingEventPublisher,
    templates: dict[str, RenderedContent],
) -> NotificationProcessor:
    """Processor wired to in-memory store, queues and publisher."""
    return NotificationProcessor(
        notification_store,
        QueueRouter(queues),
        StaticTemplateRenderer(templates),
        publisher,
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Minimal valid main configuration file."""
    path = tmp_path / "notify-dispatch.yaml"
    _ = path.write_text(
        """
application:
  log_level: DEBUG
dispatch:
  delivery_mode: direct
  provider_chains:
    email:
      primary: mailer-a
      fallbacks: [mailer-b]
""".lstrip()
    )
    return path
