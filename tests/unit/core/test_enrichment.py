"""Tests for DirectoryRecipientEnricher."""

from __future__ import annotations

import logging

import pytest

from notify_dispatch.core.enrichment import DirectoryRecipientEnricher
from notify_dispatch.types import DirectoryUser, Recipient
from tests.fixtures.fakes import FailingDirectory, RecordingDirectory


@pytest.fixture
def directory() -> RecordingDirectory:
    return RecordingDirectory(
        users={
            "u-1": DirectoryUser(
                user_id="u-1",
                email="dir@example.com",
                phone="+15550111",
                user_type="staff",
            ),
        }
    )


@pytest.mark.asyncio
async def test_missing_fields_filled_from_directory(directory: RecordingDirectory) -> None:
    enricher = DirectoryRecipientEnricher(directory)

    enriched = await enricher.enrich(Recipient(user_id="u-1", metadata={"origin": "crm"}), 1)

    assert enriched.email == "dir@example.com"
    assert enriched.phone == "+15550111"
    assert enriched.user_type == "staff"
    assert enriched.metadata == {
        "origin": "crm",
        "user_email": "dir@example.com",
        "user_phone": "+15550111",
        "user_type": "staff",
    }


@pytest.mark.asyncio
async def test_caller_values_win_over_directory(directory: RecordingDirectory) -> None:
    enricher = DirectoryRecipientEnricher(directory)

    enriched = await enricher.enrich(Recipient(user_id="u-1", email="caller@example.com"), 1)

    assert enriched.email == "caller@example.com"
    assert enriched.phone == "+15550111"


@pytest.mark.asyncio
async def test_complete_recipient_skips_lookup(directory: RecordingDirectory) -> None:
    recipient = Recipient(user_id="u-1", email="a@example.com", phone="+1")

    assert await DirectoryRecipientEnricher(directory).enrich(recipient, 1) is recipient
    assert directory.lookups == []


@pytest.mark.asyncio
async def test_recipient_without_user_id_skips_lookup(directory: RecordingDirectory) -> None:
    recipient = Recipient(email="a@example.com")

    assert await DirectoryRecipientEnricher(directory).enrich(recipient, 1) is recipient
    assert directory.lookups == []


@pytest.mark.asyncio
async def test_unknown_user_returned_unchanged(
    directory: RecordingDirectory,
    caplog: pytest.LogCaptureFixture,
) -> None:
    recipient = Recipient(user_id="ghost")

    with caplog.at_level(logging.WARNING):
        enriched = await DirectoryRecipientEnricher(directory).enrich(recipient, 1)

    assert enriched is recipient
    assert "Recipient enrichment skipped" in caplog.text


@pytest.mark.asyncio
async def test_directory_outage_is_soft_failure(caplog: pytest.LogCaptureFixture) -> None:
    directory = FailingDirectory()
    recipient = Recipient(user_id="u-1")

    with caplog.at_level(logging.WARNING):
        enriched = await DirectoryRecipientEnricher(directory).enrich(recipient, 1)

    assert enriched is recipient
    assert directory.lookups == 1
    record = next(item for item in caplog.records if item.getMessage() == "Recipient enrichment skipped")
    assert record.__dict__["error_code"] == "ENRICHMENT_DEGRADED"


@pytest.mark.asyncio
async def test_enrich_many_preserves_order(directory: RecordingDirectory) -> None:
    recipients = [Recipient(user_id="ghost"), Recipient(user_id="u-1"), Recipient(email="x@example.com")]

    enriched = await DirectoryRecipientEnricher(directory).enrich_many(recipients, 1)

    assert [item.identifier for item in enriched] == ["ghost", "u-1", "x@example.com"]
    assert enriched[1].email == "dir@example.com"
