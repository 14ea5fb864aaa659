"""Unit tests for the HTTP user directory client.

Tests cover:
- Session lifecycle through the async context manager
- 200, 404 and error statuses
- Timeouts, connection errors and malformed bodies
- Payload parsing
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from notify_dispatch.adapters.http_directory import HttpUserDirectory, parse_directory_user
from notify_dispatch.core.errors import DirectoryLookupError


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create mock aiohttp ClientSession."""
    return AsyncMock(spec=aiohttp.ClientSession)


def _respond(mock_session: AsyncMock, status: int, body: object = None) -> AsyncMock:
    response = AsyncMock()
    response.status = status
    response.json = AsyncMock(return_value=body)
    mock_session.get.return_value.__aenter__.return_value = response  # pyright: ignore[reportAny]  # mock object
    return response


class TestSessionLifecycle:
    """Test session creation and cleanup."""

    async def test_context_manager_creates_and_closes_session(self) -> None:
        """Test that async context manager owns its aiohttp session."""
        directory = HttpUserDirectory("https://users.internal/")

        async with directory:
            assert directory._session is not None  # pyright: ignore[reportPrivateUsage]  # testing internal state

        assert directory._session is None  # pyright: ignore[reportPrivateUsage]  # testing internal state

    async def test_injected_session_not_closed(self, mock_session: AsyncMock) -> None:
        """Test a caller-provided session is left open."""
        async with HttpUserDirectory("https://users.internal", session=mock_session):
            pass

        mock_session.close.assert_not_called()  # pyright: ignore[reportAny]  # mock method

    async def test_lookup_without_session_raises(self) -> None:
        """Test lookups require the context manager."""
        with pytest.raises(RuntimeError, match="not initialized"):
            _ = await HttpUserDirectory("https://users.internal").get_by_id("u-1")

    def test_timeout_must_be_positive(self) -> None:
        """Test non-positive timeouts are rejected."""
        with pytest.raises(ValueError, match="greater than zero"):
            _ = HttpUserDirectory("https://users.internal", timeout_seconds=0)


class TestGetById:
    """Test directory lookups."""

    async def test_found_user_parsed(self, mock_session: AsyncMock) -> None:
        """Test a 200 body becomes a DirectoryUser."""
        _ = _respond(
            mock_session,
            200,
            {"id": "u/1", "email": "ada@example.com", "userType": "admin", "timezone": "Europe/London"},
        )
        directory = HttpUserDirectory("https://users.internal/", session=mock_session)

        user = await directory.get_by_id("u/1")

        assert user is not None
        assert user.email == "ada@example.com"
        assert user.user_type == "admin"
        assert user.timezone == "Europe/London"
        mock_session.get.assert_called_once_with("https://users.internal/users/u%2F1")  # pyright: ignore[reportAny]  # mock method

    async def test_not_found_returns_none(self, mock_session: AsyncMock) -> None:
        """Test 404 means the user does not exist."""
        _ = _respond(mock_session, 404)

        assert await HttpUserDirectory("https://users.internal", session=mock_session).get_by_id("u-1") is None

    @pytest.mark.parametrize("status", [401, 500, 503])
    async def test_error_status_raises(self, mock_session: AsyncMock, status: int) -> None:
        """Test other error statuses raise DirectoryLookupError."""
        _ = _respond(mock_session, status)

        with pytest.raises(DirectoryLookupError, match=f"HTTP {status}"):
            _ = await HttpUserDirectory("https://users.internal", session=mock_session).get_by_id("u-1")

    async def test_non_object_body_raises(self, mock_session: AsyncMock) -> None:
        """Test a JSON array body is rejected."""
        _ = _respond(mock_session, 200, ["not", "an", "object"])

        with pytest.raises(DirectoryLookupError, match="non-object body"):
            _ = await HttpUserDirectory("https://users.internal", session=mock_session).get_by_id("u-1")

    async def test_invalid_json_raises(self, mock_session: AsyncMock) -> None:
        """Test an unparseable body raises DirectoryLookupError."""
        response = _respond(mock_session, 200)
        response.json.side_effect = aiohttp.ContentTypeError(Mock(), ())  # pyright: ignore[reportAny]  # mock object

        with pytest.raises(DirectoryLookupError, match="ContentTypeError"):
            _ = await HttpUserDirectory("https://users.internal", session=mock_session).get_by_id("u-1")

    async def test_connection_error_raises(self, mock_session: AsyncMock) -> None:
        """Test connection failures raise DirectoryLookupError."""
        mock_session.get.side_effect = aiohttp.ClientConnectionError("Connection refused")  # pyright: ignore[reportAny]  # mock object

        with pytest.raises(DirectoryLookupError, match="ClientConnectionError"):
            _ = await HttpUserDirectory("https://users.internal", session=mock_session).get_by_id("u-1")

    async def test_timeout_raises(self, mock_session: AsyncMock) -> None:
        """Test slow directories time out."""

        async def slow_request(*args: object, **kwargs: object) -> None:  # pyright: ignore[reportUnusedParameter]
            await asyncio.sleep(10)

        mock_session.get.return_value.__aenter__.side_effect = slow_request  # pyright: ignore[reportAny]  # mock object
        directory = HttpUserDirectory("https://users.internal", timeout_seconds=0.05, session=mock_session)

        with pytest.raises(DirectoryLookupError, match="timed out after"):
            _ = await directory.get_by_id("u-1")


class TestParseDirectoryUser:
    """Test payload parsing."""

    def test_minimal_payload_uses_requested_id(self) -> None:
        """Test the requested id is kept when the body has none."""
        user = parse_directory_user("u-9", {})

        assert user.user_id == "u-9"
        assert (user.email, user.phone, user.user_type, user.timezone) == (None, None, None, None)
        assert user.metadata == {}

    def test_snake_case_type_and_metadata(self) -> None:
        """Test user_type spelling and metadata copying."""
        user = parse_directory_user(
            "u-9",
            {"id": 42, "phone": 15550100, "user_type": "staff", "metadata": {"timezone": "Asia/Tokyo"}},
        )

        assert user.user_id == "42"
        assert user.phone == "15550100"
        assert user.user_type == "staff"
        assert user.metadata == {"timezone": "Asia/Tokyo"}

    def test_non_mapping_metadata_ignored(self) -> None:
        """Test a malformed metadata field is dropped."""
        assert parse_directory_user("u-9", {"metadata": ["x"]}).metadata == {}
