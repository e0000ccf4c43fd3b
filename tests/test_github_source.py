"""Tests for fetching the contribution snapshot."""

from datetime import UTC
from datetime import datetime
from datetime import timedelta
from unittest.mock import AsyncMock
from unittest.mock import MagicMock
from unittest.mock import patch

import aiohttp
import pytest

from gh_unwrapped.github_source import UNWRAPPED_QUERY
from gh_unwrapped.github_source import GitHubAPIError
from gh_unwrapped.github_source import GitHubContributionSource
from gh_unwrapped.github_source import GraphQLClient
from gh_unwrapped.github_source import RateLimit
from gh_unwrapped.github_source import RequestConfig
from gh_unwrapped.github_source import YearRange
from gh_unwrapped.protocols import GitHubSource


def make_response(status=200, payload=None, headers=None, text=""):
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value=text)
    return response


def attach_session(client, response):
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.post = MagicMock(return_value=context)
    client._session = session
    return session


class TestYearRange:
    def test_from_date_is_utc_midnight_on_january_first(self):
        assert YearRange(2024).from_date() == "2024-01-01T00:00:00Z"

    def test_current_uses_utc_year(self):
        assert YearRange.current().year == datetime.now(UTC).year


class TestGraphQLClient:
    """Test suite for the GraphQL transport."""

    @pytest.fixture
    def client(self):
        return GraphQLClient(RequestConfig(base_url="https://example.test/graphql", token="secret"))

    @pytest.mark.asyncio
    async def test_query_returns_data(self, client):
        session = attach_session(client, make_response(payload={"data": {"user": {"login": "testuser"}}}))

        result = await client.query("query { viewer { login } }", {"username": "testuser"})

        assert result == {"user": {"login": "testuser"}}
        _, kwargs = session.post.call_args
        assert kwargs["json"] == {"query": "query { viewer { login } }", "variables": {"username": "testuser"}}
        assert kwargs["headers"]["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_query_requires_session(self, client):
        with pytest.raises(RuntimeError):
            await client.query("query { viewer { login } }")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "message"),
        [
            (401, "Authentication failed"),
            (403, "Forbidden"),
            (502, "HTTP 502: bad gateway"),
        ],
    )
    async def test_http_errors(self, client, status, message):
        attach_session(client, make_response(status=status, text="bad gateway"))

        with pytest.raises(GitHubAPIError, match=message):
            await client.query("query { viewer { login } }")

    @pytest.mark.asyncio
    async def test_graphql_errors(self, client):
        payload = {"errors": [{"message": "Could not resolve to a User"}, {}]}
        attach_session(client, make_response(payload=payload))

        with pytest.raises(GitHubAPIError, match="Could not resolve to a User; Unknown error"):
            await client.query("query { viewer { login } }")

    @pytest.mark.asyncio
    async def test_network_failure_is_wrapped(self, client):
        session = attach_session(client, make_response())
        session.post.side_effect = aiohttp.ClientConnectionError("connection reset")

        with pytest.raises(GitHubAPIError, match="Request failed: connection reset"):
            await client.query("query { viewer { login } }")

    @pytest.mark.asyncio
    async def test_rate_limit_headers_are_recorded(self, client):
        headers = {
            "x-ratelimit-limit": "5000",
            "x-ratelimit-remaining": "4990",
            "x-ratelimit-reset": "1700000000",
            "x-ratelimit-used": "10",
        }
        attach_session(client, make_response(payload={"data": {}}, headers=headers))

        await client.query("query { viewer { login } }")

        assert client.rate_limit.remaining == 4990
        assert client.rate_limit.reset_at == datetime.fromtimestamp(1700000000, tz=UTC)

    @pytest.mark.asyncio
    async def test_waits_when_rate_limit_nearly_exhausted(self, client):
        attach_session(client, make_response(payload={"data": {}}))
        client._rate_limit = RateLimit(
            limit=5000, remaining=5, reset_at=datetime.now(UTC) + timedelta(seconds=30), used=4995
        )

        with patch("gh_unwrapped.github_source.asyncio.sleep", new=AsyncMock()) as sleep:
            await client.query("query { viewer { login } }")

        sleep.assert_awaited_once()
        assert sleep.await_args.args[0] > 30

    @pytest.mark.asyncio
    async def test_session_shared_by_nested_users(self, client):
        async with client:
            session = client._session
            async with client:
                assert client._session is session
            assert not session.closed

        assert session.closed
        assert client._session is None


class TestGitHubContributionSource:
    """Test suite for the contribution source using a mocked client."""

    @pytest.fixture
    def mock_client(self):
        """Create a mocked GraphQL client."""
        mock_client = AsyncMock(spec=GraphQLClient)
        mock_client.query = AsyncMock()
        return mock_client

    @pytest.fixture
    def github_source(self, mock_client):
        """Create a GitHubContributionSource with mocked client."""
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        return GitHubContributionSource(mock_client)

    @pytest.mark.asyncio
    async def test_contributions_returns_user_snapshot(self, github_source, mock_client):
        user = {"contributionsCollection": {"totalCommitContributions": 3}}
        mock_client.query.return_value = {"user": user}

        result = await github_source.contributions("testuser", YearRange(2024))

        assert result == user
        mock_client.query.assert_awaited_once_with(
            UNWRAPPED_QUERY, {"username": "testuser", "from": "2024-01-01T00:00:00Z"}
        )

    @pytest.mark.asyncio
    async def test_unknown_user(self, github_source, mock_client):
        mock_client.query.return_value = {"user": None}

        with pytest.raises(GitHubAPIError, match="User 'ghost' not found"):
            await github_source.contributions("ghost", YearRange(2024))

    @pytest.mark.asyncio
    async def test_client_errors_propagate(self, github_source, mock_client):
        mock_client.query.side_effect = GitHubAPIError("Authentication failed. Check your token.")

        with pytest.raises(GitHubAPIError, match="Authentication failed"):
            await github_source.contributions("testuser", YearRange(2024))

        mock_client.query.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_progress_is_reported(self, github_source, mock_client):
        mock_client.query.return_value = {"user": {}}
        progress = AsyncMock()

        await github_source.with_progress_reporter(progress).contributions("testuser", YearRange(2024))

        progress.report.assert_awaited_with("Fetching contributions...")

    def test_satisfies_source_protocol(self, github_source):
        assert isinstance(github_source, GitHubSource)

    def test_query_selects_expected_limits(self):
        assert "pullRequestReviewContributions(first: 100)" in UNWRAPPED_QUERY
        assert "repositories(first: 100)" in UNWRAPPED_QUERY
        assert "languages(first: 5)" in UNWRAPPED_QUERY


if __name__ == "__main__":
    pytest.main([__file__])
