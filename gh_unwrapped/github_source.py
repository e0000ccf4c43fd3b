import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from typing import Any

import aiohttp

from .protocols import ProgressReporter

logger = logging.getLogger(__name__)

DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"

UNWRAPPED_QUERY = """
query($username: String!, $from: DateTime!) {
  user(login: $username) {
    contributionsCollection(from: $from) {
      totalCommitContributions
      totalPullRequestContributions
      totalIssueContributions
      commitContributionsByRepository {
        repository { name }
        contributions { totalCount }
      }
      pullRequestContributionsByRepository {
        repository { name }
        contributions { totalCount }
      }
      issueContributionsByRepository {
        repository { name }
        contributions { totalCount }
      }
      pullRequestReviewContributions(first: 100) {
        nodes {
          repository { name }
          pullRequest {
            author { login }
            mergedAt
            createdAt
          }
        }
      }
      contributionCalendar {
        weeks {
          contributionDays {
            date
            contributionCount
          }
        }
      }
    }
    repositories(first: 100) {
      nodes {
        name
        languages(first: 5) {
          edges {
            node { name }
            size
          }
        }
      }
    }
  }
}
"""


@dataclass(frozen=True)
class RateLimit:
    limit: int
    remaining: int
    reset_at: datetime
    used: int

    def seconds_until_reset(self) -> float:
        return max(0, (self.reset_at - datetime.now(UTC)).total_seconds())

    def needs_wait(self, threshold: int = 100) -> bool:
        return self.remaining < threshold


@dataclass(frozen=True)
class RequestConfig:
    base_url: str
    token: str
    timeout_seconds: int = 300
    min_remaining_threshold: int = 100
    safety_buffer: int = 10

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Accept": "application/vnd.github.v4+json",
            "User-Agent": "GitHub-Unwrapped-Bot/1.0",
        }


@dataclass(frozen=True)
class YearRange:
    """Year-to-date window, starting at UTC midnight on January 1."""

    year: int

    @classmethod
    def current(cls) -> "YearRange":
        return cls(datetime.now(UTC).year)

    def from_date(self) -> str:
        return f"{self.year}-01-01T00:00:00Z"


class GraphQLClient:
    def __init__(self, config: RequestConfig) -> None:
        self._config = config
        self._session: aiohttp.ClientSession | None = None
        self._rate_limit: RateLimit | None = None
        self._users = 0

    # Requests from different chats share one client, so the session lives
    # until the last concurrent user leaves.
    async def __aenter__(self) -> "GraphQLClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds))
        self._users += 1
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        del exc_type, exc_val, exc_tb  # Unused parameters
        self._users -= 1
        if self._users == 0 and self._session:
            session, self._session = self._session, None
            await session.close()

    @property
    def rate_limit(self) -> RateLimit | None:
        return self._rate_limit

    async def query(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self._session:
            raise RuntimeError("Client not initialized. Use as async context manager.")

        await self._check_rate_limit()

        payload = {"query": query, "variables": variables or {}}

        try:
            async with self._session.post(
                self._config.base_url, json=payload, headers=self._config.headers()
            ) as response:
                self._rate_limit = self._extract_rate_limit(dict(response.headers))

                if response.status == 401:
                    raise GitHubAPIError("Authentication failed. Check your token.")
                if response.status == 403:
                    raise GitHubAPIError("Forbidden. You may have exceeded rate limits.")
                if response.status >= 400:
                    error_text = await response.text()
                    raise GitHubAPIError(f"HTTP {response.status}: {error_text}")

                try:
                    data = await response.json()
                except (json.JSONDecodeError, aiohttp.ContentTypeError) as e:
                    raise GitHubAPIError(f"Failed to parse JSON response: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GitHubAPIError(f"Request failed: {e}") from e

        if "errors" in data:
            errors = data["errors"]
            error_messages = [error.get("message", "Unknown error") for error in errors]
            raise GitHubAPIError(f"GraphQL errors: {'; '.join(error_messages)}")

        return data.get("data") or {}

    async def _check_rate_limit(self) -> None:
        if not self._rate_limit:
            return

        if self._rate_limit.needs_wait(self._config.min_remaining_threshold):
            wait_time = self._rate_limit.seconds_until_reset() + self._config.safety_buffer
            if wait_time > 0:
                remaining = self._rate_limit.remaining
                limit = self._rate_limit.limit
                logger.warning(
                    f"Rate limit nearly exhausted. "
                    f"Remaining: {remaining}/{limit}. "
                    f"Waiting {wait_time:.1f} seconds until reset."
                )
                await asyncio.sleep(wait_time)

    def _extract_rate_limit(self, headers: dict[str, str]) -> RateLimit | None:
        try:
            limit = int(headers.get("x-ratelimit-limit", 0))
            remaining = int(headers.get("x-ratelimit-remaining", 0))

            if limit == 0 and remaining == 0:
                return None

            return RateLimit(
                limit=limit,
                remaining=remaining,
                reset_at=datetime.fromtimestamp(int(headers.get("x-ratelimit-reset", 0)), tz=UTC),
                used=int(headers.get("x-ratelimit-used", 0)),
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to parse rate limit headers: {e}")
            return None


class GitHubContributionSource:
    def __init__(self, client: GraphQLClient, progress: ProgressReporter | None = None) -> None:
        self._client = client
        self._progress = progress

    async def _report_progress(self, message: str) -> None:
        if self._progress:
            await self._progress.report(message)

    def with_progress_reporter(self, progress: ProgressReporter) -> "GitHubContributionSource":
        return GitHubContributionSource(self._client, progress)

    async def contributions(self, username: str, year_range: YearRange) -> dict[str, Any]:
        """Fetch the raw year-to-date contribution snapshot for ``username``.

        Returns the ``user`` object of the GraphQL response untouched.
        """
        await self._report_progress("Fetching contributions...")

        variables = {"username": username, "from": year_range.from_date()}

        async with self._client as client:
            try:
                data = await client.query(UNWRAPPED_QUERY, variables)
            except GitHubAPIError:
                logger.exception(f"Error fetching contributions for {username} ({year_range.year})")
                raise

        user = data.get("user")
        if user is None:
            raise GitHubAPIError(f"User '{username}' not found")

        logger.debug(f"Fetched contribution snapshot for {username} ({year_range.year})")
        return user


class GitHubAPIError(Exception):
    pass
