"""Reduce a raw contribution snapshot into :class:`Stats`."""

import logging
from collections.abc import Mapping
from datetime import date
from datetime import datetime
from datetime import timedelta
from typing import Any

from .github_source import GitHubAPIError
from .models import Stats

logger = logging.getLogger(__name__)

# English names are pinned so output does not depend on the process locale.
MONTH_NAMES = ("January", "February", "March", "April", "May", "June", "July", "August", "September",
               "October", "November", "December")  # fmt: skip
WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

TOP_REPOS_LIMIT = 5

COLLECTION = "contributionsCollection"


def reduce_stats(user: Mapping[str, Any], username: str, year: int) -> Stats:
    """Derive :class:`Stats` from the ``user`` object of the contribution query.

    Every field the query selects is required except ``pullRequest.mergedAt``;
    an absent or null one raises :class:`MissingFieldError`, a wrongly typed
    one :class:`MalformedFieldError`.
    """
    collection = _require(user, "", COLLECTION)

    top_reviewers: dict[str, int] = {}
    most_reviewed_repos: dict[str, int] = {}
    pr_merge_times: list[int] = []
    reviews = _require(collection, COLLECTION, "pullRequestReviewContributions", "nodes")
    for index, review in enumerate(reviews):
        review_path = f"{COLLECTION}.pullRequestReviewContributions.nodes[{index}]"
        pr_path = f"{review_path}.pullRequest"
        pull_request = _require(review, review_path, "pullRequest")
        author = _require(pull_request, pr_path, "author", "login")
        repo_name = _require(review, review_path, "repository", "name")
        top_reviewers[author] = top_reviewers.get(author, 0) + 1
        most_reviewed_repos[repo_name] = most_reviewed_repos.get(repo_name, 0) + 1

        if pull_request.get("mergedAt"):
            latency = _timestamp(pull_request, pr_path, "mergedAt") - _timestamp(pull_request, pr_path, "createdAt")
            pr_merge_times.append(latency // timedelta(milliseconds=1))

    top_languages: dict[str, int] = {}
    for repo_index, repo in enumerate(_require(user, "", "repositories", "nodes")):
        repo_path = f"repositories.nodes[{repo_index}]"
        for edge_index, edge in enumerate(_require(repo, repo_path, "languages", "edges")):
            edge_path = f"{repo_path}.languages.edges[{edge_index}]"
            language = _require(edge, edge_path, "node", "name")
            top_languages[language] = top_languages.get(language, 0) + _require_int(edge, edge_path, "size")

    monthly_contributions: dict[str, int] = {}
    day_counts = dict.fromkeys(WEEKDAY_NAMES, 0)
    weeks_path = f"{COLLECTION}.contributionCalendar.weeks"
    for week_index, week in enumerate(_require(collection, COLLECTION, "contributionCalendar", "weeks")):
        week_path = f"{weeks_path}[{week_index}]"
        for day_index, entry in enumerate(_require(week, week_path, "contributionDays")):
            day_path = f"{week_path}.contributionDays[{day_index}]"
            day = _parse(date.fromisoformat, _require(entry, day_path, "date"), f"{day_path}.date")
            count = _require_int(entry, day_path, "contributionCount")
            month = MONTH_NAMES[day.month - 1]
            monthly_contributions[month] = monthly_contributions.get(month, 0) + count
            day_counts[WEEKDAY_NAMES[day.weekday()]] += count
    # max() keeps the first maximal key, so ties go to the earliest weekday.
    most_active_day = max(day_counts, key=day_counts.__getitem__)

    commits_by_repo = _repo_counts(collection, "commitContributionsByRepository")
    issues_by_repo = _repo_counts(collection, "issueContributionsByRepository")

    logger.debug(f"Reduced snapshot for {username}: {len(reviews)} reviews, {len(top_languages)} languages")

    return Stats(
        username=username,
        year=year,
        total_commits=_require_int(collection, COLLECTION, "totalCommitContributions"),
        total_prs=_require_int(collection, COLLECTION, "totalPullRequestContributions"),
        total_issues=_require_int(collection, COLLECTION, "totalIssueContributions"),
        commits_by_repo=commits_by_repo,
        prs_by_repo=_repo_counts(collection, "pullRequestContributionsByRepository"),
        issues_by_repo=issues_by_repo,
        comments_on_prs=len(reviews),
        top_reviewers=top_reviewers,
        most_reviewed_repos=most_reviewed_repos,
        top_languages=top_languages,
        monthly_contributions=monthly_contributions,
        pr_merge_times=tuple(pr_merge_times),
        most_active_day=most_active_day,
        top_repos_by_commits=top_n(commits_by_repo),
        top_repos_by_issues=top_n(issues_by_repo),
    )


def top_n(counts: Mapping[str, int], limit: int = TOP_REPOS_LIMIT) -> dict[str, int]:
    """Largest ``limit`` entries, descending; ties keep their original order."""
    return dict(sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit])


def _repo_counts(collection: Mapping[str, Any], key: str) -> dict[str, int]:
    counts: dict[str, int] = {}
    for index, entry in enumerate(_require(collection, COLLECTION, key)):
        path = f"{COLLECTION}.{key}[{index}]"
        counts[_require(entry, path, "repository", "name")] = _require_int(entry, path, "contributions", "totalCount")
    return counts


def _require(node: Any, path: str, *keys: str) -> Any:
    value = node
    for key in keys:
        path = f"{path}.{key}" if path else key
        if not isinstance(value, Mapping) or value.get(key) is None:
            raise MissingFieldError(path)
        value = value[key]
    return value


def _require_int(node: Any, path: str, *keys: str) -> int:
    value = _require(node, path, *keys)
    # bool is an int subclass but never a valid count.
    if not isinstance(value, int) or isinstance(value, bool):
        raise MalformedFieldError(".".join((path, *keys)), value)
    return value


def _timestamp(node: Any, path: str, key: str) -> datetime:
    parsed = _parse(datetime.fromisoformat, _require(node, path, key), f"{path}.{key}")
    if parsed.tzinfo is None:
        raise MalformedFieldError(f"{path}.{key}", node[key])
    return parsed


def _parse(parser: Any, value: Any, path: str) -> Any:
    try:
        return parser(value)
    except (TypeError, ValueError) as e:
        raise MalformedFieldError(path, value) from e


class MissingFieldError(GitHubAPIError):
    """The contribution snapshot lacks a field the reduction needs."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Unexpected response: missing field '{path}'")
        self.path = path


class MalformedFieldError(GitHubAPIError):
    def __init__(self, path: str, value: Any) -> None:
        super().__init__(f"Unexpected response: malformed value {value!r} at '{path}'")
        self.path = path
        self.value = value
