"""Data models for GitHub Unwrapped statistics."""

from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields
from datetime import timedelta
from types import MappingProxyType


@dataclass(frozen=True)
class Stats:
    """Year-to-date statistics derived from one contribution snapshot.

    Mapping fields are wrapped in read-only views, so a ``Stats`` cannot be
    changed after construction.
    """

    username: str
    year: int
    total_commits: int
    total_prs: int
    total_issues: int
    commits_by_repo: Mapping[str, int]
    prs_by_repo: Mapping[str, int]
    issues_by_repo: Mapping[str, int]
    comments_on_prs: int
    # Keyed by the reviewed pull request's author, not by the reviewer.
    top_reviewers: Mapping[str, int]
    most_reviewed_repos: Mapping[str, int]
    top_languages: Mapping[str, int]
    monthly_contributions: Mapping[str, int]
    pr_merge_times: tuple[int, ...]
    most_active_day: str
    top_repos_by_commits: Mapping[str, int]
    top_repos_by_issues: Mapping[str, int]
    # Nothing in the snapshot carries issue close dates, so this stays empty.
    issue_resolution_times: tuple[int, ...] = field(default=())

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Mapping):
                object.__setattr__(self, f.name, MappingProxyType(dict(value)))

    @property
    def total_contributions(self) -> int:
        return self.total_commits + self.total_prs + self.total_issues

    @property
    def average_merge_time(self) -> timedelta | None:
        """Mean merge latency of reviewed pull requests, if any were merged."""
        if not self.pr_merge_times:
            return None
        return timedelta(milliseconds=sum(self.pr_merge_times) / len(self.pr_merge_times))
