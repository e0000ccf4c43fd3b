from typing import TYPE_CHECKING
from typing import Any
from typing import Protocol
from typing import runtime_checkable

from .models import Stats

if TYPE_CHECKING:
    from .github_source import YearRange


@runtime_checkable
class GitHubSource(Protocol):
    """Protocol for GitHub data sources."""

    async def contributions(self, username: str, year_range: "YearRange") -> dict[str, Any]:
        """Fetch the raw contribution snapshot for a user."""
        ...

    def with_progress_reporter(self, progress: "ProgressReporter") -> "GitHubSource":
        """Create new instance with progress reporter."""
        ...


@runtime_checkable
class CardTemplate(Protocol):
    """Protocol for rendering statistics."""

    def cards(self, stats: Stats) -> str:
        """Render one card per statistic."""
        ...

    def welcome(self) -> str:
        """Render the start/help message."""
        ...


@runtime_checkable
class ProgressReporter(Protocol):
    """Protocol for reporting progress during operations."""

    async def report(self, message: str) -> None:
        """Report progress message."""
        ...
