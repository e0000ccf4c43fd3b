import pathlib
from datetime import timedelta

from jinja2 import Environment
from jinja2 import FileSystemLoader

from gh_unwrapped.models import Stats
from gh_unwrapped.templates.snowfall import Snowfall


def format_number(value: int) -> str:
    return f"{value:,}"


def format_duration(value: timedelta) -> str:
    """Render a duration as ``1d 4h 12m``, dropping leading zero units."""
    total_minutes = int(value.total_seconds() // 60)
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if days or hours:
        parts.append(f"{hours}h")
    parts.append(f"{minutes}m")
    return " ".join(parts)


class TelegramCardTemplate:
    """Renders :class:`Stats` as Telegram HTML, one card per statistic."""

    def __init__(self, snowfall: Snowfall | None = None) -> None:
        template_dir = pathlib.Path(__file__).parent
        self._env = Environment(
            loader=FileSystemLoader(template_dir), trim_blocks=True, lstrip_blocks=True, autoescape=True
        )
        self._env.filters["format_number"] = format_number
        self._env.filters["format_duration"] = format_duration
        self._cards_template = self._env.get_template("cards_template.j2")
        self._welcome_template = self._env.get_template("welcome_template.j2")
        self._snowfall = snowfall

    def cards(self, stats: Stats) -> str:
        context = {
            "stats": stats,
            "average_merge_time": stats.average_merge_time,
            "snow_top": self._snowfall.line() if self._snowfall else "",
            "snow_bottom": self._snowfall.line() if self._snowfall else "",
        }
        return self._cards_template.render(**context)

    def welcome(self) -> str:
        return self._welcome_template.render()
