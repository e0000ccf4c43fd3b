import random

FLAKES = ("❄", "❅", "❆")


class Snowfall:
    """A line of falling snow to frame the cards.

    Purely decorative: each call draws a fresh line and nothing about it
    depends on the statistics being shown.
    """

    def __init__(self, width: int = 24, density: float = 0.3, rng: random.Random | None = None) -> None:
        if width <= 0:
            raise ValueError("width must be positive")
        if not 0 <= density <= 1:
            raise ValueError("density must be between 0 and 1")
        self._width = width
        self._density = density
        self._rng = rng or random.Random()

    def line(self) -> str:
        cells = (
            self._rng.choice(FLAKES) if self._rng.random() < self._density else " " for _ in range(self._width)
        )
        return "".join(cells).rstrip()
