"""GitHub Unwrapped Bot - ``python -m gh_unwrapped``."""

from .app import run

if __name__ == "__main__":
    run()
