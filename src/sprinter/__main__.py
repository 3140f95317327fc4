"""Allow running as `python -m sprinter`."""

from .cli import app

if __name__ == "__main__":
    app()
