"""Allow running the arena CLI via ``python -m src.arena``."""

from src.arena.cli import app

app()
