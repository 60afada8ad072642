"""
Pytest configuration for unit tests.

Pins the arena backends so a developer's environment or .env file cannot
point test runs at anything but the in-memory implementations.
"""

import os


def pytest_configure(config):
    """Set arena environment defaults for unit tests."""
    os.environ["ARENA_QUEUE_BACKEND"] = "memory"
    os.environ["ARENA_STORAGE_BACKEND"] = "memory"
