"""Arena - distributed evaluation of agent configurations across provider fleets."""

__version__ = "0.1.0"
