"""Queue engine for marketplace report requests and feed submissions."""

__version__ = "1.0.0"
