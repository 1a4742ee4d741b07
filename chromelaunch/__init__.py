"""Find, download and launch Chrome with remote debugging enabled."""

__version__ = "0.1.0"
__all__ = ["fetcher", "locate", "process"]