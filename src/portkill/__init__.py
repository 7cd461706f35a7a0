"""portkill - find and stop processes listening on development ports."""

__version__ = "0.1.0"
