"""changescope - change impact analysis for multi-module repositories."""

__version__ = "0.1.0"
