"""Crypto news acquisition pipeline."""

__version__ = "0.1.0"
