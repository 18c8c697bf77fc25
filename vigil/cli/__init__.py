"""Command-line interface for Vigil."""

from .main import main

__all__ = ["main"]
