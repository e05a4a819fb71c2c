"""Centralized version metadata for the Parley package."""

__all__ = ["__version__", "__license__"]

__version__ = "0.1.0"
__license__ = "AGPL-3.0-or-later"
