"""Tourbook commission and tier pricing backend."""

__version__ = "0.1.0"
