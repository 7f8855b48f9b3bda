"""YISHI: interpretive core of a narrative game about laying spirits to rest."""

__version__ = "0.1.0"
