"""Local backup of Bilibili favorite folders."""

__version__ = "1.0.0"
