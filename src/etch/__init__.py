# src/etch/__init__.py
"""etch: fleet configuration distribution engine."""

__version__ = "0.1.0"
