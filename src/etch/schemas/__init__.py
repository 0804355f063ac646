# src/etch/schemas/__init__.py
"""Packaged DTDs used when a repository ships none of its own."""
