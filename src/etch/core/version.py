# src/etch/core/version.py
"""Dotted version comparison for attribute guards like ``osversion=">=5.8"``.

Fields are compared pairwise after padding the shorter version with
zeros, so "1" == "1.0" and "5.9" < "5.10". A pair of all-digit fields
without leading zeros compares numerically; fields mixing digits and
letters are split into runs and compared "naturally" (9a < 10a);
anything else compares as strings (so "01" != "1").
"""

from __future__ import annotations

import re
from typing import Any

_NUMERIC = re.compile(r"^[1-9]\d*$")
_MIXED = re.compile(r"\d\D|\D\d")
_RUNS = re.compile(r"\d+|\D+")


def _fields(version: str) -> list[str]:
    parts = version.split(".")
    # ".5" means "0.5"
    if parts[0] == "":
        parts[0] = "0"
    return parts


def _convert(left: list[Any], right: list[Any]) -> tuple[list[Any], list[Any]]:
    """Pad both field lists and convert each pair to comparable values."""
    width = max(len(left), len(right))
    left = left + ["0"] * (width - len(left))
    right = right + ["0"] * (width - len(right))

    out_left: list[Any] = []
    out_right: list[Any] = []
    for a, b in zip(left, right, strict=True):
        if _NUMERIC.match(a) and _NUMERIC.match(b):
            out_left.append(int(a))
            out_right.append(int(b))
        elif _MIXED.search(a) or _MIXED.search(b):
            sub_a, sub_b = _convert(_RUNS.findall(a), _RUNS.findall(b))
            out_left.append(sub_a)
            out_right.append(sub_b)
        else:
            out_left.append(a)
            out_right.append(b)
    return out_left, out_right


def compare_versions(left: str, right: str) -> int:
    """Three-way comparison of two version strings.

    Returns:
        -1, 0 or 1 as ``left`` is lower than, equal to or higher than ``right``
    """
    a, b = _convert(_fields(left), _fields(right))
    return (a > b) - (a < b)

