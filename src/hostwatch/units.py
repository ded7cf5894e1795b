"""Parsing and formatting helpers for sizes and durations."""

from __future__ import annotations

import math
import re

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMGT])i?$", re.IGNORECASE)

_LEADING_NUMBER_RE = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)")

_UNIT_POWERS = {"K": 1, "M": 2, "G": 3, "T": 4}

_BYTE_UNITS = ("Bytes", "KB", "MB", "GB", "TB", "PB")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_size(token: str) -> int:
    """Convert a size token such as ``"228Gi"``, ``"1.5T"`` or ``"4096"`` to bytes.

    Units are powers of 1024 and the optional ``i`` suffix does not change
    the multiplier. Any other token is read by its leading number, so
    ``"512B"`` is 512; tokens without one yield 0.
    """
    token = (token or "").strip()
    match = _SIZE_RE.match(token)
    if match:
        value = float(match.group(1))
        power = _UNIT_POWERS[match.group(2).upper()]
        return _round_half_up(value * 1024 ** power)

    match = _LEADING_NUMBER_RE.match(token)
    if match is None:
        return 0
    return _round_half_up(float(match.group(1)))


def format_bytes(num_bytes: float) -> str:
    """Render a byte count as a short human string, e.g. ``"465.76 GB"``."""
    if not num_bytes or num_bytes <= 0:
        return "0 Bytes"
    exponent = 0
    while num_bytes >= 1024 ** (exponent + 1) and exponent < len(_BYTE_UNITS) - 1:
        exponent += 1
    value = round(num_bytes / 1024 ** exponent, 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_BYTE_UNITS[exponent]}"


def format_uptime(elapsed_ms: float | None) -> str:
    """Format an elapsed duration using the largest applicable unit pair."""
    if not elapsed_ms or elapsed_ms <= 0:
        return "0s"
    seconds = int(elapsed_ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"
