"""Shared helpers for the Gemini image backends."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Tuple

_RATIO_RE = re.compile(r"^\s*(\d+)\s*:\s*(\d+)\s*$")

GEMINI_RATIOS = {
    "1:1": 1.0,
    "2:3": 2.0 / 3.0,
    "3:2": 3.0 / 2.0,
    "3:4": 3.0 / 4.0,
    "4:3": 4.0 / 3.0,
    "4:5": 4.0 / 5.0,
    "5:4": 5.0 / 4.0,
    "9:16": 9.0 / 16.0,
    "16:9": 16.0 / 9.0,
    "21:9": 21.0 / 9.0,
}

SIZE_TIERS = ("1K", "2K", "4K")
_TIER_EDGE = {"1K": 1024, "2K": 2048, "4K": 4096}

SUPPORTED_MIMES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}
SUPPORTED_EXTENSIONS_LABEL = "png, jpg/jpeg, webp, heic, heif"


def mime_type_for_path(path: str | Path) -> Optional[str]:
    return SUPPORTED_MIMES.get(Path(path).suffix.lower())


def parse_ratio(value: str | None) -> Optional[Tuple[int, int]]:
    if not value:
        return None
    match = _RATIO_RE.match(value)
    if not match:
        return None
    w = int(match.group(1))
    h = int(match.group(2))
    if w <= 0 or h <= 0:
        return None
    return w, h


def is_valid_ratio(value: str | None) -> bool:
    return bool(value) and value in GEMINI_RATIOS


def normalize_size(value: str | None) -> Optional[str]:
    """``"2k"`` -> ``"2K"``; returns None for anything that is not a tier."""
    if not value:
        return None
    normalized = value.strip().upper()
    return normalized if normalized in SIZE_TIERS else None


def dims_for(ratio: str | None, size: str | None) -> Tuple[int, int]:
    """Pixel dimensions for a ratio at a size tier (long edge = tier edge)."""
    edge = _TIER_EDGE.get(size or "1K", 1024)
    parsed = parse_ratio(ratio) or (1, 1)
    w, h = parsed
    if w >= h:
        return edge, max(1, round(edge * h / w))
    return max(1, round(edge * w / h)), edge
