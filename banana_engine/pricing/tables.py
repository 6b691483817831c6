"""Price overrides applied on top of the built-in model table."""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping, TypeVar

from ..utils import read_json

logger = logging.getLogger(__name__)

OVERRIDE_PATH = Path.home() / ".banana" / "pricing_overrides.json"

T = TypeVar("T")


def override_path() -> Path:
    raw = os.getenv("BANANA_PRICING_OVERRIDES")
    return Path(raw).expanduser() if raw else OVERRIDE_PATH


def load_price_overrides(path: Path | None = None) -> dict[str, dict[str, Any]]:
    payload = read_json(path or override_path(), {})
    if not isinstance(payload, dict):
        logger.warning("ignoring pricing overrides: top level is not an object")
        return {}
    return {str(key): dict(val) for key, val in payload.items() if isinstance(val, dict)}


def apply_price_overrides(
    definitions: Mapping[str, T],
    overrides: Mapping[str, Mapping[str, Any]] | None,
) -> dict[str, T]:
    merged = dict(definitions)
    for name, row in (overrides or {}).items():
        current = merged.get(name)
        if current is None:
            logger.warning("ignoring pricing override for unknown model %r", name)
            continue
        changes: dict[str, Any] = {}
        for key in ("input_per_mtok", "output_per_mtok"):
            if key in row:
                try:
                    changes[key] = float(row[key])
                except (TypeError, ValueError):
                    logger.warning("ignoring %s override for %r: not a number", key, name)
        prices = row.get("image_prices")
        if isinstance(prices, Mapping):
            image_prices = dict(getattr(current, "image_prices"))
            for size, value in prices.items():
                try:
                    image_prices[str(size).upper()] = float(value)
                except (TypeError, ValueError):
                    logger.warning("ignoring %s image price override for %r", size, name)
            changes["image_prices"] = image_prices
        if changes:
            merged[name] = replace(current, **changes)
    return merged
