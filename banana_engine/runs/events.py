"""Append-only run events stream."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..utils import now_utc_iso

logger = logging.getLogger(__name__)


@dataclass
class EventWriter:
    path: Path | None
    run_id: str

    def emit(self, event_type: str, **payload: Any) -> dict[str, Any]:
        event = {
            "type": event_type,
            "run_id": self.run_id,
            "ts": now_utc_iso(),
        }
        event.update(payload)
        if self.path is None:
            return event
        # Write failures are logged, never raised.
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(f"{json.dumps(event)}\n")
        except OSError as exc:
            logger.warning("failed to write %s event to %s: %s", event_type, self.path, exc)
        return event
