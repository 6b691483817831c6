"""Find session files in a directory and optionally delete them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import BananaError, NotFoundError
from ..models.registry import ModelRegistry
from ..utils import format_size
from .session import SessionInfo, list_session_files, validate_session

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    directory: Path
    candidates: list[SessionInfo] = field(default_factory=list)
    skipped: list[tuple[Path, BananaError]] = field(default_factory=list)
    deleted: list[SessionInfo] = field(default_factory=list)
    failed: list[tuple[SessionInfo, OSError]] = field(default_factory=list)

    @property
    def total_bytes(self) -> int:
        return sum(info.size_bytes for info in self.candidates)

    @property
    def freed_bytes(self) -> int:
        return sum(info.size_bytes for info in self.deleted)


def scan_directory(directory: str | Path, registry: ModelRegistry) -> CleanupReport:
    """Validate every session file in ``directory`` (non-recursive)."""
    root = Path(directory)
    if not root.is_dir():
        raise NotFoundError(f"{str(directory)!r} is not a directory")
    report = CleanupReport(directory=root)
    for path in list_session_files(root):
        try:
            report.candidates.append(validate_session(path, registry))
        except BananaError as exc:
            report.skipped.append((path, exc))
    return report


def delete_candidates(report: CleanupReport) -> CleanupReport:
    """Delete validated candidates; one failure does not stop the rest."""
    for info in report.candidates:
        try:
            info.path.unlink()
        except OSError as exc:
            logger.debug("delete failed for %s: %s", info.path, exc)
            report.failed.append((info, exc))
            continue
        report.deleted.append(info)
    return report


def run_cleanup(directory: str | Path, registry: ModelRegistry, *, force: bool = False) -> CleanupReport:
    report = scan_directory(directory, registry)
    if force:
        delete_candidates(report)
    return report


def render_candidates(report: CleanupReport) -> list[str]:
    return [
        f"  {info.path}  model={info.label} turns={info.turns} size={format_size(info.size_bytes)}"
        for info in report.candidates
    ]


def render_outcome(report: CleanupReport, *, force: bool) -> str:
    if force:
        line = f"deleted {len(report.deleted)} files, freed {format_size(report.freed_bytes)}"
    else:
        line = f"dry run: {len(report.candidates)} files, {format_size(report.total_bytes)} would be freed"
    if report.skipped:
        line += f" ({len(report.skipped)} skipped)"
    return line
