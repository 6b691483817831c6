from __future__ import annotations

from pathlib import Path

import pytest

from banana_engine.errors import NotASessionError, NotFoundError, UnknownModelError
from banana_engine.runs.cleanup import (
    delete_candidates,
    render_candidates,
    render_outcome,
    run_cleanup,
    scan_directory,
)
from banana_engine.utils import format_size
from conftest import image_turns, write_session_json


def _populate(directory: Path) -> dict[str, Path]:
    return {
        "good": write_session_json(directory, "cat.session.json", {"model": "flash-3.1", "history": image_turns(2)}),
        "legacy": write_session_json(directory, "old.session.json", {"history": image_turns(1)}),
        "foreign": write_session_json(directory, "pkg.session.json", {"name": "pkg", "version": "1.0"}),
        "unknown": write_session_json(directory, "x.session.json", {"model": "dall-e", "history": []}),
        "other": write_session_json(directory, "notes.json", {"history": []}),
    }


def test_scan_reports_candidates_and_skips(tmp_path: Path, registry) -> None:
    files = _populate(tmp_path)

    report = scan_directory(tmp_path, registry)

    assert [info.path.name for info in report.candidates] == ["cat.session.json", "old.session.json"]
    skipped = dict((path.name, exc) for path, exc in report.skipped)
    assert isinstance(skipped["pkg.session.json"], NotASessionError)
    assert isinstance(skipped["x.session.json"], UnknownModelError)
    assert report.total_bytes == files["good"].stat().st_size + files["legacy"].stat().st_size
    assert all(path.exists() for path in files.values())


def test_dry_run_deletes_nothing(tmp_path: Path, registry) -> None:
    files = _populate(tmp_path)

    report = run_cleanup(tmp_path, registry)

    assert report.deleted == []
    assert all(path.exists() for path in files.values())
    assert render_outcome(report, force=False) == (
        f"dry run: 2 files, {format_size(report.total_bytes)} would be freed (2 skipped)"
    )


def test_force_deletes_only_validated_sessions(tmp_path: Path, registry) -> None:
    files = _populate(tmp_path)

    report = run_cleanup(tmp_path, registry, force=True)

    assert not files["good"].exists()
    assert not files["legacy"].exists()
    assert files["foreign"].exists()
    assert files["unknown"].exists()
    assert files["other"].exists()
    assert report.freed_bytes == report.total_bytes
    assert render_outcome(report, force=True) == (
        f"deleted 2 files, freed {format_size(report.freed_bytes)} (2 skipped)"
    )


def test_force_keeps_files_with_mistyped_fields(tmp_path: Path, registry) -> None:
    typed = [
        write_session_json(tmp_path, "a.session.json", {"model": False, "history": []}),
        write_session_json(
            tmp_path, "b.session.json", {"history": [], "usage": {"prompt_tokens": "12", "candidate_tokens": 1.9}}
        ),
        write_session_json(tmp_path, "c.session.json", {"history": [{"role": 1, "parts": []}]}),
    ]

    report = run_cleanup(tmp_path, registry, force=True)

    assert report.candidates == []
    assert report.deleted == []
    assert [path.name for path, _ in report.skipped] == ["a.session.json", "b.session.json", "c.session.json"]
    assert all(isinstance(exc, NotASessionError) for _, exc in report.skipped)
    assert all(path.exists() for path in typed)


def test_delete_continues_after_failure(tmp_path: Path, registry) -> None:
    _populate(tmp_path)
    report = scan_directory(tmp_path, registry)
    # Removed behind the scanner's back.
    report.candidates[0].path.unlink()

    delete_candidates(report)

    assert [info.path.name for info, _ in report.failed] == ["cat.session.json"]
    assert [info.path.name for info in report.deleted] == ["old.session.json"]


def test_render_candidates(tmp_path: Path, registry) -> None:
    files = _populate(tmp_path)
    report = scan_directory(tmp_path, registry)

    lines = render_candidates(report)

    size = format_size(files["good"].stat().st_size)
    assert lines[0] == f"  {files['good']}  model=flash-3.1 turns=2 size={size}"
    assert "model=legacy turns=1" in lines[1]


def test_scan_rejects_non_directory(tmp_path: Path, registry) -> None:
    target = write_session_json(tmp_path, "cat.session.json", {"history": []})
    with pytest.raises(NotFoundError, match="is not a directory"):
        scan_directory(target, registry)
    with pytest.raises(NotFoundError):
        scan_directory(tmp_path / "missing", registry)


def test_scan_empty_directory(tmp_path: Path, registry) -> None:
    report = scan_directory(tmp_path, registry)
    assert report.candidates == []
    assert render_outcome(report, force=False) == "dry run: 0 files, 0 B would be freed"
