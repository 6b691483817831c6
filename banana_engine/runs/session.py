"""Session files: the conversation history that lets a generation be continued.

A session lives next to its output image (``cat.png`` -> ``cat.session.json``)
and is never rewritten in place; continuing a session always writes a new
file so the source stays available for branching.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

from ..errors import (
    ModelMismatchError,
    NotASessionError,
    SessionParseError,
    SessionReadError,
    UnknownModelError,
    UserInputError,
)
from ..models.registry import ModelRegistry

SESSION_SUFFIX = ".session.json"
SESSION_FIELDS = frozenset({"model", "size", "history", "usage"})
USAGE_FIELDS = frozenset({"prompt_tokens", "candidate_tokens", "total_tokens"})
LEGACY_LABEL = "legacy"

ROLE_USER = "user"
ROLE_MODEL = "model"

_URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")


def _decode_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise ValueError("expected base64 string")
    # Accept both the standard and the URL-safe alphabet, padded or not.
    normalized = value.strip().rstrip("=").translate(_URLSAFE_TO_STANDARD)
    try:
        return base64.b64decode(normalized + "=" * (-len(normalized) % 4), validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 data: {exc}") from exc


def _encode_bytes(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


@dataclass(frozen=True)
class Blob:
    mime_type: str | None
    data: bytes


@dataclass(frozen=True)
class Part:
    text: str | None = None
    thought: bool = False
    inline_data: Blob | None = None
    thought_signature: bytes | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_binary(self) -> bool:
        return self.inline_data is not None

    @property
    def is_signed(self) -> bool:
        return self.thought_signature is not None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Part":
        known = {
            "text", "thought", "inlineData", "inline_data",
            "thoughtSignature", "thought_signature",
        }
        inline = payload.get("inlineData", payload.get("inline_data"))
        blob = None
        if isinstance(inline, Mapping):
            blob = Blob(
                mime_type=inline.get("mimeType", inline.get("mime_type")),
                data=_decode_bytes(inline.get("data", "")),
            )
        elif inline is not None:
            raise ValueError("inlineData must be an object")
        signature = payload.get("thoughtSignature", payload.get("thought_signature"))
        text = payload.get("text")
        if text is not None and not isinstance(text, str):
            raise ValueError("text must be a string")
        thought = payload.get("thought")
        if thought is not None and not isinstance(thought, bool):
            raise ValueError("thought must be a boolean")
        return cls(
            text=text,
            thought=bool(thought),
            inline_data=blob,
            thought_signature=_decode_bytes(signature) if signature is not None else None,
            extra={k: v for k, v in payload.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        if self.text is not None:
            payload["text"] = self.text
        if self.thought:
            payload["thought"] = True
        if self.inline_data is not None:
            blob: dict[str, Any] = {"data": _encode_bytes(self.inline_data.data)}
            if self.inline_data.mime_type:
                blob["mimeType"] = self.inline_data.mime_type
            payload["inlineData"] = blob
        if self.thought_signature is not None:
            payload["thoughtSignature"] = _encode_bytes(self.thought_signature)
        return payload


@dataclass(frozen=True)
class Turn:
    role: str
    parts: tuple[Part, ...] = ()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Turn":
        raw_parts = payload.get("parts") or []
        if not isinstance(raw_parts, list):
            raise ValueError("parts must be a list")
        parts = []
        for item in raw_parts:
            if item is None:
                continue
            if not isinstance(item, Mapping):
                raise ValueError("part must be an object")
            parts.append(Part.from_dict(item))
        role = payload.get("role")
        if role is not None and not isinstance(role, str):
            raise ValueError("role must be a string")
        return cls(role=role or "", parts=tuple(parts))

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "parts": [part.to_dict() for part in self.parts]}


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    candidate_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Usage":
        return cls(
            prompt_tokens=_counter(payload, "prompt_tokens"),
            candidate_tokens=_counter(payload, "candidate_tokens"),
            total_tokens=_counter(payload, "total_tokens"),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "candidate_tokens": self.candidate_tokens,
            "total_tokens": self.total_tokens,
        }

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            candidate_tokens=self.candidate_tokens + other.candidate_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


def _counter(payload: Mapping[str, Any], key: str) -> int:
    value = payload.get(key)
    if value is None:
        return 0
    # bool is an int subclass; JSON true/false is not a token count.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return value


def turn_count(entries: int) -> int:
    """A turn is one user message plus one model reply; a trailing entry counts."""
    return (entries + 1) // 2


@dataclass(frozen=True)
class Session:
    model: str = ""
    size: str | None = None
    history: tuple[Turn, ...] = ()
    usage: Usage | None = None
    # Raw entry count on disk; null entries are dropped from history but still counted.
    history_length: int | None = field(default=None, compare=False)

    @property
    def turns(self) -> int:
        if self.history_length is not None:
            return turn_count(self.history_length)
        return turn_count(len(self.history))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.model}
        if self.size:
            payload["size"] = self.size
        payload["history"] = [turn.to_dict() for turn in self.history]
        if self.usage is not None:
            payload["usage"] = self.usage.to_dict()
        return payload


@dataclass(frozen=True)
class SessionInfo:
    path: Path
    model: str
    turns: int
    size_bytes: int

    @property
    def label(self) -> str:
        return self.model or LEGACY_LABEL


def derive_path(output_path: str | Path) -> Path:
    """Session path that belongs to an output image."""
    path = Path(output_path)
    return path.with_name(path.stem + SESSION_SUFFIX)


def list_session_files(directory: str | Path) -> list[Path]:
    """Snapshot of the session files directly inside ``directory``."""
    root = Path(directory)
    try:
        with os.scandir(root) as scan:
            entries = sorted(scan, key=lambda entry: entry.name)
    except OSError as exc:
        raise SessionReadError(f"cannot read directory: {exc}") from exc
    return [
        root / entry.name
        for entry in entries
        if entry.name.endswith(SESSION_SUFFIX) and not entry.is_dir()
    ]


def _load_document(path: Path) -> tuple[dict[str, Any], int]:
    try:
        size_bytes = path.stat().st_size
        raw = path.read_bytes()
    except OSError as exc:
        raise SessionReadError(f"failed to read {str(path)!r}: {exc}") from exc
    try:
        document = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise SessionParseError(f"failed to parse {str(path)!r}: {exc}") from exc
    if not isinstance(document, dict):
        raise SessionParseError(f"failed to parse {str(path)!r}: top level is not an object")
    return document, size_bytes


def _parse_session(path: Path, document: Mapping[str, Any]) -> Session:
    history = document.get("history")
    if history is None:
        raise NotASessionError(str(path), "missing history field")
    if not isinstance(history, list):
        raise NotASessionError(str(path), "history is not a list")

    turns = []
    for entry in history:
        if entry is None:
            continue
        if not isinstance(entry, Mapping):
            raise NotASessionError(str(path), "history entry is not an object")
        try:
            turns.append(Turn.from_dict(entry))
        except ValueError as exc:
            raise NotASessionError(str(path), f"bad history entry: {exc}") from exc

    model = document.get("model")
    if model is not None and not isinstance(model, str):
        raise NotASessionError(str(path), "model is not a string")
    size = document.get("size")
    if size is not None and not isinstance(size, str):
        raise NotASessionError(str(path), "size is not a string")

    usage = None
    raw_usage = document.get("usage")
    if raw_usage is not None:
        if not isinstance(raw_usage, Mapping):
            raise NotASessionError(str(path), "usage is not an object")
        try:
            usage = Usage.from_dict(raw_usage)
        except (TypeError, ValueError) as exc:
            raise NotASessionError(str(path), f"bad usage counters: {exc}") from exc

    return Session(
        model=model or "",
        size=size or None,
        history=tuple(turns),
        usage=usage,
        history_length=len(history),
    )


def read_session(path: str | Path) -> tuple[Session, int]:
    """Parse a session file; returns the session and the file size in bytes."""
    session_path = Path(path)
    document, size_bytes = _load_document(session_path)
    return _parse_session(session_path, document), size_bytes


def validate_session(path: str | Path, registry: ModelRegistry) -> SessionInfo:
    """Strict check used before a session file is reported or deleted.

    Unlike ``read_session`` this rejects unknown fields, so an unrelated JSON
    file that happens to match the suffix is never mistaken for a session.
    """
    session_path = Path(path)
    document, size_bytes = _load_document(session_path)

    unknown = sorted(set(document) - SESSION_FIELDS)
    if unknown:
        raise NotASessionError(str(session_path), f"unknown field {unknown[0]!r}")
    raw_usage = document.get("usage")
    if isinstance(raw_usage, Mapping):
        unknown = sorted(set(raw_usage) - USAGE_FIELDS)
        if unknown:
            raise NotASessionError(str(session_path), f"unknown usage field {unknown[0]!r}")

    session = _parse_session(session_path, document)
    if session.model and not registry.is_known(session.model):
        raise UnknownModelError(session.model, registry.valid_names())

    return SessionInfo(
        path=session_path,
        model=session.model,
        turns=session.turns,
        size_bytes=size_bytes,
    )


def check_compatible(declared: str, requested: str, registry: ModelRegistry) -> None:
    """Raise unless a session created with ``declared`` may continue under ``requested``."""
    if not declared or declared == requested:
        return
    if registry.is_alias(declared):
        family = registry.family(declared)
        if family is not None and family == registry.family(requested):
            return
    raise ModelMismatchError(declared, requested)


def open_for_resume(
    path: str | Path,
    requested_model: str,
    registry: ModelRegistry,
    resume_filter: str | None = None,
) -> tuple[Session, list[Turn]]:
    """The stored session plus the history that may be replayed from it."""
    session, _ = read_session(path)
    check_compatible(session.model, requested_model, registry)
    return session, sanitize_for_resume(session.history, resume_filter)


def load_session(
    path: str | Path,
    requested_model: str,
    registry: ModelRegistry,
    resume_filter: str | None = None,
) -> list[Turn]:
    """Read a session for continuation and return replayable history."""
    return open_for_resume(path, requested_model, registry, resume_filter)[1]


def write_session(path: str | Path, session: Session, *, overwrite: bool = False) -> int:
    payload = json.dumps(session.to_dict()).encode("utf-8")
    mode = "wb" if overwrite else "xb"
    with open(path, mode) as handle:
        handle.write(payload)
    return len(payload)


# Resume filters -------------------------------------------------------------
#
# Newer image models require a thought signature on every part of a model
# turn that was produced with thinking enabled. Only the image parts carry
# one, so unsigned commentary text must be dropped before replaying.


def _keep_signed_parts(turn: Turn) -> Turn:
    if turn.role != ROLE_MODEL or not any(part.is_signed for part in turn.parts):
        return turn
    return Turn(role=turn.role, parts=tuple(part for part in turn.parts if part.is_signed))


def _keep_all(turn: Turn) -> Turn:
    return turn


RESUME_FILTERS: dict[str, Callable[[Turn], Turn]] = {
    "signed-parts-v1": _keep_signed_parts,
    "none": _keep_all,
}
DEFAULT_RESUME_FILTER = "signed-parts-v1"


def resolve_resume_filter(name: str | None = None) -> Callable[[Turn], Turn]:
    key = name or os.getenv("BANANA_RESUME_FILTER") or DEFAULT_RESUME_FILTER
    try:
        return RESUME_FILTERS[key]
    except KeyError:
        valid = ", ".join(sorted(RESUME_FILTERS))
        raise UserInputError(f"unknown resume filter {key!r} (valid: {valid})") from None


def sanitize_for_resume(turns: tuple[Turn, ...] | list[Turn], resume_filter: str | None = None) -> list[Turn]:
    """Return history safe to send back to the backend; the input is not modified."""
    keep = resolve_resume_filter(resume_filter)
    return [keep(turn) for turn in turns]
