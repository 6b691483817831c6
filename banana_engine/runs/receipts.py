"""Provenance metadata embedded into generated images."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from ..errors import (
    FormatError,
    MetadataDecodeError,
    MetadataMissingError,
    NotFoundError,
    NotPNGError,
    TextChunkNotFoundError,
)
from ..utils import now_utc_iso
from .png_text import get_text, has_signature, set_text
from .session import Turn

logger = logging.getLogger(__name__)

METADATA_VERSION = 1
METADATA_KEY = "banana"


@dataclass
class GenerateOptions:
    prompt: str
    output: str
    model: str
    model_id: str
    ratio: str = "1:1"
    size: str = ""
    inputs: Sequence[str] = ()
    session: str = ""
    session_out: str = ""
    force: bool = False


@dataclass(frozen=True)
class PromptEntry:
    role: str
    text: str


@dataclass
class ImageMetadata:
    model: str
    model_id: str
    ratio: str
    timestamp: str
    version: int = METADATA_VERSION
    size: str = ""
    inputs: list[str] = field(default_factory=list)
    session: str = ""
    prompts: list[PromptEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "version": self.version,
            "model": self.model,
            "model_id": self.model_id,
            "ratio": self.ratio,
        }
        if self.size:
            payload["size"] = self.size
        if self.inputs:
            payload["inputs"] = list(self.inputs)
        if self.session:
            payload["session"] = self.session
        payload["timestamp"] = self.timestamp
        payload["prompts"] = [{"role": p.role, "text": p.text} for p in self.prompts]
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ImageMetadata":
        prompts = []
        for item in payload.get("prompts") or []:
            if isinstance(item, Mapping):
                prompts.append(PromptEntry(role=str(item.get("role", "")), text=str(item.get("text", ""))))
        return cls(
            version=int(payload.get("version") or 0),
            model=str(payload.get("model") or ""),
            model_id=str(payload.get("model_id") or ""),
            ratio=str(payload.get("ratio") or ""),
            size=str(payload.get("size") or ""),
            inputs=[str(item) for item in payload.get("inputs") or []],
            session=str(payload.get("session") or ""),
            timestamp=str(payload.get("timestamp") or ""),
            prompts=prompts,
        )


def prompt_entries(history: Iterable[Turn]) -> list[PromptEntry]:
    """Text of each turn, skipping image data and model thoughts."""
    entries = []
    for turn in history:
        texts = [
            part.text
            for part in turn.parts
            if part.inline_data is None and not part.thought and part.text
        ]
        if texts:
            entries.append(PromptEntry(role=turn.role, text="\n".join(texts)))
    return entries


def build_metadata(options: GenerateOptions, history: Iterable[Turn], timestamp: str | None = None) -> ImageMetadata:
    # Only basenames: the image may be shared, local paths should not leak.
    return ImageMetadata(
        model=options.model,
        model_id=options.model_id,
        ratio=options.ratio,
        size=options.size,
        inputs=[Path(item).name for item in options.inputs],
        session=Path(options.session).name if options.session else "",
        timestamp=timestamp or now_utc_iso(),
        prompts=prompt_entries(history),
    )


def embed_metadata(image_data: bytes, metadata: ImageMetadata) -> bytes:
    if not has_signature(image_data):
        logger.warning("output is not PNG, skipping metadata embedding")
        return image_data
    try:
        return set_text(image_data, METADATA_KEY, json.dumps(metadata.to_dict()))
    except FormatError as exc:
        logger.warning("failed to embed metadata: %s", exc)
        return image_data


def read_metadata(path: str | Path) -> ImageMetadata:
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise NotFoundError(f"failed to read {str(path)!r}: {exc}") from exc
    if not has_signature(data):
        raise NotPNGError(f"{str(path)!r} is not a PNG file (metadata is only embedded in PNG output)")
    try:
        raw = get_text(data, METADATA_KEY)
    except TextChunkNotFoundError:
        raise MetadataMissingError(f"no banana metadata found in {str(path)!r}") from None
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise MetadataDecodeError(f"failed to parse metadata: {exc}") from exc
    if not isinstance(payload, dict):
        raise MetadataDecodeError("failed to parse metadata: not a JSON object")
    try:
        return ImageMetadata.from_dict(payload)
    except (TypeError, ValueError) as exc:
        raise MetadataDecodeError(f"failed to parse metadata: {exc}") from exc


def render_metadata(metadata: ImageMetadata) -> list[str]:
    lines = [
        f"version:   {metadata.version}",
        f"model:     {metadata.model} ({metadata.model_id})",
        f"ratio:     {metadata.ratio}",
    ]
    if metadata.size:
        lines.append(f"size:      {metadata.size}")
    lines.append(f"timestamp: {metadata.timestamp}")
    if metadata.inputs:
        lines.append(f"inputs:    {', '.join(metadata.inputs)}")
    if metadata.session:
        lines.append(f"session:   {metadata.session}")
    if metadata.prompts:
        lines.append("")
        lines.append("prompts:")
        for idx, entry in enumerate(metadata.prompts, start=1):
            lines.append(f"  [{idx}] {entry.role}: {entry.text}")
    return lines
