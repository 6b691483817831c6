from __future__ import annotations

import json
import logging
import struct
import zlib
from pathlib import Path
from typing import Any

import pytest

from banana_engine.models.registry import ModelRegistry
from banana_engine.runs.png_text import PNG_SIGNATURE


def png_chunk(chunk_type: bytes, payload: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + payload) & 0xFFFFFFFF
    return struct.pack(">I", len(payload)) + chunk_type + payload + struct.pack(">I", crc)


def minimal_png() -> bytes:
    ihdr = struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0)
    return PNG_SIGNATURE + png_chunk(b"IHDR", ihdr) + png_chunk(b"IEND", b"")


def write_session_json(directory: Path, name: str, payload: Any) -> Path:
    path = directory / name
    path.write_text(json.dumps(payload) if not isinstance(payload, str) else payload, encoding="utf-8")
    return path


def image_turns(images: int = 1, prompt: str = "a cat") -> list[dict[str, Any]]:
    history: list[dict[str, Any]] = []
    for idx in range(images):
        history.append({"role": "user", "parts": [{"text": f"{prompt} {idx}"}]})
        history.append(
            {
                "role": "model",
                "parts": [
                    {"text": "Here you go"},
                    {"inlineData": {"mimeType": "image/png", "data": "aW1n"}},
                ],
            }
        )
    return history


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BANANA_PRICING_OVERRIDES", str(tmp_path / "no-overrides.json"))
    monkeypatch.delenv("BANANA_PROVIDER", raising=False)
    monkeypatch.delenv("BANANA_RESUME_FILTER", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("BANANA_LOG_LEVEL", raising=False)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    logger = logging.getLogger("banana_engine")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
