"""Minimal PNG tEXt chunk writer/reader.

Chunks are ``length(4, big-endian) | type(4) | data(length) | crc(4)``, with
the CRC taken over type+data. Text records are inserted directly after the
IHDR chunk so every other byte of the file is left untouched.
"""

from __future__ import annotations

import io
import struct
import zlib

from PIL import Image, UnidentifiedImageError

from ..errors import FormatError, NotPNGError, TextChunkNotFoundError

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
TEXT_CHUNK_TYPE = b"tEXt"

_LENGTH = struct.Struct(">I")


def has_signature(data: bytes) -> bool:
    return len(data) >= len(PNG_SIGNATURE) and data[: len(PNG_SIGNATURE)] == PNG_SIGNATURE


def build_chunk(chunk_type: bytes, payload: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + payload) & 0xFFFFFFFF
    return _LENGTH.pack(len(payload)) + chunk_type + payload + _LENGTH.pack(crc)


def set_text(data: bytes, key: str, value: str) -> bytes:
    """Return a copy of ``data`` with a ``key``/``value`` tEXt chunk after IHDR."""
    if not has_signature(data):
        raise NotPNGError("not a PNG file")
    header_start = len(PNG_SIGNATURE)
    if len(data) < header_start + 8:
        raise NotPNGError("PNG too short")
    (ihdr_len,) = _LENGTH.unpack_from(data, header_start)
    insert_at = header_start + 4 + 4 + ihdr_len + 4
    if insert_at > len(data):
        raise NotPNGError("PNG IHDR extends beyond data")

    payload = key.encode("utf-8") + b"\x00" + value.encode("utf-8")
    chunk = build_chunk(TEXT_CHUNK_TYPE, payload)
    return data[:insert_at] + chunk + data[insert_at:]


def get_text(data: bytes, key: str) -> str:
    """Return the value of the first tEXt chunk whose keyword equals ``key``."""
    if not has_signature(data):
        raise NotPNGError("not a PNG file")

    wanted = key.encode("utf-8")
    offset = len(PNG_SIGNATURE)
    while offset + 8 <= len(data):
        (chunk_len,) = _LENGTH.unpack_from(data, offset)
        chunk_type = data[offset + 4 : offset + 8]
        chunk_end = offset + 8 + chunk_len + 4
        if chunk_end > len(data):
            break
        if chunk_type == TEXT_CHUNK_TYPE:
            payload = data[offset + 8 : offset + 8 + chunk_len]
            keyword, sep, value = payload.partition(b"\x00")
            if sep and keyword == wanted:
                return value.decode("utf-8", errors="replace")
        offset = chunk_end
    raise TextChunkNotFoundError(key)


def ensure_png(data: bytes) -> bytes:
    """Return ``data`` unchanged if it is PNG, otherwise re-encode it as PNG."""
    if has_signature(data):
        return data
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            buffer = io.BytesIO()
            image.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise FormatError(f"failed to decode image data: {exc}") from exc
    return buffer.getvalue()
