"""Dry-run image provider (offline)."""

from __future__ import annotations

import hashlib
import io

from PIL import Image, ImageDraw, ImageFont

from ..runs.session import ROLE_MODEL, ROLE_USER, Blob, Part, Turn, Usage
from .base import GenerationRequest, GenerationResult
from .google_utils import dims_for

# Rough per-image token charge so offline sessions carry plausible usage.
_IMAGE_INPUT_TOKENS = 258
_IMAGE_OUTPUT_TOKENS = 1290


class DryRunProvider:
    name = "dryrun"

    def __init__(self) -> None:
        self._font = ImageFont.load_default()

    def submit(self, request: GenerationRequest) -> GenerationResult:
        width, height = dims_for(request.ratio, request.size)
        image = Image.new("RGB", (width, height), _color_from_prompt(request.prompt))
        draw = ImageDraw.Draw(image)
        draw.text((20, 20), f"dryrun\n{request.prompt[:60]}", fill=(255, 255, 255), font=self._font)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        data = buffer.getvalue()

        text = f"dryrun {request.model_id} {width}x{height}"
        user_parts = [Part(text=request.prompt)]
        user_parts.extend(Part(inline_data=Blob(mime_type=img.mime_type, data=img.data)) for img in request.images)
        signature = hashlib.sha256(data).digest()[:16]
        model_parts = (
            Part(text=text),
            Part(inline_data=Blob(mime_type="image/png", data=data), thought_signature=signature),
        )
        history = list(request.history)
        history.append(Turn(role=ROLE_USER, parts=tuple(user_parts)))
        history.append(Turn(role=ROLE_MODEL, parts=model_parts))

        prompt_tokens = _token_estimate(request)
        output_tokens = len(text.split()) + _IMAGE_OUTPUT_TOKENS
        return GenerationResult(
            text=text,
            image=data,
            history=history,
            usage=Usage(
                prompt_tokens=prompt_tokens,
                candidate_tokens=output_tokens,
                total_tokens=prompt_tokens + output_tokens,
            ),
        )


def _token_estimate(request: GenerationRequest) -> int:
    tokens = len(request.prompt.split()) + _IMAGE_INPUT_TOKENS * len(request.images)
    for turn in request.history:
        for part in turn.parts:
            if part.inline_data is not None:
                tokens += _IMAGE_INPUT_TOKENS
            elif part.text:
                tokens += len(part.text.split())
    return tokens


def _color_from_prompt(prompt: str) -> tuple[int, int, int]:
    digest = hashlib.sha256(prompt.encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]
