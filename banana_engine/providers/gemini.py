"""Gemini provider."""

from __future__ import annotations

import logging
import os
from typing import Any, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..errors import EmptyResponseError, GenerationBlockedError, TransportError, UserInputError
from ..runs.session import Blob, Part, Turn, Usage
from .base import GenerationRequest, GenerationResult

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


def resolve_api_key() -> str | None:
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return None


def require_api_key() -> str:
    api_key = resolve_api_key()
    if not api_key:
        raise UserInputError("GEMINI_API_KEY or GOOGLE_API_KEY is not set. Get one at https://aistudio.google.com")
    return api_key


class GeminiProvider:
    name = "gemini"

    def __init__(self, client: Any | None = None) -> None:
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = genai.Client(api_key=require_api_key())
        return self._client

    def submit(self, request: GenerationRequest) -> GenerationResult:
        client = self._get_client()
        config = build_content_config(aspect_ratio=request.ratio, image_size=request.size)
        history = [turn_to_content(turn) for turn in request.history]
        logger.debug("sending %d prior turns to %s", len(history), request.model_id)
        try:
            chat = client.chats.create(model=request.model_id, config=config, history=history)
            response = chat.send_message(build_message_parts(request))
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            raise TransportError(f"generation failed: {exc}") from exc

        text, image = extract_result(response)
        return GenerationResult(
            text=text,
            image=image,
            history=[content_to_turn(content) for content in chat.get_history(curated=True)],
            usage=extract_usage(response),
        )


def build_content_config(*, aspect_ratio: str | None, image_size: str | None) -> types.GenerateContentConfig:
    image_config: dict[str, Any] = {}
    if aspect_ratio:
        image_config["aspect_ratio"] = aspect_ratio
    if image_size:
        image_config["image_size"] = image_size
    config_kwargs: dict[str, Any] = {"response_modalities": ["TEXT", "IMAGE"]}
    if image_config:
        config_kwargs["image_config"] = types.ImageConfig(**image_config)
    return types.GenerateContentConfig(**config_kwargs)


def build_message_parts(request: GenerationRequest) -> list[types.Part]:
    parts = [types.Part(text=request.prompt)]
    for image in request.images:
        parts.append(types.Part(inline_data=types.Blob(mime_type=image.mime_type, data=image.data)))
    return parts


def turn_to_content(turn: Turn) -> types.Content:
    return types.Content(role=turn.role, parts=[_part_to_genai(part) for part in turn.parts])


def _part_to_genai(part: Part) -> types.Part:
    kwargs: dict[str, Any] = {}
    if part.text is not None:
        kwargs["text"] = part.text
    if part.thought:
        kwargs["thought"] = True
    if part.inline_data is not None:
        kwargs["inline_data"] = types.Blob(mime_type=part.inline_data.mime_type, data=part.inline_data.data)
    if part.thought_signature is not None:
        kwargs["thought_signature"] = part.thought_signature
    return types.Part(**kwargs)


def content_to_turn(content: Any) -> Turn:
    parts = []
    for part in getattr(content, "parts", None) or []:
        if part is None:
            continue
        inline = getattr(part, "inline_data", None)
        blob = None
        if inline is not None and getattr(inline, "data", None) is not None:
            blob = Blob(mime_type=getattr(inline, "mime_type", None), data=bytes(inline.data))
        parts.append(
            Part(
                text=getattr(part, "text", None),
                thought=bool(getattr(part, "thought", False)),
                inline_data=blob,
                thought_signature=getattr(part, "thought_signature", None),
            )
        )
    return Turn(role=str(getattr(content, "role", "") or ""), parts=tuple(parts))


def _enum_text(value: Any) -> str:
    return str(getattr(value, "value", value))


def extract_result(response: Any) -> tuple[str, bytes]:
    """Response text and first image; raises when the backend produced no image."""
    candidates: Sequence[Any] = getattr(response, "candidates", None) or []
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback is not None else None
        if block_reason:
            raise GenerationBlockedError("prompt", _enum_text(block_reason))
        raise EmptyResponseError("no response from model")

    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    if content is None:
        finish_reason = getattr(candidate, "finish_reason", None)
        raise GenerationBlockedError("generation", _enum_text(finish_reason) if finish_reason else "unknown")

    texts: list[str] = []
    image: bytes | None = None
    for part in getattr(content, "parts", None) or []:
        if part is None:
            continue
        text = getattr(part, "text", None)
        inline = getattr(part, "inline_data", None)
        if text and not getattr(part, "thought", False):
            texts.append(text)
        elif inline is not None and getattr(inline, "data", None) and image is None:
            image = bytes(inline.data)

    if image is None:
        raise EmptyResponseError("model returned no image data")
    return "\n".join(texts), image


def extract_usage(response: Any) -> Usage | None:
    usage = getattr(response, "usage_metadata", None)
    if usage is None:
        return None
    return Usage(
        prompt_tokens=int(getattr(usage, "prompt_token_count", None) or 0),
        candidate_tokens=int(getattr(usage, "candidates_token_count", None) or 0),
        total_tokens=int(getattr(usage, "total_token_count", None) or 0),
    )
