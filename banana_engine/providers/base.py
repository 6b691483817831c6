"""Provider base classes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

from ..runs.session import Turn, Usage


@dataclass(frozen=True)
class InputImage:
    name: str
    data: bytes
    mime_type: str | None = None


@dataclass
class GenerationRequest:
    model_id: str
    prompt: str
    ratio: str | None = None
    size: str | None = None
    images: Sequence[InputImage] = ()
    history: Sequence[Turn] = ()


@dataclass
class GenerationResult:
    text: str
    image: bytes
    history: list[Turn]
    usage: Usage | None = None


class ImageProvider(Protocol):
    name: str

    def submit(self, request: GenerationRequest) -> GenerationResult:
        ...


class ProviderRegistry:
    def __init__(self, providers: Iterable[ImageProvider]) -> None:
        self._providers = {provider.name: provider for provider in providers}

    def get(self, name: str) -> ImageProvider | None:
        return self._providers.get(name)

    def list(self) -> list[str]:
        return sorted(self._providers.keys())
