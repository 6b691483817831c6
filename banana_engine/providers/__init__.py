"""Provider registry."""

from __future__ import annotations

from .base import ProviderRegistry
from .dryrun import DryRunProvider
from .gemini import GeminiProvider

DEFAULT_PROVIDER = "gemini"


def default_registry() -> ProviderRegistry:
    return ProviderRegistry(
        [
            DryRunProvider(),
            GeminiProvider(),
        ]
    )
