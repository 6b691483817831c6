"""Model registry for banana."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from ..errors import UnknownModelError
from ..pricing.tables import apply_price_overrides, load_price_overrides

BASE_SIZE = "1K"
DEFAULT_MODEL = "flash"
PRICES_COLLECTED = "2026-03-01"


@dataclass(frozen=True)
class ModelDefinition:
    name: str
    model_id: str
    family: str
    max_input_images: int
    input_per_mtok: float
    output_per_mtok: float
    sizes: frozenset[str] = frozenset({BASE_SIZE})
    image_prices: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "image_prices", MappingProxyType(dict(self.image_prices)))

    def supports_size(self, size: str) -> bool:
        return size in self.sizes

    def image_price(self, size: str | None) -> float:
        """Per-image price for a size tier, falling back to the base tier."""
        if size and size in self.image_prices:
            return self.image_prices[size]
        return self.image_prices.get(BASE_SIZE, 0.0)


_DEFAULT_MODELS: dict[str, ModelDefinition] = {
    "flash-2.5": ModelDefinition(
        name="flash-2.5",
        model_id="gemini-2.5-flash-image",
        family="flash",
        max_input_images=3,
        input_per_mtok=0.30,
        output_per_mtok=2.50,
        sizes=frozenset({"1K"}),
        image_prices={"1K": 0.039},
    ),
    "flash-3.1": ModelDefinition(
        name="flash-3.1",
        model_id="gemini-3.1-flash-image-preview",
        family="flash",
        max_input_images=14,
        input_per_mtok=0.50,
        output_per_mtok=3.00,
        sizes=frozenset({"1K", "2K", "4K"}),
        image_prices={"1K": 0.067, "2K": 0.101, "4K": 0.151},
    ),
    "pro-3.0": ModelDefinition(
        name="pro-3.0",
        model_id="gemini-3-pro-image-preview",
        family="pro",
        max_input_images=14,
        input_per_mtok=2.00,
        output_per_mtok=12.00,
        sizes=frozenset({"1K", "2K", "4K"}),
        image_prices={"1K": 0.134, "2K": 0.134, "4K": 0.24},
    ),
}

_DEFAULT_ALIASES: dict[str, str] = {
    "flash": "flash-3.1",
    "pro": "pro-3.0",
}


class ModelRegistry:
    """Read-only lookup table of model definitions and short aliases."""

    def __init__(
        self,
        models: Mapping[str, ModelDefinition] | None = None,
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self._models = MappingProxyType(dict(models) if models is not None else dict(_DEFAULT_MODELS))
        self._aliases = MappingProxyType(dict(aliases) if aliases is not None else dict(_DEFAULT_ALIASES))

    @property
    def aliases(self) -> Mapping[str, str]:
        return self._aliases

    def get(self, name: str) -> ModelDefinition | None:
        return self._models.get(name)

    def list(self) -> Iterable[ModelDefinition]:
        return self._models.values()

    def valid_names(self) -> list[str]:
        return sorted(set(self._aliases) | set(self._models))

    def is_alias(self, name: str) -> bool:
        return name in self._aliases

    def is_known(self, name: str) -> bool:
        return name in self._aliases or name in self._models

    def canonical(self, name: str) -> str:
        return self._aliases.get(name, name)

    def resolve(self, name: str) -> tuple[str, ModelDefinition]:
        canonical = self.canonical(name)
        definition = self._models.get(canonical)
        if definition is None:
            raise UnknownModelError(name, self.valid_names())
        return canonical, definition

    def family(self, name: str) -> str | None:
        definition = self._models.get(self.canonical(name))
        return definition.family if definition else None

    def max_input_images(self, name: str) -> int:
        return self.resolve(name)[1].max_input_images

    def supports_size(self, name: str, size: str) -> bool:
        return self.resolve(name)[1].supports_size(size)

    def image_price(self, name: str, size: str | None) -> float:
        return self.resolve(name)[1].image_price(size)


def build_registry(overrides: Mapping[str, Mapping[str, object]] | None = None) -> ModelRegistry:
    """Build the process-wide registry, applying price overrides once."""
    if overrides is None:
        overrides = load_price_overrides()
    return ModelRegistry(apply_price_overrides(_DEFAULT_MODELS, overrides), _DEFAULT_ALIASES)
