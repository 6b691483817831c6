from __future__ import annotations

import json

import pytest

from banana_engine.errors import UnknownModelError, UserInputError
from banana_engine.models.registry import (
    BASE_SIZE,
    DEFAULT_MODEL,
    ModelDefinition,
    ModelRegistry,
    build_registry,
)


def test_default_model_resolves_through_alias(registry: ModelRegistry) -> None:
    canonical, definition = registry.resolve(DEFAULT_MODEL)
    assert canonical == "flash-3.1"
    assert definition.model_id == "gemini-3.1-flash-image-preview"


def test_aliases_point_at_known_models(registry: ModelRegistry) -> None:
    for alias, target in registry.aliases.items():
        assert registry.get(target) is not None, alias
        assert registry.is_alias(alias)
        assert not registry.is_alias(target)


def test_valid_names_is_sorted_union(registry: ModelRegistry) -> None:
    assert registry.valid_names() == ["flash", "flash-2.5", "flash-3.1", "pro", "pro-3.0"]


def test_canonical_passes_through_unknown_names(registry: ModelRegistry) -> None:
    assert registry.canonical("pro") == "pro-3.0"
    assert registry.canonical("pro-3.0") == "pro-3.0"
    assert registry.canonical("mystery") == "mystery"


def test_resolve_unknown_lists_valid_names(registry: ModelRegistry) -> None:
    with pytest.raises(UnknownModelError) as excinfo:
        registry.resolve("gpt-image")
    message = str(excinfo.value)
    assert "gpt-image" in message
    assert "flash, flash-2.5, flash-3.1, pro, pro-3.0" in message
    assert isinstance(excinfo.value, UserInputError)


def test_family_lookup(registry: ModelRegistry) -> None:
    assert registry.family("flash") == "flash"
    assert registry.family("flash-2.5") == "flash"
    assert registry.family("pro") == "pro"
    assert registry.family("nope") is None


def test_capabilities(registry: ModelRegistry) -> None:
    assert registry.max_input_images("flash-2.5") == 3
    assert registry.max_input_images("flash") == 14
    assert registry.supports_size("pro", "4K")
    assert not registry.supports_size("flash-2.5", "2K")
    assert registry.supports_size("flash-2.5", BASE_SIZE)


def test_image_price_falls_back_to_base_tier(registry: ModelRegistry) -> None:
    assert registry.image_price("flash-3.1", "2K") == pytest.approx(0.101)
    assert registry.image_price("flash-2.5", "4K") == pytest.approx(0.039)
    assert registry.image_price("pro", None) == pytest.approx(0.134)
    assert registry.image_price("pro", "4K") == pytest.approx(0.24)


def test_custom_table() -> None:
    custom = ModelRegistry(
        models={
            "tiny": ModelDefinition(
                name="tiny",
                model_id="tiny-image",
                family="tiny",
                max_input_images=1,
                input_per_mtok=0.0,
                output_per_mtok=0.0,
            )
        },
        aliases={},
    )
    assert custom.valid_names() == ["tiny"]
    assert custom.get("tiny").image_price("4K") == 0.0


def test_image_prices_are_read_only(registry: ModelRegistry) -> None:
    prices = {"1K": 0.05}
    definition = ModelDefinition(
        name="tiny",
        model_id="tiny-image",
        family="tiny",
        max_input_images=1,
        input_per_mtok=0.0,
        output_per_mtok=0.0,
        image_prices=prices,
    )
    prices["1K"] = 9.0
    assert definition.image_price("1K") == pytest.approx(0.05)

    with pytest.raises(TypeError):
        registry.get("pro-3.0").image_prices["4K"] = 0.0
    assert ModelRegistry().image_price("pro-3.0", "4K") == pytest.approx(0.24)


def test_build_registry_applies_explicit_overrides() -> None:
    registry = build_registry({"pro-3.0": {"output_per_mtok": 10, "image_prices": {"4k": 0.3}}})
    definition = registry.get("pro-3.0")
    assert definition.output_per_mtok == 10.0
    assert definition.image_prices["4K"] == pytest.approx(0.3)
    assert definition.image_prices["1K"] == pytest.approx(0.134)
    # The built-in table is left alone.
    assert ModelRegistry().get("pro-3.0").output_per_mtok == 12.00


def test_build_registry_reads_override_file(monkeypatch, tmp_path) -> None:
    path = tmp_path / "overrides.json"
    path.write_text(json.dumps({"flash-2.5": {"input_per_mtok": 0.1}}), encoding="utf-8")
    monkeypatch.setenv("BANANA_PRICING_OVERRIDES", str(path))

    registry = build_registry()

    assert registry.get("flash-2.5").input_per_mtok == pytest.approx(0.1)
    assert registry.resolve("flash")[0] == "flash-3.1"
