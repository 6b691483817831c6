from __future__ import annotations

import io

from PIL import Image

from banana_engine.providers.base import GenerationRequest, InputImage
from banana_engine.providers.dryrun import DryRunProvider
from banana_engine.providers.google_utils import dims_for, normalize_size, parse_ratio
from banana_engine.runs.png_text import has_signature
from banana_engine.runs.session import Blob, Part, Turn


def test_dims_for_ratios_and_tiers() -> None:
    assert dims_for("1:1", None) == (1024, 1024)
    assert dims_for("16:9", "2K") == (2048, 1152)
    assert dims_for("9:16", "1K") == (576, 1024)
    assert dims_for("garbage", "4K") == (4096, 4096)


def test_parse_ratio_and_size() -> None:
    assert parse_ratio(" 3 : 2 ") == (3, 2)
    assert parse_ratio("0:1") is None
    assert parse_ratio("wide") is None
    assert normalize_size("2k") == "2K"
    assert normalize_size("8k") is None
    assert normalize_size(None) is None


def test_dryrun_generates_png_and_history() -> None:
    provider = DryRunProvider()
    request = GenerationRequest(
        model_id="gemini-3.1-flash-image-preview",
        prompt="A dramatic coastline",
        ratio="3:2",
        images=[InputImage(name="ref.png", data=b"ref", mime_type="image/png")],
    )

    result = provider.submit(request)

    assert has_signature(result.image)
    with Image.open(io.BytesIO(result.image)) as image:
        assert image.size == (1024, 683)
    assert result.text == "dryrun gemini-3.1-flash-image-preview 1024x683"
    assert [turn.role for turn in result.history] == ["user", "model"]
    assert result.history[0].parts[1].inline_data == Blob("image/png", b"ref")
    image_part = result.history[1].parts[1]
    assert image_part.inline_data.data == result.image
    assert image_part.is_signed
    assert result.usage.prompt_tokens == 3 + 258
    assert result.usage.candidate_tokens == 3 + 1290
    assert result.usage.total_tokens == result.usage.prompt_tokens + result.usage.candidate_tokens


def test_dryrun_extends_prior_history() -> None:
    prior = [
        Turn("user", (Part(text="a cat"),)),
        Turn("model", (Part(inline_data=Blob("image/png", b"old"), thought_signature=b"s"),)),
    ]
    result = DryRunProvider().submit(GenerationRequest(model_id="m", prompt="now a hat", history=prior))

    assert result.history[:2] == prior
    assert len(result.history) == 4
    # Prompt words, history words, one replayed image.
    assert result.usage.prompt_tokens == 3 + 2 + 258


def test_dryrun_is_deterministic_per_prompt() -> None:
    provider = DryRunProvider()
    first = provider.submit(GenerationRequest(model_id="m", prompt="same"))
    second = provider.submit(GenerationRequest(model_id="m", prompt="same"))
    assert first.image == second.image
