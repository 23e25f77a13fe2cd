from __future__ import annotations

import numpy as np
import pytest

from shelfsight.pipeline.errors import DecodeError
from shelfsight.pipeline.fallback import FallbackHeatmapGenerator, geometry_field
from shelfsight.pipeline.loader import ImageLoader


def test_geometry_field_is_clamped() -> None:
    field = geometry_field(64, 48, np.random.default_rng(3))
    assert field.values.shape == (48, 64)
    assert field.values.min() >= 0.0
    assert field.values.max() <= 1.0


def test_geometry_field_weights_center_and_top_third() -> None:
    field = geometry_field(90, 90, np.random.default_rng(5))

    # Same distance from center, one above and one below the top-third line.
    assert field.values[20, 45] - field.values[70, 45] >= 0.2
    # Center beats a bottom corner.
    assert field.values[45, 45] > field.values[89, 0]


def test_geometry_field_is_reproducible_with_seed() -> None:
    first = geometry_field(32, 32, np.random.default_rng(9))
    second = geometry_field(32, 32, np.random.default_rng(9))
    np.testing.assert_array_equal(first.values, second.values)


@pytest.mark.asyncio
async def test_generate_returns_fallback_artifact(label_png: bytes) -> None:
    generator = FallbackHeatmapGenerator(ImageLoader(), rng=np.random.default_rng(1))

    artifact = await generator.generate(label_png)

    assert artifact.source == "fallback"
    assert artifact.payload.startswith("data:image/jpeg;base64,")


@pytest.mark.asyncio
async def test_generate_only_raises_decode_error() -> None:
    generator = FallbackHeatmapGenerator(ImageLoader(), rng=np.random.default_rng(1))
    with pytest.raises(DecodeError):
        await generator.generate(b"\x00\x01broken")


@pytest.mark.asyncio
async def test_generate_uses_call_rng_over_instance_rng(label_png: bytes) -> None:
    generator = FallbackHeatmapGenerator(ImageLoader(), rng=np.random.default_rng(1))

    first = await generator.generate(label_png, np.random.default_rng(42))
    second = await generator.generate(label_png, np.random.default_rng(42))

    assert first.payload == second.payload
