from __future__ import annotations

import base64
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from shelfsight.pipeline.errors import RenderError
from shelfsight.pipeline.loader import ImageLoader
from shelfsight.pipeline.renderer import HeatmapRenderer, apply_colormap, composite
from shelfsight.pipeline.types import PixelBuffer, SaliencyField


def decode_data_url(payload: str) -> Image.Image:
    header, _, body = payload.partition(",")
    assert header == "data:image/jpeg;base64"
    return Image.open(BytesIO(base64.b64decode(body)))


def gradient_field(width: int = 40, height: int = 30) -> SaliencyField:
    values = np.tile(np.linspace(0.0, 1.0, width, dtype=np.float32), (height, 1))
    return SaliencyField(width=width, height=height, values=values)


def test_colormap_bands() -> None:
    values = np.array([[0.0, 0.3, 0.8]], dtype=np.float32)

    rgba = apply_colormap(values, alpha_peak=180)

    assert tuple(rgba[0, 0]) == (0, 0, 255, 0)
    assert tuple(rgba[0, 1]) == (0, 127, 127, 54)
    assert tuple(rgba[0, 2]) == (255, 127, 0, 144)


def test_colormap_alpha_peak_differs_per_path() -> None:
    values = np.array([[0.5]], dtype=np.float32)
    assert apply_colormap(values, alpha_peak=180)[0, 0, 3] == 90
    assert apply_colormap(values, alpha_peak=128)[0, 0, 3] == 64


def test_composite_draws_original_at_seventy_percent() -> None:
    heat = np.zeros((2, 2, 4), dtype=np.uint8)
    white = PixelBuffer(width=2, height=2, pixels=np.full((2, 2, 4), 255, dtype=np.uint8))

    flattened = composite(heat, white, opacity=0.7)

    assert flattened.shape == (2, 2, 3)
    assert np.all(np.abs(flattened.astype(int) - 178) <= 1)


def test_composite_without_overlay_keeps_heat_only() -> None:
    heat = np.zeros((1, 1, 4), dtype=np.uint8)
    heat[0, 0] = (255, 0, 0, 255)
    assert tuple(composite(heat, None, opacity=0.7)[0, 0]) == (255, 0, 0)


def test_compose_is_deterministic() -> None:
    renderer = HeatmapRenderer(ImageLoader())
    field = gradient_field()
    overlay = PixelBuffer(width=40, height=30, pixels=np.full((30, 40, 4), 200, dtype=np.uint8))

    first = renderer.compose(field, overlay)
    second = renderer.compose(field, overlay)

    assert first.payload == second.payload
    assert first.source == "saliency"
    assert decode_data_url(first.payload).size == (40, 30)


def test_compose_rejects_empty_surface() -> None:
    renderer = HeatmapRenderer(ImageLoader())
    empty = SaliencyField(width=0, height=0, values=np.zeros((0, 0), dtype=np.float32))
    with pytest.raises(RenderError):
        renderer.compose(empty, None)


@pytest.mark.asyncio
async def test_render_overlays_original(gray_png: bytes) -> None:
    renderer = HeatmapRenderer(ImageLoader())
    field = SaliencyField(width=100, height=100, values=np.zeros((100, 100), dtype=np.float32))

    artifact = await renderer.render(field, gray_png)

    image = decode_data_url(artifact.payload).convert("RGB")
    # 70% of mid-gray over a transparent heat layer.
    r, g, b = image.getpixel((50, 50))
    assert abs(r - 90) <= 3 and abs(g - 90) <= 3 and abs(b - 90) <= 3


@pytest.mark.asyncio
async def test_render_falls_back_to_heatmap_only_when_overlay_fails() -> None:
    renderer = HeatmapRenderer(ImageLoader())
    field = gradient_field()

    artifact = await renderer.render(field, b"not an image")

    assert artifact.payload == renderer.compose(field, None).payload
