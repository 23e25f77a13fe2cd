from __future__ import annotations

import asyncio

import numpy as np

from shelfsight.pipeline.loader import ImageLoader
from shelfsight.pipeline.renderer import HeatmapRenderer
from shelfsight.pipeline.types import HeatmapArtifact, ImageReference, SaliencyField

CENTER_WEIGHT = 0.7
TOP_THIRD_BOOST = 0.3
JITTER_SCALE = 0.1


def geometry_field(width: int, height: int, rng: np.random.Generator) -> SaliencyField:
    """Center- and top-weighted attention guess with a little jitter."""
    cx = width / 2
    cy = height / 2
    yy, xx = np.mgrid[0:height, 0:width].astype(np.float64)

    distance = np.sqrt((xx - cx) ** 2 + (yy - cy) ** 2) / (width / 2)
    top_boost = np.where(yy < height / 3, TOP_THIRD_BOOST, 0.0)
    jitter = rng.random((height, width)) * JITTER_SCALE

    heat = (1.0 - distance) * CENTER_WEIGHT + top_boost + jitter
    return SaliencyField(width=width, height=height, values=np.clip(heat, 0.0, 1.0).astype(np.float32))


class FallbackHeatmapGenerator:
    """Last-resort heatmap that needs nothing but the image geometry.

    Only a :class:`DecodeError` from loading the image may escape; the decoded
    buffer doubles as the overlay so there is no second load to fail.
    """

    def __init__(
        self,
        loader: ImageLoader,
        rng: np.random.Generator | None = None,
        alpha_peak: int = 128,
        overlay_opacity: float = 0.7,
        jpeg_quality: int = 85,
    ) -> None:
        self._loader = loader
        self._rng = rng if rng is not None else np.random.default_rng()
        self._renderer = HeatmapRenderer(
            loader,
            alpha_peak=alpha_peak,
            overlay_opacity=overlay_opacity,
            jpeg_quality=jpeg_quality,
            source="fallback",
        )

    async def generate(
        self,
        reference: ImageReference,
        rng: np.random.Generator | None = None,
    ) -> HeatmapArtifact:
        buffer = await self._loader.load(reference)
        field = geometry_field(buffer.width, buffer.height, rng if rng is not None else self._rng)
        return await asyncio.to_thread(self._renderer.compose, field, buffer)
