from __future__ import annotations

import asyncio
import base64
import logging
from io import BytesIO

import numpy as np
from PIL import Image

from shelfsight.pipeline.errors import DecodeError, RenderError
from shelfsight.pipeline.loader import ImageLoader
from shelfsight.pipeline.types import (
    HeatmapArtifact,
    HeatmapSource,
    ImageReference,
    PixelBuffer,
    SaliencyField,
)

logger = logging.getLogger(__name__)

HIGH_BAND_THRESHOLD = 0.6


def apply_colormap(values: np.ndarray, alpha_peak: int) -> np.ndarray:
    """Map a [0,1] field to RGBA: blue-cyan-green below 0.6, red-yellow above."""
    v = values.astype(np.float64)
    high = v > HIGH_BAND_THRESHOLD

    rgba = np.zeros(v.shape + (4,), dtype=np.float64)
    rgba[:, :, 0] = np.where(high, 255.0, 0.0)
    rgba[:, :, 1] = np.where(
        high,
        np.floor(((v - HIGH_BAND_THRESHOLD) * 255) / 0.4),
        np.floor((v * 255) / HIGH_BAND_THRESHOLD),
    )
    rgba[:, :, 2] = np.where(high, 0.0, np.floor(((HIGH_BAND_THRESHOLD - v) * 255) / HIGH_BAND_THRESHOLD))
    rgba[:, :, 3] = np.floor(alpha_peak * v)
    return np.clip(rgba, 0, 255).astype(np.uint8)


def composite(heat_rgba: np.ndarray, overlay: PixelBuffer | None, opacity: float) -> np.ndarray:
    """Draw ``overlay`` source-over the heat layer at ``opacity``, flattened onto black.

    The overlay is placed at the origin at its natural size and clipped to the
    heat layer, the same way a canvas ``drawImage(img, 0, 0)`` behaves.
    """
    heat_alpha = heat_rgba[:, :, 3:4].astype(np.float64) / 255.0
    out = heat_rgba[:, :, :3].astype(np.float64) * heat_alpha

    if overlay is not None:
        h = min(out.shape[0], overlay.height)
        w = min(out.shape[1], overlay.width)
        src = overlay.pixels.reshape(overlay.height, overlay.width, 4)[:h, :w].astype(np.float64)
        src_alpha = opacity * src[:, :, 3:4] / 255.0
        out[:h, :w] = src[:, :, :3] * src_alpha + out[:h, :w] * (1.0 - src_alpha)

    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def encode_jpeg_data_url(rgb: np.ndarray, quality: int) -> str:
    out_buffer = BytesIO()
    with Image.fromarray(rgb) as image:
        image.save(out_buffer, format="JPEG", quality=quality)
    return "data:image/jpeg;base64," + base64.b64encode(out_buffer.getvalue()).decode("ascii")


class HeatmapRenderer:
    def __init__(
        self,
        loader: ImageLoader,
        alpha_peak: int = 180,
        overlay_opacity: float = 0.7,
        jpeg_quality: int = 85,
        source: HeatmapSource = "saliency",
    ) -> None:
        self._loader = loader
        self.alpha_peak = alpha_peak
        self.overlay_opacity = overlay_opacity
        self.jpeg_quality = jpeg_quality
        self.source = source

    async def render(self, field: SaliencyField, overlay_reference: ImageReference) -> HeatmapArtifact:
        try:
            overlay: PixelBuffer | None = await self._loader.load(overlay_reference)
        except DecodeError as error:
            logger.warning("Failed to load overlay image, returning heatmap only: %s", error)
            overlay = None
        return await asyncio.to_thread(self.compose, field, overlay)

    def compose(self, field: SaliencyField, overlay: PixelBuffer | None) -> HeatmapArtifact:
        if field.width <= 0 or field.height <= 0:
            raise RenderError("cannot allocate an empty compositing surface")

        heat = apply_colormap(field.values, self.alpha_peak)
        flattened = composite(heat, overlay, self.overlay_opacity)
        try:
            payload = encode_jpeg_data_url(flattened, self.jpeg_quality)
        except (OSError, ValueError) as error:
            raise RenderError(f"failed to encode heatmap: {error}") from error
        return HeatmapArtifact(payload=payload, source=self.source)
