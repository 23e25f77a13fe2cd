from __future__ import annotations

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from shelfsight.pipeline.errors import SaliencyComputeError
from shelfsight.pipeline.types import PixelBuffer, SaliencyField

LUMA_WEIGHTS = (0.299, 0.587, 0.114)
NORMALIZE_EPSILON = 1e-5


def box_blur(values: np.ndarray, size: int) -> np.ndarray:
    """Same-size mean filter over a ``size`` x ``size`` window with edge padding."""
    pad = size // 2
    padded = np.pad(values, pad, mode="edge")
    windows = sliding_window_view(padded, (size, size))
    return windows.mean(axis=(-2, -1), dtype=np.float64).astype(np.float32)


class SaliencyEngine:
    """Contrast plus color-distinctiveness saliency model.

    Local contrast is the difference between a 3x3 and a 5x5 smoothing of
    luminance. Color uniqueness is each pixel's RGB distance from the mean
    image color. The two terms are weighted equally and min-max normalized.
    """

    def __init__(self, contrast_weight: float = 0.5, color_weight: float = 0.5) -> None:
        self.contrast_weight = contrast_weight
        self.color_weight = color_weight

    def compute(self, buffer: PixelBuffer) -> SaliencyField:
        if buffer.width <= 0 or buffer.height <= 0:
            raise SaliencyComputeError("cannot compute saliency for an empty image")

        try:
            with np.errstate(divide="raise", invalid="raise", over="raise"):
                values = self._saliency(buffer.rgb.astype(np.float32) / 255.0)
        except (FloatingPointError, ValueError, MemoryError) as error:
            raise SaliencyComputeError(f"saliency computation failed: {error}") from error

        if not np.all(np.isfinite(values)):
            raise SaliencyComputeError("saliency field contains non-finite values")

        return SaliencyField(width=buffer.width, height=buffer.height, values=values)

    def _saliency(self, rgb: np.ndarray) -> np.ndarray:
        r, g, b = rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2]
        luma = LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b

        contrast = np.abs(box_blur(luma, 3) - box_blur(luma, 5))

        mean_color = rgb.reshape(-1, 3).mean(axis=0)
        color_distance = np.sqrt(np.sum((rgb - mean_color) ** 2, axis=2))

        saliency = self.contrast_weight * contrast + self.color_weight * color_distance

        low = float(saliency.min())
        high = float(saliency.max())
        normalized = (saliency - low) / (high - low + NORMALIZE_EPSILON)
        return np.clip(normalized, 0.0, 1.0).astype(np.float32)
