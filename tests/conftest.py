from __future__ import annotations

from io import BytesIO

import numpy as np
import pytest
from PIL import Image


def encode_image(arr: np.ndarray, image_format: str = "PNG") -> bytes:
    out = BytesIO()
    Image.fromarray(arr.astype(np.uint8)).save(out, format=image_format)
    return out.getvalue()


@pytest.fixture
def gray_png() -> bytes:
    return encode_image(np.full((100, 100, 3), 128, dtype=np.uint8))


@pytest.fixture
def label_png() -> bytes:
    """Dark package with a bright yellow label block in the upper middle."""
    arr = np.full((60, 80, 3), 30, dtype=np.uint8)
    arr[15:30, 25:55] = (250, 220, 20)
    return encode_image(arr)


@pytest.fixture
def label_jpeg() -> bytes:
    arr = np.full((48, 64, 3), 40, dtype=np.uint8)
    arr[10:20, 20:40] = (240, 30, 30)
    return encode_image(arr, "JPEG")


@pytest.fixture
def gif_bytes() -> bytes:
    return encode_image(np.zeros((4, 4, 3), dtype=np.uint8), "GIF")
