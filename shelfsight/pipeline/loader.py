from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from io import BytesIO
from pathlib import Path

import httpx
import numpy as np
from PIL import Image

from shelfsight.pipeline.errors import DecodeError
from shelfsight.pipeline.types import EncodedImage, ImageReference, PixelBuffer

logger = logging.getLogger(__name__)

ALLOWED_FORMATS: dict[str, str] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
}


class ImageLoader:
    """Resolves image references and decodes them into RGBA pixel buffers.

    A reference is raw bytes, a ``data:`` URL, an ``http(s)`` URL or a local
    path. Only JPEG and PNG payloads are accepted; anything else is rejected
    before decode.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._http_client = http_client
        self._timeout_s = timeout_s

    async def fetch(self, reference: ImageReference) -> EncodedImage:
        data = await self._read(reference)
        return EncodedImage(data=data, mime_type=self.sniff_mime_type(data))

    async def load(self, reference: ImageReference) -> PixelBuffer:
        encoded = await self.fetch(reference)
        buffer = await asyncio.to_thread(self._decode, encoded.data)
        logger.debug("decoded %s image %dx%d", encoded.mime_type, buffer.width, buffer.height)
        return buffer

    async def _read(self, reference: ImageReference) -> bytes:
        if isinstance(reference, (bytes, bytearray)):
            return bytes(reference)
        if not isinstance(reference, str) or not reference:
            raise DecodeError("image reference must be bytes or a non-empty string")

        if reference.startswith("data:"):
            return self._read_data_url(reference)
        if reference.startswith(("http://", "https://")):
            return await self._read_url(reference)

        try:
            return await asyncio.to_thread(Path(reference).expanduser().read_bytes)
        except (OSError, ValueError) as error:
            raise DecodeError(f"cannot read image file {reference}: {error}") from error

    @staticmethod
    def _read_data_url(reference: str) -> bytes:
        header, sep, body = reference.partition(",")
        if not sep or ";base64" not in header:
            raise DecodeError("data URL must be base64 encoded")
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as error:
            raise DecodeError(f"invalid base64 payload: {error}") from error

    async def _read_url(self, url: str) -> bytes:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, timeout=self._timeout_s)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.get(url, timeout=self._timeout_s)
            response.raise_for_status()
        except httpx.HTTPError as error:
            raise DecodeError(f"failed to fetch {url}: {error}") from error
        return response.content

    @staticmethod
    def sniff_mime_type(data: bytes) -> str:
        if not data:
            raise DecodeError("image payload is empty")
        try:
            with Image.open(BytesIO(data)) as header:
                image_format = header.format
        except Exception as error:
            raise DecodeError(f"unreadable image payload: {error}") from error

        mime_type = ALLOWED_FORMATS.get(image_format or "")
        if mime_type is None:
            raise DecodeError(f"unsupported image format: {image_format}")
        return mime_type

    @staticmethod
    def _decode(data: bytes) -> PixelBuffer:
        try:
            with Image.open(BytesIO(data)) as raw:
                rgba = raw.convert("RGBA")
        except Exception as error:
            raise DecodeError(f"failed to decode image: {error}") from error

        with rgba:
            width, height = rgba.size
            if width == 0 or height == 0:
                raise DecodeError("decoded image has no pixels")
            pixels = np.array(rgba, dtype=np.uint8)
        return PixelBuffer(width=width, height=height, pixels=pixels)
