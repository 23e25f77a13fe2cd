from __future__ import annotations

import base64
from pathlib import Path

import httpx
import pytest

from shelfsight.pipeline.errors import DecodeError
from shelfsight.pipeline.loader import ImageLoader


@pytest.mark.asyncio
async def test_load_png_bytes(label_png: bytes) -> None:
    buffer = await ImageLoader().load(label_png)

    assert (buffer.width, buffer.height) == (80, 60)
    assert buffer.pixels.shape == (60, 80, 4)
    assert buffer.pixels.size == buffer.width * buffer.height * 4
    assert tuple(buffer.pixels[20, 30]) == (250, 220, 20, 255)


@pytest.mark.asyncio
async def test_fetch_sniffs_mime_type(label_png: bytes, label_jpeg: bytes) -> None:
    loader = ImageLoader()
    assert (await loader.fetch(label_png)).mime_type == "image/png"
    assert (await loader.fetch(label_jpeg)).mime_type == "image/jpeg"


@pytest.mark.asyncio
async def test_load_data_url(label_jpeg: bytes) -> None:
    reference = "data:image/jpeg;base64," + base64.b64encode(label_jpeg).decode("ascii")
    buffer = await ImageLoader().load(reference)
    assert (buffer.width, buffer.height) == (64, 48)


@pytest.mark.asyncio
async def test_load_file_path(tmp_path: Path, label_png: bytes) -> None:
    path = tmp_path / "package.png"
    path.write_bytes(label_png)
    buffer = await ImageLoader().load(str(path))
    assert buffer.width == 80


@pytest.mark.asyncio
async def test_load_http_url(label_png: bytes) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/package.png":
            return httpx.Response(200, content=label_png)
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        loader = ImageLoader(http_client=client)
        buffer = await loader.load("https://cdn.example.com/package.png")
        assert buffer.height == 60

        with pytest.raises(DecodeError):
            await loader.load("https://cdn.example.com/missing.png")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reference",
    [
        b"",
        b"definitely not an image",
        "data:image/png;base64,@@@",
        "data:text/plain,hello",
        "/nonexistent/path/package.png",
    ],
)
async def test_unresolvable_references_raise_decode_error(reference) -> None:
    with pytest.raises(DecodeError):
        await ImageLoader().load(reference)


@pytest.mark.asyncio
async def test_unsupported_format_is_rejected_before_decode(gif_bytes: bytes) -> None:
    with pytest.raises(DecodeError, match="unsupported image format"):
        await ImageLoader().fetch(gif_bytes)


@pytest.mark.asyncio
async def test_truncated_png_raises_decode_error(label_png: bytes) -> None:
    with pytest.raises(DecodeError):
        await ImageLoader().load(label_png[: len(label_png) // 2])


def test_sniff_mime_type_reads_the_payload(label_png: bytes, label_jpeg: bytes) -> None:
    assert ImageLoader.sniff_mime_type(label_png) == "image/png"
    assert ImageLoader.sniff_mime_type(label_jpeg) == "image/jpeg"
