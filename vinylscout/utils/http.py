"""Shelf photo download for the scan endpoint.

The client uploads an already-compressed photo and passes its URL. The
bytes are checked with Pillow before any model quota is spent on them.
"""

from __future__ import annotations

import io

import httpx
from PIL import Image

from vinylscout.exceptions import ImageFetchError

DEFAULT_MIME_TYPE = "image/jpeg"


def _sniff_mime_type(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except Exception as exc:
        raise ImageFetchError("Downloaded file is not a readable image") from exc
    return Image.MIME.get(fmt or "", DEFAULT_MIME_TYPE)


async def fetch_image(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float = 20.0,
) -> tuple[bytes, str]:
    """Fetch one image and return ``(bytes, mime_type)``."""
    try:
        response = await client.get(url, timeout=timeout, follow_redirects=True)
    except httpx.TimeoutException as exc:
        raise ImageFetchError(f"Timeout downloading image: {url[:100]}") from exc
    except httpx.RequestError as exc:
        raise ImageFetchError(
            f"Network error downloading image: {url[:100]}: {type(exc).__name__}"
        ) from exc

    if response.status_code >= 400:
        raise ImageFetchError(
            f"Error downloading image: {response.status_code}",
            status=response.status_code,
        )

    data = response.content
    sniffed = _sniff_mime_type(data)
    content_type = response.headers.get("content-type", "").split(";")[0].strip()
    # Storage buckets often answer application/octet-stream; trust the bytes then
    mime_type = content_type if content_type.startswith("image/") else sniffed
    return data, mime_type


async def download_image(url: str, *, timeout: float = 20.0) -> tuple[bytes, str]:
    async with httpx.AsyncClient() as client:
        return await fetch_image(client, url, timeout=timeout)
