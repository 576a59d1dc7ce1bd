"""Image loading for vision calls: data URLs, http(s) URLs, local files, raw bytes.

Loading never raises. An image that cannot be read comes back as None and
the caller decides what "no image" means (the validator fails open, the
decision engine falls back).
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

import httpx

import config

logger = logging.getLogger(__name__)

_EXTENSION_MIME = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
}


@dataclass(frozen=True)
class ImageData:
    data: bytes
    mime_type: str = "image/png"

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


ImageRef = str | bytes | Path | ImageData | None


def fix_mime_type(mime_type: str | None, url_or_name: str | None = None) -> str:
    """Return a MIME type vision APIs accept.

    Providers reject application/octet-stream, so non-image types are replaced
    by a guess from the file extension, defaulting to image/jpeg.
    """
    mime = str(mime_type or "").split(";")[0].strip().lower()
    if mime.startswith("image/"):
        return mime
    if url_or_name:
        ext = str(url_or_name).split("?")[0].rsplit(".", 1)[-1].lower()
        if ext in _EXTENSION_MIME:
            return _EXTENSION_MIME[ext]
    logger.debug("Replacing MIME type %r with image/jpeg", mime_type)
    return "image/jpeg"


def _decode_data_url(value: str) -> ImageData | None:
    header, sep, payload = value.partition(",")
    if not sep:
        return None
    mime = header[len("data:"):].split(";")[0]
    if ";base64" not in header:
        return None
    try:
        data = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError):
        return None
    if not data:
        return None
    return ImageData(data=data, mime_type=fix_mime_type(mime))


async def _fetch_url(url: str, *, timeout: float) -> ImageData | None:
    async with httpx.AsyncClient(follow_redirects=True, timeout=timeout) as client:
        response = await client.get(url)
        response.raise_for_status()
    if not response.content:
        return None
    return ImageData(
        data=response.content,
        mime_type=fix_mime_type(response.headers.get("content-type"), url),
    )


def _read_file(path: Path) -> ImageData | None:
    if not path.is_file():
        return None
    data = path.read_bytes()
    if not data:
        return None
    guessed = mimetypes.guess_type(path.name)[0]
    return ImageData(data=data, mime_type=fix_mime_type(guessed, path.name))


async def load_image_data(
    image: ImageRef,
    *,
    timeout: float | None = None,
) -> ImageData | None:
    """Load image bytes + MIME type from any supported reference.

    Strings may be data URLs, http(s) URLs or local file paths. URLs are
    fetched once with a timeout and no retry.
    """
    if image is None:
        return None
    if isinstance(image, ImageData):
        return image if image.data else None
    if isinstance(image, (bytes, bytearray)):
        return ImageData(data=bytes(image), mime_type="image/png") if image else None

    try:
        if isinstance(image, Path):
            return _read_file(image)

        value = str(image).strip()
        if not value:
            return None
        if value.startswith("data:"):
            return _decode_data_url(value)
        if value.startswith(("http://", "https://")):
            return await _fetch_url(
                value,
                timeout=timeout if timeout is not None else config.IMAGE_FETCH_TIMEOUT_SECONDS,
            )
        return _read_file(Path(value).expanduser())
    except httpx.HTTPStatusError as e:
        logger.warning("HTTP %s loading image %s", e.response.status_code, str(image)[:80])
    except httpx.TimeoutException:
        logger.warning("Timeout loading image %s", str(image)[:80])
    except (httpx.HTTPError, OSError) as e:
        logger.warning("Failed to load image %s: %s", str(image)[:80], e)
    return None
