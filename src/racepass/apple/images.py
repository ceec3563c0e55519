"""Image utilities for Apple Wallet passes.

This module fetches the remote images a pass configuration points at and
handles the image generation needed when none are available. A missing or
broken image never fails pass generation; it is simply left out.
"""

import io
import re
import time
import typing as t
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import httpx
import structlog
from PIL import Image, UnidentifiedImageError

from racepass import settings
from racepass.exceptions import AssetFetchError

logger = structlog.get_logger(__name__)


# Image size definitions (Apple requirements)
ICON_SIZES: dict[str, tuple[int, int]] = {
    "icon.png": (29, 29),
    "icon@2x.png": (58, 58),
    "icon@3x.png": (87, 87),
}

CACHE_BUST_PARAM = "v"


@dataclass(frozen=True)
class PassImages:
    """Fetched pass images; None means absent."""

    icon: bytes | None = None
    logo: bytes | None = None
    strip: bytes | None = None


class ImageFetcher:
    """Fetches pass images over HTTP, degrading every failure to "absent".

    Each fetch carries a cache-busting query parameter, is bounded by a
    timeout, and is retried only on transport errors.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            client: HTTP client to use. If not provided, one is created and
                owned by the fetcher.
            timeout: Per-request timeout in seconds. Defaults to WALLET_IMAGE_FETCH_TIMEOUT.
            retries: Extra attempts after a transport error. Defaults to WALLET_IMAGE_FETCH_RETRIES.
        """
        self.timeout = timeout if timeout is not None else settings.WALLET_IMAGE_FETCH_TIMEOUT
        self.retries = retries if retries is not None else settings.WALLET_IMAGE_FETCH_RETRIES
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self.timeout, follow_redirects=True)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ImageFetcher":
        return self

    def __exit__(self, *exc_info: t.Any) -> None:
        self.close()

    def _build_url(self, url: str) -> httpx.URL:
        try:
            parsed = httpx.URL(url.strip())
        except (httpx.InvalidURL, TypeError) as e:
            raise AssetFetchError(f"Malformed image URL: {e}") from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise AssetFetchError(f"Unsupported image URL: {url}")
        return parsed.copy_add_param(CACHE_BUST_PARAM, str(int(time.time() * 1000)))

    def _fetch_once(self, url: httpx.URL) -> bytes:
        response = self._client.get(url, timeout=self.timeout)
        if not response.is_success:
            raise AssetFetchError(f"Image fetch returned HTTP {response.status_code}")
        if not response.content:
            raise AssetFetchError("Image fetch returned an empty body")
        return response.content

    def fetch(self, url: str | None) -> bytes | None:
        """Fetch one image.

        Returns:
            The response body, or None if the URL is empty or the fetch failed.
        """
        if not url or not url.strip():
            return None

        try:
            request_url = self._build_url(url)
            attempts = 1 + max(self.retries, 0)
            for attempt in range(1, attempts + 1):
                try:
                    return self._fetch_once(request_url)
                except httpx.TransportError as e:
                    if attempt == attempts:
                        raise AssetFetchError(f"Image fetch failed: {e}") from e
                    logger.info("image_fetch_retrying", url=url, attempt=attempt, error=str(e))
                except httpx.HTTPError as e:
                    raise AssetFetchError(f"Image fetch failed: {e}") from e
        except AssetFetchError as e:
            logger.warning("image_fetch_failed", url=url, error=str(e))
        return None

    def fetch_many(self, urls: dict[str, str]) -> dict[str, bytes | None]:
        """Fetch several images concurrently.

        Args:
            urls: Name to URL. Empty URLs are skipped.

        Returns:
            Name to image bytes or None, for every name given.
        """
        pending = {name: url for name, url in urls.items() if url and url.strip()}
        results: dict[str, bytes | None] = {name: None for name in urls}
        if not pending:
            return results

        with ThreadPoolExecutor(max_workers=len(pending)) as executor:
            futures = {name: executor.submit(self.fetch, url) for name, url in pending.items()}
            for name, future in futures.items():
                results[name] = future.result()
        return results


def ensure_png(image_data: bytes | None) -> bytes | None:
    """Return PNG bytes for an image, or None if it is not an image.

    PNG input is returned unchanged; other formats are re-encoded.
    """
    if not image_data:
        return None
    try:
        img: Image.Image = Image.open(io.BytesIO(image_data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("image_decode_failed", error=str(e))
        return None

    source_format = img.format
    if source_format == "PNG":
        return image_data

    # Keep RGBA/P modes for transparency, convert others to RGB
    if img.mode not in ("RGBA", "P", "RGB"):
        img = img.convert("RGB")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    logger.debug("image_converted_to_png", source_format=source_format)
    return buffer.getvalue()


def load_pass_images(fetcher: ImageFetcher, icon_uri: str, logo_uri: str, strip_uri: str) -> PassImages:
    """Fetch the icon, logo and strip images in parallel and normalize them to PNG."""
    fetched = fetcher.fetch_many({"icon": icon_uri, "logo": logo_uri, "strip": strip_uri})
    images = PassImages(
        icon=ensure_png(fetched["icon"]),
        logo=ensure_png(fetched["logo"]),
        strip=ensure_png(fetched["strip"]),
    )
    logger.info(
        "pass_images_loaded",
        icon=images.icon is not None,
        logo=images.logo is not None,
        strip=images.strip is not None,
    )
    return images


def generate_colored_icon(size: tuple[int, int], color: tuple[int, int, int]) -> bytes:
    """Generate a simple colored square icon.

    Args:
        size: (width, height) tuple.
        color: (r, g, b) tuple.

    Returns:
        PNG image as bytes.
    """
    img = Image.new("RGB", size, color)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def parse_rgb_color(rgb_string: str) -> tuple[int, int, int]:
    """Parse an RGB color string to a tuple.

    Args:
        rgb_string: Color in format "rgb(r, g, b)".

    Returns:
        Tuple of (r, g, b) integers, black if the string does not parse.
    """
    match = re.match(r"rgb\(\s*(\d+),\s*(\d+),\s*(\d+)\s*\)", rgb_string.strip())
    if match:
        return t.cast(tuple[int, int, int], tuple(min(int(v), 255) for v in match.groups()))
    return (0, 0, 0)
