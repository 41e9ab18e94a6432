"""Off-chain token metadata fetcher.

Pulls the JSON document behind a token's metadata URI directly (faster than
waiting for an indexer to pick it up), with exponential backoff:
attempt 0 fails -> wait 1s, attempt 1 -> 2s, then 4s, 8s. No wait after
the final attempt.
"""

import asyncio

import httpx
from loguru import logger

from src.parsers.pumpfun.constants import DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_SYMBOL
from src.parsers.pumpfun.models import TokenMetadata

IMAGE_FIELDS = ("image", "image_uri", "logo", "logoURI", "icon")

HEADERS = {
    "Accept": "application/json",
    "User-Agent": "pumpfun-token-indexer/1.0",
}


def _first_image(container: dict) -> str:
    for field in IMAGE_FIELDS:
        value = container.get(field)
        if isinstance(value, str) and value:
            return value
    return ""


def extract_image_url(metadata: dict) -> str:
    """Find an image URL in loosely-structured token metadata.

    Order: top-level ``image``, alternate names, the same names under
    ``properties``, then the first ``files`` entry (``uri`` or ``url``).
    """
    image = _first_image(metadata)
    if image:
        return image

    properties = metadata.get("properties")
    if isinstance(properties, dict):
        image = _first_image(properties)
        if image:
            return image

    files = metadata.get("files")
    if isinstance(files, list) and files:
        first = files[0]
        if isinstance(first, dict):
            for key in ("uri", "url"):
                value = first.get(key)
                if isinstance(value, str) and value:
                    return value
        elif isinstance(first, str):
            return first

    return ""


def _text(data: dict, key: str, default: str) -> str:
    value = data.get(key)
    if isinstance(value, str) and value:
        return value
    return default


def parse_token_metadata(uri: str, data: dict) -> TokenMetadata:
    return TokenMetadata(
        name=_text(data, "name", DEFAULT_TOKEN_NAME),
        symbol=_text(data, "symbol", DEFAULT_TOKEN_SYMBOL),
        uri=uri,
        description=_text(data, "description", ""),
        image=extract_image_url(data),
    )


def is_fetchable_uri(uri: str) -> bool:
    """True for an http(s) URL with a host that httpx can request."""
    if not uri or not uri.strip():
        return False
    try:
        url = httpx.URL(uri.strip())
        # decoding an xn-- host raises for invalid A-labels
        host = url.host
    except (httpx.InvalidURL, ValueError):
        return False
    return url.scheme in ("http", "https") and bool(host)


class MetadataFetcher:
    """Async HTTP client for token metadata JSON documents."""

    def __init__(self, *, timeout: float = 10.0, max_retries: int = 5) -> None:
        self._max_retries = max_retries
        self._client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_metadata(
        self, uri: str, max_retries: int | None = None
    ) -> TokenMetadata | None:
        """Fetch and parse metadata. None means "no metadata available"."""
        if not is_fetchable_uri(uri):
            logger.debug(f"[METADATA] Skipping invalid URI: {uri!r}")
            return None
        uri = uri.strip()

        attempts = max_retries if max_retries is not None else self._max_retries
        for attempt in range(attempts):
            try:
                resp = await self._client.get(uri, headers=HEADERS)
            except (httpx.InvalidURL, ValueError) as e:
                logger.warning(f"[METADATA] Unusable URI {uri!r}: {e}")
                return None
            except httpx.HTTPError as e:
                logger.debug(f"[METADATA] {type(e).__name__} for {uri} (attempt {attempt + 1})")
            else:
                if resp.is_success:
                    content_type = resp.headers.get("content-type", "")
                    if "application/json" not in content_type:
                        logger.warning(f"[METADATA] Unexpected content type {content_type!r} for {uri}")
                        return None
                    try:
                        data = resp.json()
                    except ValueError:
                        logger.warning(f"[METADATA] Invalid JSON body from {uri}")
                        return None
                    if not isinstance(data, dict):
                        logger.warning(f"[METADATA] JSON root is not an object for {uri}")
                        return None
                    return parse_token_metadata(uri, data)

                logger.debug(f"[METADATA] HTTP {resp.status_code} for {uri} (attempt {attempt + 1})")

            if attempt < attempts - 1:
                await asyncio.sleep(2**attempt)

        logger.debug(f"[METADATA] Gave up on {uri} after {attempts} attempts")
        return None
