"""Remote document download."""

import time

import httpx

from ..errors import CollaboratorUnavailableError
from ..logger import logger

DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0


def is_url(source) -> bool:
    return isinstance(source, str) and source.startswith(("http://", "https://"))


def fetch_bytes(url: str, timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS) -> bytes:
    """Download ``url`` and return the response body.

    Raises:
        CollaboratorUnavailableError: On network errors, timeouts or non-2xx responses.
    """
    start = time.perf_counter()
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error("document fetch failed", url=url, status_code=e.response.status_code)
        raise CollaboratorUnavailableError(
            "fetch", f"{url} returned HTTP {e.response.status_code}"
        ) from e
    except httpx.RequestError as e:
        logger.error("document fetch network error", url=url, error=str(e))
        raise CollaboratorUnavailableError("fetch", f"could not download {url}: {e}") from e

    logger.info(
        "document fetched",
        url=url,
        bytes=len(response.content),
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    return response.content
