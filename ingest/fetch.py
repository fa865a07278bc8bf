from __future__ import annotations

import asyncio
import logging
import time

import httpx


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
MAX_REDIRECT_HOPS = 1


class FeedFetchError(Exception):
    # Seconds to wait before the next attempt, set once the failure is recorded.
    retry_after_seconds: int | None = None


class FeedNetworkError(FeedFetchError):
    pass


class FeedProtocolError(FeedFetchError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FeedTimeoutError(FeedFetchError, TimeoutError):
    pass


async def _get_following_one_redirect(
    client: httpx.AsyncClient,
    *,
    url: str,
    headers: dict[str, str],
    timeout: httpx.Timeout,
) -> httpx.Response:
    response = await client.get(
        url, headers=headers, timeout=timeout, follow_redirects=False
    )
    hops = 0
    while response.is_redirect:
        if hops >= MAX_REDIRECT_HOPS:
            raise FeedProtocolError(
                f"too many redirects fetching {url}", status_code=response.status_code
            )
        location = response.headers.get("Location")
        if not location:
            raise FeedProtocolError(
                f"redirect without Location from {response.url}",
                status_code=response.status_code,
            )
        target = response.url.join(location)
        logger.info("following redirect %s -> %s", response.url, target)
        hops += 1
        response = await client.get(
            target, headers=headers, timeout=timeout, follow_redirects=False
        )
    return response


async def fetch_feed(
    client: httpx.AsyncClient,
    *,
    url: str,
    user_agent: str,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> str:
    headers = {
        "User-Agent": user_agent,
        "Accept": "application/rss+xml, application/xml, text/xml, */*",
    }
    timeout = httpx.Timeout(timeout_seconds)

    started = time.monotonic()
    try:
        response = await asyncio.wait_for(
            _get_following_one_redirect(
                client, url=url, headers=headers, timeout=timeout
            ),
            timeout=timeout_seconds,
        )
    except (httpx.TimeoutException, asyncio.TimeoutError) as e:
        raise FeedTimeoutError(
            f"no response from {url} within {timeout_seconds:g}s"
        ) from e
    except httpx.RequestError as e:
        raise FeedNetworkError(
            f"request to {url} failed: {e.__class__.__name__}: {e}"
        ) from e

    elapsed_ms = int((time.monotonic() - started) * 1000)
    if not response.is_success:
        raise FeedProtocolError(
            f"unexpected status {response.status_code} from {response.url}",
            status_code=response.status_code,
        )

    text = response.text
    logger.info(
        "fetched %d characters from %s in %dms", len(text), response.url, elapsed_ms
    )
    return text
