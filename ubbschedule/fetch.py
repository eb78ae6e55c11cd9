"""
Document fetching.

One GET per URL, mandatory timeout, no retries. Many URLs are fetched in
small concurrent batches with a fixed pause between batches so the origin
site does not rate-limit or block us.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

import requests

from ubbschedule.config import Settings, get_settings
from ubbschedule.errors import NetworkError
from ubbschedule.model import FetchResult

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], str]


def _headers(settings: Settings) -> dict[str, str]:
    return {
        "User-Agent": settings.user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }


def fetch_document(
    url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Fetch one HTML document and return its text.

    Raises NetworkError for timeouts, DNS/connection problems and HTTP
    statuses >= 400 (redirects are followed).
    """
    settings = settings or get_settings()
    timeout = timeout if timeout is not None else settings.request_timeout
    getter = session.get if session is not None else requests.get

    try:
        resp = getter(url, headers=_headers(settings), timeout=timeout, allow_redirects=True)
    except requests.Timeout as exc:
        raise NetworkError(url, f"Timed out after {timeout:g}s") from exc
    except requests.RequestException as exc:
        raise NetworkError(url, f"Request failed: {exc}") from exc

    if resp.status_code >= 400:
        raise NetworkError(url, f"HTTP {resp.status_code}", status=resp.status_code)

    # Servers of the faculty sometimes omit the charset
    if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
        resp.encoding = resp.apparent_encoding or "utf-8"

    return resp.text


def _fetch_one(fetch: Fetcher, url: str) -> FetchResult:
    try:
        return FetchResult(url=url, text=fetch(url))
    except NetworkError as exc:
        logger.warning("FAIL  %s", exc)
        return FetchResult(url=url, error=exc)
    except requests.RequestException as exc:
        logger.warning("FAIL  %s: %s", url, exc)
        return FetchResult(url=url, error=NetworkError(url, str(exc)))
    except Exception as exc:
        # one broken page must not abort the rest of the batch
        logger.exception("FAIL  %s: unexpected %s", url, type(exc).__name__)
        return FetchResult(url=url, error=NetworkError(url, f"{type(exc).__name__}: {exc}"))


def fetch_many(
    urls: Sequence[str],
    *,
    fetch: Fetcher = fetch_document,
    batch_size: Optional[int] = None,
    delay: Optional[float] = None,
    on_result: Optional[Callable[[FetchResult], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[FetchResult]:
    """
    Fetch all URLs in bounded concurrent batches.

    Returns one FetchResult per URL, in input order. A failing URL never
    aborts the other fetches of its batch or the following batches.
    """
    if batch_size is None or delay is None:
        settings = get_settings()
        batch_size = settings.batch_size if batch_size is None else batch_size
        delay = settings.batch_delay if delay is None else delay
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    results: List[FetchResult] = []
    total = len(urls)

    for i in range(0, total, batch_size):
        batch = list(urls[i : i + batch_size])

        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            batch_results = list(pool.map(lambda u: _fetch_one(fetch, u), batch))

        for result in batch_results:
            if on_result is not None:
                on_result(result)
        results.extend(batch_results)

        logger.debug("Processed: %d/%d", min(i + batch_size, total), total)

        if i + batch_size < total:
            sleep(delay)

    return results
