from __future__ import annotations

import time

import httpx


DEFAULT_TIMEOUT = httpx.Timeout(connect=5.0, read=15.0, write=5.0, pool=5.0)


async def fetch(
    client: httpx.AsyncClient,
    *,
    url: str,
    user_agent: str,
    params: dict[str, str | int] | None = None,
    extra_headers: dict[str, str] | None = None,
    timeout: httpx.Timeout = DEFAULT_TIMEOUT,
) -> tuple[int, bytes | None, int]:
    headers = {
        "User-Agent": user_agent,
        "Accept": "application/json, application/xml, application/rss+xml, text/xml, */*",
    }
    if extra_headers:
        headers.update(extra_headers)

    started = time.perf_counter()
    response = await client.get(url, params=params, headers=headers, timeout=timeout)
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    return (
        response.status_code,
        (response.content if 200 <= response.status_code < 300 else None),
        elapsed_ms,
    )
