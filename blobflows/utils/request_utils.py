import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiohttp
import structlog
import tenacity


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, aiohttp.ClientResponseError):
        # client errors won't go away by asking again
        return exc.status >= 500 or exc.status == 429
    return isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError))


def _retrying(log: structlog.stdlib.BoundLogger, attempts: int):
    return tenacity.retry(
        retry=tenacity.retry_if_exception(is_transient),
        wait=tenacity.wait_random_exponential(multiplier=1, max=5),
        stop=tenacity.stop_after_attempt(attempts),
        before_sleep=tenacity.before_sleep_log(
            log,  # type: ignore
            logging.WARNING,
            exc_info=True,
        ),
        reraise=True,
    )


async def _check_status(
    log: structlog.stdlib.BoundLogger,
    resp: aiohttp.ClientResponse,
    url: str,
) -> None:
    if 200 <= resp.status < 300:
        return
    body = await resp.text()
    log.warning(
        "Non-2xx status code",
        status=resp.status,
        url=url,
        body=body[:500],
    )
    raise aiohttp.ClientResponseError(
        resp.request_info,
        resp.history,
        status=resp.status,
        message=f"Non-2xx status code {resp.status}",
    )


async def request_json(
    log: structlog.stdlib.BoundLogger,
    url: str,
    method: str = "GET",
    json: Any = None,
    attempts: int = 5,
    session: aiohttp.ClientSession | None = None,
    **kwargs,
) -> Any:
    @_retrying(log, attempts)
    async def make_request():
        async with _session_scope(session) as s:
            async with s.request(method=method, url=url, json=json, **kwargs) as resp:
                await _check_status(log, resp, url)
                return await resp.json(content_type=None)

    return await make_request()


async def request_read(
    log: structlog.stdlib.BoundLogger,
    url: str,
    method: str = "GET",
    data: bytes | None = None,
    attempts: int = 5,
    session: aiohttp.ClientSession | None = None,
    **kwargs,
) -> bytes:
    @_retrying(log, attempts)
    async def make_request():
        async with _session_scope(session) as s:
            async with s.request(method=method, url=url, data=data, **kwargs) as resp:
                await _check_status(log, resp, url)
                return await resp.read()

    return await make_request()


@asynccontextmanager
async def _session_scope(
    session: aiohttp.ClientSession | None,
) -> AsyncIterator[aiohttp.ClientSession]:
    # use the given session, or open a throwaway one for a single request
    if session is not None:
        yield session
        return
    async with aiohttp.ClientSession() as owned:
        yield owned
