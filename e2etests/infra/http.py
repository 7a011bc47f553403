"""Small aiohttp JSON client for read-only service endpoints.

Only GETs are needed. Connection errors, 429 and 5xx responses are retried
a few times with exponential backoff; any other non-2xx response fails
immediately.
"""

from __future__ import annotations

from typing import Any

import aiohttp
from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

log = logger.bind(component="http")


class HttpError(Exception):
    def __init__(self, status: int, url: str, body: str) -> None:
        self.status = status
        self.url = url
        self.body = body
        super().__init__(f"HTTP {status} from {url}: {body[:200]}")

    @property
    def transient(self) -> bool:
        """Status 0 stands for a connection-level failure."""
        return self.status == 0 or self.status == 429 or self.status >= 500


class TokenAuth:
    """Static ``Authorization`` header, ``Bearer`` scheme unless told otherwise."""

    def __init__(self, token: str, scheme: str = "Bearer") -> None:
        self._value = f"{scheme} {token}"

    def headers(self) -> dict[str, str]:
        return {"Authorization": self._value}


def _is_transient(err: BaseException) -> bool:
    return isinstance(err, HttpError) and err.transient


def _log_retry(state: RetryCallState) -> None:
    err = state.outcome.exception() if state.outcome else None
    log.warning(
        "GET failed (attempt {n}): {err}, retrying in {delay:.1f}s",
        n=state.attempt_number, err=err, delay=state.next_action.sleep if state.next_action else 0,
    )


class JsonClient:
    def __init__(
        self,
        base_url: str,
        auth: TokenAuth | None = None,
        *,
        timeout: float = 30,
        attempts: int = 3,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._attempts = attempts
        self._session: aiohttp.ClientSession | None = None

    def _session_for_loop(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if self._auth is not None:
                headers.update(self._auth.headers())
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=headers)
        return self._session

    async def _get_once(self, url: str, params: dict[str, str] | None) -> Any:
        session = self._session_for_loop()
        try:
            async with session.get(url, params=params) as resp:
                if resp.status >= 400:
                    raise HttpError(resp.status, url, await resp.text())
                if not await resp.read():
                    return None
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise HttpError(0, url, str(e)) from e

    async def get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET ``path`` relative to the base URL and decode the JSON body.

        Raises:
            HttpError: Non-2xx response, or the last transient failure once
                the attempts are used up.
        """
        url = f"{self._base_url}{path}"
        log.debug("GET {url} {params}", url=url, params=params or {})

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=0.5, max=5),
            retry=retry_if_exception(_is_transient),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(self._get_once, url, params)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> JsonClient:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
