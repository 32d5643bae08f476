"""HTTP client for the relay endpoint."""

import logging
from collections.abc import Awaitable, Callable

import httpx

from coach.conversations.schemas import Message

logger = logging.getLogger(__name__)

TokenSource = Callable[[], Awaitable[str | None]]


class RelayHTTPError(Exception):
    """The relay answered with an error status or a body without a reply."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Relay returned {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class RelayClient:
    def __init__(self, url: str, token_source: TokenSource | None = None, http: httpx.AsyncClient | None = None):
        self.url = url
        self._token_source = token_source
        # No timeout: a turn takes as long as the generation API needs.
        self._http = http or httpx.AsyncClient(timeout=None)
        self._owns_http = http is None

    async def send(self, history: list[Message], system_prompt: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self._token_source is not None:
            token = await self._token_source()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        response = await self._http.post(
            self.url,
            json={"history": [m.model_dump() for m in history], "systemPrompt": system_prompt},
            headers=headers,
        )
        if response.status_code >= 400:
            logger.warning("Relay call failed with status %d", response.status_code)
            raise RelayHTTPError(response.status_code, response.text)
        try:
            reply = response.json()["response"]
        except (ValueError, KeyError, TypeError):
            reply = None
        if not isinstance(reply, str):
            logger.warning("Relay returned an unreadable reply with status %d", response.status_code)
            raise RelayHTTPError(response.status_code, response.text)
        return reply

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
