"""Host-context detection: embedded in a container (Teams) or a standalone tab."""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from coach.session.errors import HostUnavailable

logger = logging.getLogger(__name__)

TEAMS_USER_AGENT_MARKERS = ("Teams/", "MicrosoftTeams")


class HostKind(str, Enum):
    EMBEDDED = "embedded"
    STANDALONE = "standalone"


@dataclass(frozen=True)
class HostContext:
    kind: HostKind
    platform: str | None = None

    @property
    def embedded(self) -> bool:
        return self.kind is HostKind.EMBEDDED


STANDALONE = HostContext(HostKind.STANDALONE)


class HostPlatform(Protocol):
    """Adapter over an embedding container's SDK.

    ``initialize`` raises HostUnavailable (or never returns) outside the host.
    ``authenticate`` opens the host-managed auth popup at ``url`` and returns
    the URL or fragment the identity provider redirected the popup to.
    """

    name: str

    async def initialize(self) -> None: ...

    async def get_auth_token(self) -> str: ...

    async def authenticate(self, url: str) -> str: ...


async def detect_host_context(platform: HostPlatform | None, timeout: float) -> HostContext:
    """Return EMBEDDED if the host SDK initialises within ``timeout`` seconds."""
    if platform is None:
        return STANDALONE
    try:
        await asyncio.wait_for(platform.initialize(), timeout)
    except asyncio.TimeoutError:
        logger.info("Host %s did not answer within %.1fs; running standalone", platform.name, timeout)
        return STANDALONE
    except HostUnavailable as e:
        logger.info("Host %s unavailable (%s); running standalone", platform.name, e)
        return STANDALONE
    logger.info("Running embedded in %s", platform.name)
    return HostContext(HostKind.EMBEDDED, platform.name)


def looks_embedded(headers: Mapping[str, str], query: Mapping[str, str]) -> bool:
    """Cheap request-level guess used before any SDK round trip."""
    if query.get("inTeams", "").lower() in {"1", "true"}:
        return True
    user_agent = headers.get("user-agent", "")
    if any(marker in user_agent for marker in TEAMS_USER_AGENT_MARKERS):
        return True
    return headers.get("sec-fetch-dest", "") == "iframe"
