"""Tests for host-context detection."""

import asyncio

from coach.session.errors import HostUnavailable
from coach.session.host import HostKind, detect_host_context, looks_embedded


class FakeTeams:
    name = "teams"

    def __init__(self, behaviour="ok"):
        self.behaviour = behaviour

    async def initialize(self):
        if self.behaviour == "unavailable":
            raise HostUnavailable("not running inside Teams")
        if self.behaviour == "hang":
            await asyncio.sleep(10)

    async def get_auth_token(self):
        return "host-token"

    async def authenticate(self, url):
        return "#code=abc"


def test_no_platform_is_standalone():
    ctx = asyncio.run(detect_host_context(None, timeout=1))
    assert ctx.kind is HostKind.STANDALONE
    assert not ctx.embedded


def test_initialised_host_is_embedded():
    ctx = asyncio.run(detect_host_context(FakeTeams(), timeout=1))
    assert ctx.embedded
    assert ctx.platform == "teams"


def test_unavailable_host_is_standalone():
    ctx = asyncio.run(detect_host_context(FakeTeams("unavailable"), timeout=1))
    assert ctx.kind is HostKind.STANDALONE


def test_silent_host_times_out_to_standalone():
    ctx = asyncio.run(detect_host_context(FakeTeams("hang"), timeout=0.01))
    assert ctx.kind is HostKind.STANDALONE


def test_looks_embedded_heuristics():
    assert looks_embedded({}, {"inTeams": "true"})
    assert looks_embedded({"user-agent": "Mozilla/5.0 Teams/1.6.00.1381"}, {})
    assert looks_embedded({"sec-fetch-dest": "iframe"}, {})
    assert not looks_embedded({"user-agent": "Mozilla/5.0 Firefox/120.0", "sec-fetch-dest": "document"}, {})
