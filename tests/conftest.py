"""Shared fakes: an aiohttp-like session and an in-memory registry."""
from __future__ import annotations

import semver
import pytest

from crateslsp.crates import Latest, RequestError


class FakeResponse:
    def __init__(self, status: int, body: str = ''):
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeSession:
    """Answers GET/HEAD from a ``url -> (status, body) | Exception`` table."""

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.requests: list[tuple[str, str]] = []
        self.closed = False

    def _respond(self, method: str, url: str) -> FakeResponse:
        self.requests.append((method, url))
        route = self.routes.get(url, (404, ''))
        if isinstance(route, Exception):
            raise route
        return FakeResponse(*route)

    def get(self, url: str) -> FakeResponse:
        return self._respond('GET', url)

    def head(self, url: str) -> FakeResponse:
        return self._respond('HEAD', url)

    def count(self, url: str, method: str = 'GET') -> int:
        return self.requests.count((method, url))

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRegistry:
    """Stands in for RegistryCache in handler tests."""

    def __init__(self, crates: dict):
        self.crates = crates
        self.calls: list[str] = []

    async def resolve(self, name: str) -> Latest:
        self.calls.append(name)
        entry = self.crates.get(name)
        if isinstance(entry, Exception):
            raise entry
        if entry is None:
            raise RequestError(f'https://index.crates.io/{name}', 404)
        return entry

    async def is_available(self, name: str) -> bool:
        return isinstance(self.crates.get(name), Latest)


def make_latest(version: str, features: dict | None = None, description: str | None = None) -> Latest:
    return Latest(
        version=semver.Version.parse(version),
        features=features or {},
        description=description,
    )


@pytest.fixture
def clock():
    return FakeClock()
