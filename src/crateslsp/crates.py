"""
crates.io registry access.

:class:`RegistryCache` resolves a crate name to its :class:`Latest` metadata
(newest version, feature map, description) and keeps the result for the
lifetime of the process.

Two endpoints are involved:

* the sparse index (``index.crates.io``), one JSON record per published
  version, used for versions and features;
* the web API (``crates.io/api/v1``), used only for the description.  The
  API allows one request per second, so description lookups go through a
  best-effort limiter: a lookup that comes too soon is skipped, not queued,
  and the entry is returned without a description.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field

import aiohttp
import semver

from crateslsp.config import Settings

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Base class for registry failures."""


class RequestError(RegistryError):
    """The registry could not be reached or answered with a non-2xx status."""

    def __init__(self, url: str, status: int | None = None):
        self.url = url
        self.status = status
        detail = f' (HTTP {status})' if status is not None else ''
        super().__init__(f'failed to fetch `{url}`{detail}')


class ParseError(RegistryError):
    """The registry answered, but the payload could not be understood."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'failed to parse body of the index of crate `{name}`')


def index_path(name: str) -> str:
    """Path of the index file for *name* within the registry index.

    See https://doc.rust-lang.org/cargo/reference/registry-index.html#index-files
    """
    assert name, 'crate names are never empty'
    if len(name) == 1:
        return f'1/{name}'
    if len(name) == 2:
        return f'2/{name}'
    if len(name) == 3:
        return f'3/{name[0]}/{name}'
    return f'{name[0:2]}/{name[2:4]}/{name}'


# ---------------------------------------------------------------------------
# Index payload
# ---------------------------------------------------------------------------

@dataclass
class IndexDependency:
    """One entry of ``deps`` in an index record."""

    name: str
    req: str
    features: list[str] | None = None
    optional: bool = False
    default_features: bool = True
    target: str | None = None
    kind: str = 'normal'          # "normal", "dev" or "build"
    registry: str | None = None
    package: str | None = None

    @classmethod
    def from_json(cls, obj: dict) -> IndexDependency:
        return cls(
            name=obj['name'],
            req=obj['req'],
            features=obj.get('features'),
            optional=obj.get('optional', False),
            default_features=obj.get('default_features', True),
            target=obj.get('target'),
            kind=obj.get('kind') or 'normal',
            registry=obj.get('registry'),
            package=obj.get('package'),
        )


@dataclass
class IndexEntry:
    """One line of an index file: a single published version."""

    name: str
    vers: str
    deps: list[IndexDependency]
    cksum: str
    yanked: bool
    features: dict[str, list[str]] | None = None
    links: str | None = None
    v: int = 1
    features2: dict[str, list[str]] | None = None
    rust_version: str | None = None

    @classmethod
    def from_json(cls, obj: dict) -> IndexEntry:
        return cls(
            name=obj['name'],
            vers=obj['vers'],
            deps=[IndexDependency.from_json(d) for d in obj['deps']],
            cksum=obj['cksum'],
            yanked=obj['yanked'],
            features=obj.get('features'),
            links=obj.get('links'),
            v=obj.get('v', 1),
            features2=obj.get('features2'),
            rust_version=obj.get('rust_version'),
        )

    def all_features(self) -> dict[str, list[str]]:
        """Feature map, with the extended ``features2`` table merged in."""
        features = dict(self.features or {})
        if self.v >= 2 and self.features2:
            features.update(self.features2)
        return features


@dataclass
class CrateIndex:
    name: str
    entries: list[IndexEntry]

    @classmethod
    def parse(cls, name: str, body: str) -> CrateIndex:
        entries = []
        for line in body.splitlines():
            if not line.strip():
                continue
            try:
                entries.append(IndexEntry.from_json(json.loads(line)))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise ParseError(name) from e
        if not entries:
            raise ParseError(name)
        return cls(name=name, entries=entries)

    def latest(self) -> IndexEntry:
        """The most recently published record.

        The index is append-only in publish order, so this is the last line
        rather than the highest semantic version.
        """
        return self.entries[-1]


@dataclass
class Latest:
    version: semver.Version
    features: dict[str, list[str]] = field(default_factory=dict)
    description: str | None = None

    @classmethod
    def from_index(cls, index: CrateIndex) -> Latest:
        entry = index.latest()
        try:
            version = semver.Version.parse(entry.vers)
        except (ValueError, TypeError) as e:
            raise ParseError(index.name) from e
        return cls(version=version, features=entry.all_features())


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class RegistryCache:
    """Process-lifetime cache of :class:`Latest` records, keyed by crate name.

    Construct once and share.  Names are used verbatim as keys and in URLs.
    Failed lookups are never cached; the next call retries from scratch.
    """

    def __init__(self, settings: Settings | None = None, session=None, clock=time.monotonic):
        self.settings = settings or Settings()
        self._session = session
        self._owns_session = session is None
        self._clock = clock
        self._entries: dict[str, Latest] = {}
        self._lock = asyncio.Lock()
        self._last_metadata_request: float | None = None
        self._rate_lock = asyncio.Lock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout),
                headers={'User-Agent': self.settings.user_agent},
            )
        return self._session

    def cached(self, name: str) -> Latest | None:
        return self._entries.get(name)

    def index_url(self, name: str) -> str:
        return f'{self.settings.index_url.rstrip("/")}/{index_path(name)}'

    def metadata_url(self, name: str) -> str:
        return f'{self.settings.api_url.rstrip("/")}/{name}'

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _get_text(self, url: str) -> str:
        try:
            async with self._get_session().get(url) as response:
                if not 200 <= response.status < 300:
                    raise RequestError(url, response.status)
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RequestError(url) from e

    async def fetch_index(self, name: str) -> CrateIndex:
        url = self.index_url(name)
        logger.debug('fetching index for %s from %s', name, url)
        try:
            body = await self._get_text(url)
        except UnicodeDecodeError as e:
            raise ParseError(name) from e
        return CrateIndex.parse(name, body)

    async def _reserve_metadata_slot(self) -> bool:
        """Claim the shared metadata-request slot if the interval has passed."""
        async with self._rate_lock:
            now = self._clock()
            last = self._last_metadata_request
            if last is not None and now - last < self.settings.metadata_interval:
                return False
            self._last_metadata_request = now
            return True

    async def fetch_description(self, name: str) -> str | None:
        """Return the crate description, or ``None`` if skipped or failed.

        A crate without a description yields ``''``.
        """
        if not await self._reserve_metadata_slot():
            logger.debug('metadata request for %s skipped (rate limit)', name)
            return None
        url = self.metadata_url(name)
        try:
            body = await self._get_text(url)
            description = json.loads(body)['crate'].get('description')
        except RequestError as e:
            logger.debug('metadata request for %s failed: %s', name, e)
            return None
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.debug('unexpected metadata payload for %s', name)
            return None
        return description.strip() if isinstance(description, str) else ''

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, name: str) -> Latest:
        """Return the :class:`Latest` record for *name*.

        Raises :class:`RequestError` or :class:`ParseError`.  A cached entry
        still lacking its description gets one more attempt at fetching it;
        that attempt never makes ``resolve`` fail.
        """
        latest = self._entries.get(name)
        if latest is not None:
            if latest.description is None:
                description = await self.fetch_description(name)
                if description is not None:
                    async with self._lock:
                        latest.description = description
            return latest

        latest = Latest.from_index(await self.fetch_index(name))
        async with self._lock:
            # a concurrent resolve may have won the race; keep its entry
            latest = self._entries.setdefault(name, latest)
        logger.debug('resolved %s to %s', name, latest.version)
        return latest

    async def is_available(self, name: str) -> bool:
        """True if *name* exists on the registry.  Never raises."""
        if name in self._entries:
            return True
        url = self.index_url(name)
        try:
            async with self._get_session().head(url) as response:
                return 200 <= response.status < 300
        except Exception:
            logger.debug('availability probe for %s failed', name, exc_info=True)
            return False
