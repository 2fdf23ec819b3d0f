"""Registry client for npm, JSR and GitHub tags."""

import asyncio
import logging
import os
from urllib.parse import quote

import httpx

from . import semver
from .errors import CacheError, RegistryError, ResolveError
from .extract import normalize_github_ref
from .models import RegistrySnapshot
from .npmrc import NpmrcConfig
from .versions import apply_cooldown, get_max_version

logger = logging.getLogger(__name__)

JSR_URL = "https://jsr.io"
GITHUB_API_URL = "https://api.github.com"
MAX_RETRY_DELAY = 5.0
USER_AGENT = "freshen"

__all__ = ["RegistryClient", "apply_cooldown"]


def _mapping(data: dict, key: str, url: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ResolveError(f"Unexpected payload from {url}: '{key}' is not an object")
    return value


def _repository_url(value) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("url"), str):
        return value["url"]
    return None


class RegistryClient:
    """Fetches version metadata with caching, retries and a global fetch limit.

    One instance is meant to serve a whole run: its semaphore bounds every
    outbound request no matter how many packages ask for data.
    """

    def __init__(
        self,
        npmrc: NpmrcConfig | None = None,
        cache=None,
        concurrency: int = 16,
        timeout: float = 10.0,
        retries: int = 2,
        retry_delay: float = 0.5,
        cache_ttl: float = 1800,
        bypass_cache: bool = False,
        cooldown: int = 0,
        transport: httpx.AsyncBaseTransport | None = None,
        github_token: str | None = None,
    ):
        """Initialize the registry client.

        Args:
            npmrc: Registry URLs and credentials (defaults to registry.npmjs.org)
            cache: SqliteCache or MemoryCache; None disables persistence
            concurrency: Maximum simultaneous HTTP requests for the run
            timeout: Per-attempt request timeout in seconds
            retries: Extra attempts after a transport failure
            retry_delay: Base delay for exponential backoff in seconds
            cache_ttl: Cache entry lifetime in seconds; 0 disables caching
            bypass_cache: Skip cache reads (results are still written back)
            cooldown: Hide versions younger than this many days
            transport: Optional httpx transport, used by tests
            github_token: Token for api.github.com (defaults to $GITHUB_TOKEN)
        """
        self.npmrc = npmrc or NpmrcConfig()
        self.cache = cache
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self.cache_ttl = cache_ttl
        self.bypass_cache = bypass_cache
        self.cooldown = cooldown
        self.github_token = github_token if github_token is not None else os.environ.get("GITHUB_TOKEN")
        self.cache_errors: list[CacheError] = []
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._semaphore = asyncio.Semaphore(concurrency)
        self._memo: dict[str, RegistrySnapshot] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    async def __aenter__(self) -> "RegistryClient":
        self._http()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    async def fetch(self, name: str) -> RegistrySnapshot:
        """Return the (cooldown-filtered) snapshot for a registry lookup name.

        Raises:
            RegistryError: The registry answered with a non-2xx status
            ResolveError: Transport failures exhausted the retries
        """
        snapshot = self._memo.get(name)
        if snapshot is None:
            task = self._inflight.get(name)
            if task is None:
                task = asyncio.ensure_future(self._load(name))
                self._inflight[name] = task
                task.add_done_callback(lambda _: self._inflight.pop(name, None))
            snapshot = await task
        return apply_cooldown(snapshot, self.cooldown)

    async def _load(self, name: str) -> RegistrySnapshot:
        use_cache = self.cache is not None and self.cache_ttl > 0
        if use_cache and not self.bypass_cache:
            try:
                cached = self.cache.get(name)
            except CacheError as e:
                logger.warning("Cache read failed for %s: %s", name, e)
                cached = None
            if cached is not None:
                logger.debug("Cache hit for %s", name)
                self._memo[name] = cached
                return cached

        snapshot = await self._fetch_remote(name)

        if use_cache:
            try:
                self.cache.set(name, snapshot, self.cache_ttl)
            except CacheError as e:
                logger.warning("Cache write failed for %s: %s", name, e)
                self.cache_errors.append(e)
        self._memo[name] = snapshot
        return snapshot

    async def _fetch_remote(self, name: str) -> RegistrySnapshot:
        if name.startswith("jsr:"):
            return await self._fetch_jsr(name)
        if name.startswith("github:"):
            return await self._fetch_github(name)
        return await self._fetch_npm(name)

    async def _get_json(self, url: str, headers: dict[str, str], expect: type = dict):
        last_error: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                async with self._semaphore:
                    response = await self._http().get(url, headers=headers, timeout=self.timeout)
            except httpx.TransportError as e:
                last_error = e
                if attempt < self.retries:
                    delay = min(self.retry_delay * 2**attempt, MAX_RETRY_DELAY)
                    logger.debug("Retrying %s in %.2fs after %s", url, delay, e)
                    await asyncio.sleep(delay)
                continue

            if not response.is_success:
                raise RegistryError(
                    f"Registry returned HTTP {response.status_code} for {url}",
                    response.status_code,
                    url,
                )
            try:
                data = response.json()
            except ValueError as e:
                raise ResolveError(f"Invalid JSON from {url}") from e
            if not isinstance(data, expect):
                raise ResolveError(f"Unexpected payload from {url}")
            return data

        raise ResolveError(
            f"Failed to fetch {url} after {self.retries + 1} attempts: {last_error}"
        ) from last_error

    async def _fetch_npm(self, name: str) -> RegistrySnapshot:
        registry = self.npmrc.registry_for(name)
        encoded = "@" + quote(name[1:], safe="") if name.startswith("@") else quote(name, safe="")
        headers = {"Accept": "application/json", **registry.headers}
        url = f"{registry.url}{encoded}"
        data = await self._get_json(url, headers)

        versions_data = _mapping(data, "versions", url)
        deprecated = {
            version: str(meta["deprecated"])
            for version, meta in versions_data.items()
            if isinstance(meta, dict) and meta.get("deprecated")
        }
        return RegistrySnapshot(
            name=name,
            versions=[v for v in versions_data if semver.valid(v)],
            dist_tags={k: v for k, v in _mapping(data, "dist-tags", url).items() if isinstance(v, str)},
            time={k: v for k, v in _mapping(data, "time", url).items() if isinstance(v, str)},
            deprecated=deprecated,
            description=data.get("description") if isinstance(data.get("description"), str) else None,
            homepage=data.get("homepage") if isinstance(data.get("homepage"), str) else None,
            repository=_repository_url(data.get("repository")),
        )

    async def _fetch_jsr(self, name: str) -> RegistrySnapshot:
        package = name[len("jsr:"):]
        url = f"{JSR_URL}/{package}/meta.json"
        data = await self._get_json(url, {"Accept": "application/json"})

        versions_data = _mapping(data, "versions", url)
        versions = [v for v in versions_data if semver.valid(v)]
        deprecated = {
            version: "yanked"
            for version, meta in versions_data.items()
            if isinstance(meta, dict) and meta.get("yanked")
        }
        latest = data.get("latest")
        if not isinstance(latest, str) or not latest:
            latest = get_max_version(versions)
        return RegistrySnapshot(
            name=name,
            versions=versions,
            dist_tags={"latest": latest} if latest else {},
            deprecated=deprecated,
        )

    async def _fetch_github(self, name: str) -> RegistrySnapshot:
        repo = name[len("github:"):]
        headers = {"Accept": "application/vnd.github+json"}
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"
        tags = await self._get_json(f"{GITHUB_API_URL}/repos/{repo}/tags?per_page=100&page=1", headers, expect=list)

        versions = []
        for tag in tags:
            if not isinstance(tag, dict):
                continue
            version = normalize_github_ref(str(tag.get("name", "")))
            if semver.valid(version):
                versions.append(version)

        stable = [v for v in versions if not semver.prerelease(v)]
        latest = get_max_version(stable) or get_max_version(versions)
        return RegistrySnapshot(
            name=name,
            versions=versions,
            dist_tags={"latest": latest} if latest else {},
            homepage=f"https://github.com/{repo}",
            repository=f"https://github.com/{repo}",
        )
