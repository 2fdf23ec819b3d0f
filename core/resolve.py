"""Resolution orchestrator: RawDependency -> ResolvedDependencyChange."""

import asyncio
import inspect
import logging
import re
from typing import Awaitable, Callable

from . import semver
from .errors import RegistryError, ResolveError
from .models import PackageRecord, RawDependency, RegistrySnapshot, ResolvedDependencyChange
from .patterns import pattern_to_regex
from .registry import RegistryClient
from .versions import apply_version_prefix, diff_class, filter_versions, get_version_prefix, resolve_target

logger = logging.getLogger(__name__)

OnResolved = Callable[[PackageRecord, ResolvedDependencyChange], Awaitable[None] | None]


def get_package_mode(name: str, package_mode: dict[str, str] | None, default: str) -> str:
    """Range mode for a package name.

    An exact key wins; otherwise the first pattern that matches, in
    declaration order. Invalid patterns are ignored.
    """
    if not package_mode:
        return default
    if name in package_mode:
        return package_mode[name]

    for pattern, mode in package_mode.items():
        try:
            regex = pattern_to_regex(pattern)
        except re.error:
            continue
        if regex.search(name):
            return mode
    return default


def collect_private_packages(records: list[PackageRecord]) -> set[str]:
    """Names of workspace packages marked ``"private": true``."""
    names = set()
    for record in records:
        document = record.parsed_document
        if record.kind.startswith("manifest") and isinstance(document, dict) and document.get("private") is True:
            names.add(record.name)
    return names


def _error_change(dep: RawDependency, name: str, message: str) -> ResolvedDependencyChange:
    return ResolvedDependencyChange(
        dependency=dep,
        target_version_spec=dep.current_version_spec,
        diff_class="error",
        registry_snapshot=RegistrySnapshot(name=name, versions=[], dist_tags={}),
        error=message,
    )


async def resolve_dependency(
    dep: RawDependency,
    options,
    client: RegistryClient,
    private_packages: set[str] | None = None,
) -> ResolvedDependencyChange | None:
    """Resolve one dependency.

    Returns None when the dependency is skipped: a private workspace
    package, mode ``ignore``, no target in the mode, or already current
    (unless ``options.force``). Registry and transport failures come back
    as a change with ``diff_class="error"``; anything else propagates.
    """
    name = dep.registry_name
    if private_packages and name in private_packages:
        logger.debug("Skipping private workspace package %s", name)
        return None

    mode = get_package_mode(name, options.package_mode, options.mode)
    if mode == "ignore":
        logger.debug("Ignoring %s (mode: ignore)", name)
        return None

    try:
        snapshot = await client.fetch(name)
    except (RegistryError, ResolveError) as e:
        logger.debug("Failed to fetch %s: %s", name, e)
        return _error_change(dep, name, str(e))

    current = dep.current_version_spec
    versions = filter_versions(snapshot, current)
    target = resolve_target(current, versions, snapshot.dist_tags, mode)
    if not target:
        return None

    diff = diff_class(current, target)
    if diff == "error":
        return _error_change(dep, name, f"Cannot compare {current!r} with {target!r}")
    if diff == "none" and not options.force:
        return None

    current_version = semver.coerce(current)
    current_key = str(current_version) if current_version else None
    return ResolvedDependencyChange(
        dependency=dep,
        target_version_spec=apply_version_prefix(target, get_version_prefix(current)),
        diff_class=diff,
        registry_snapshot=snapshot,
        current_version_published_at=snapshot.time.get(current_key) if current_key else None,
        target_version_published_at=snapshot.time.get(target),
        latest_version=snapshot.dist_tags.get("latest"),
        deprecated=snapshot.deprecated.get(target),
    )


async def resolve_package(
    record: PackageRecord,
    options,
    client: RegistryClient,
    private_packages: set[str] | None = None,
    on_resolved: OnResolved | None = None,
) -> list[ResolvedDependencyChange]:
    """Resolve every eligible dependency of a record concurrently.

    The results are stored on ``record.resolved_changes`` in dependency
    order. ``on_resolved`` (sync or async) is called once per change.
    """
    eligible = [dep for dep in record.dependencies if dep.eligible_for_update]
    results = await asyncio.gather(
        *(resolve_dependency(dep, options, client, private_packages) for dep in eligible)
    )

    changes = [change for change in results if change is not None]
    for change in changes:
        if on_resolved is not None:
            outcome = on_resolved(record, change)
            if inspect.isawaitable(outcome):
                await outcome

    record.resolved_changes = changes
    logger.debug("%s: %d of %d dependencies resolved", record.name, len(changes), len(eligible))
    return changes


async def resolve_packages(
    records: list[PackageRecord],
    options,
    client: RegistryClient,
    private_packages: set[str] | None = None,
) -> list[list[ResolvedDependencyChange]]:
    """Resolve many records at once; the client's semaphore bounds the fetches."""
    return await asyncio.gather(
        *(resolve_package(record, options, client, private_packages) for record in records)
    )
