"""Version targeting and diff classification.

Pure functions, no I/O. Version lists coming from registries are never
assumed to be sorted; every maximum is found by an explicit reduction.
"""

import re
from datetime import datetime, timedelta, timezone

from . import semver
from .models import RegistrySnapshot

PREFIX_RE = re.compile(r"^(\^|~|>=?|<=?|=)?")
RANGE_CHARS_RE = re.compile(r"[~^>=<|*x ]")


def get_version_prefix(version: str) -> str:
    """Return the range operator a spec starts with (``^``, ``~``, ``>=``, ...)."""
    match = PREFIX_RE.match(version)
    return match.group(1) or ""


def apply_version_prefix(version: str, prefix: str) -> str:
    if not prefix:
        return version
    return f"{prefix}{version}"


def is_range(version: str) -> bool:
    return bool(RANGE_CHARS_RE.search(version))


def is_locked(version: str) -> bool:
    """An exact version such as ``1.2.3`` (as opposed to ``^1.2.3``)."""
    return not is_range(version) and semver.valid(version)


def get_max_version(versions: list[str]) -> str | None:
    best: tuple[semver.SemVer, str] | None = None
    for candidate in versions:
        parsed = semver.parse(candidate)
        if parsed is None:
            continue
        if best is None or parsed > best[0]:
            best = (parsed, candidate)
    return best[1] if best else None


def get_max_satisfying(versions: list[str], range_text: str) -> str | None:
    return semver.max_satisfying(versions, range_text)


def resolve_target(
    current_spec: str,
    versions: list[str],
    dist_tags: dict[str, str],
    mode: str,
) -> str | None:
    """Pick the target version for a dependency.

    Args:
        current_spec: Range currently declared in the manifest (e.g. "^1.2.0")
        versions: Candidate versions, in any order
        dist_tags: Registry dist-tags such as {"latest": "2.0.0"}
        mode: Range mode (default, major, newest, minor, patch, latest, next)

    Returns:
        Bare target version, or None when no candidate fits the mode
    """
    if mode == "latest":
        return dist_tags.get("latest")

    if mode == "next":
        return dist_tags.get("next") or dist_tags.get("latest")

    if mode in ("major", "newest"):
        return get_max_version(versions)

    if mode in ("minor", "patch"):
        current = semver.coerce(current_spec)
        if current is None:
            return None
        candidates = []
        for version in versions:
            parsed = semver.parse(version)
            if parsed is None or parsed.major != current.major:
                continue
            if mode == "patch" and parsed.minor != current.minor:
                continue
            candidates.append(version)
        return get_max_version(candidates)

    return get_max_satisfying(versions, current_spec) or dist_tags.get("latest")


def diff_class(current: str, target: str) -> str:
    """Classify the semantic distance between two versions or ranges.

    Both sides are coerced first, so prerelease tags fold into the
    nearest of major/minor/patch.
    """
    left = semver.coerce(current)
    right = semver.coerce(target)
    if left is None or right is None:
        return "error"

    if left == right:
        return "none"
    if left.major != right.major:
        return "major"
    if left.minor != right.minor:
        return "minor"
    return "patch"


def filter_versions(snapshot: RegistrySnapshot, current_spec: str) -> list[str]:
    """Drop deprecated versions and prereleases from the wrong channel."""
    current_version = current_spec[len(get_version_prefix(current_spec)):].strip()
    current_pre = semver.prerelease(current_version)
    current_channel = current_pre[0] if current_pre else None
    current_deprecated = current_version in snapshot.deprecated

    filtered = []
    for version in snapshot.versions:
        if version in snapshot.deprecated and not current_deprecated:
            continue

        candidate_pre = semver.prerelease(version)
        if candidate_pre and not current_pre:
            continue
        if candidate_pre and current_pre:
            channel = candidate_pre[0]
            # Only alphanumeric channels are compared (rc stays rc, beta stays beta)
            if not current_channel.isdigit() and not channel.isdigit() and channel != current_channel:
                continue

        filtered.append(version)
    return filtered


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def apply_cooldown(
    snapshot: RegistrySnapshot,
    days: int,
    now: datetime | None = None,
) -> RegistrySnapshot:
    """Hide versions published fewer than ``days`` days ago.

    Versions without publish times are kept. When every version would be
    hidden the snapshot is returned untouched. A ``latest`` dist-tag that
    points at a hidden version moves to the newest surviving stable version.
    """
    if days <= 0 or not snapshot.time:
        return snapshot

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    kept = []
    for version in snapshot.versions:
        published = _parse_timestamp(snapshot.time.get(version, ""))
        if published is None or published <= cutoff:
            kept.append(version)

    if not kept or len(kept) == len(snapshot.versions):
        return snapshot

    dist_tags = dict(snapshot.dist_tags)
    latest = dist_tags.get("latest")
    if latest is not None and latest not in kept:
        stable = [v for v in kept if not semver.prerelease(v)]
        replacement = get_max_version(stable) or get_max_version(kept)
        if replacement:
            dist_tags["latest"] = replacement
        else:
            dist_tags.pop("latest")

    return RegistrySnapshot(
        name=snapshot.name,
        versions=kept,
        dist_tags=dist_tags,
        time=snapshot.time,
        deprecated=snapshot.deprecated,
        description=snapshot.description,
        homepage=snapshot.homepage,
        repository=snapshot.repository,
    )
