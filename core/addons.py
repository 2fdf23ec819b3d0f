"""Addon lifecycle hooks.

An addon is any object with a ``name`` and some of the optional hook
methods listed in HOOKS. Hooks may be plain functions or coroutines and
receive an AddonContext first. Every call goes through
``AddonLifecycle._call`` so failures are wrapped in one place.
"""

import inspect
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from .errors import AddonError, ConfigError
from .models import PackageRecord, ResolvedDependencyChange

HOOKS = (
    "setup",
    "after_packages_loaded",
    "before_package_start",
    "on_dependency_resolved",
    "before_package_write",
    "after_package_write",
    "after_package_end",
    "after_packages_end",
)


class Addon(Protocol):
    name: str


@dataclass
class AddonContext:
    options: Any
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def validate_addons(addons) -> list:
    """Addon names must be non-empty and unique."""
    seen = set()
    for addon in addons or ():
        name = getattr(addon, "name", None)
        if not isinstance(name, str) or not name.strip():
            raise ConfigError("Addon name must be a non-empty string")
        if name in seen:
            raise ConfigError(f'Duplicate addon name "{name}"')
        seen.add(name)
    return list(addons or ())


class AddonLifecycle:
    def __init__(self, addons: list[Addon] | tuple[Addon, ...], options=None):
        self.addons = validate_addons(addons)
        self.context = AddonContext(options=options)

    async def _call(self, addon, hook: str, *args, package: PackageRecord | None = None):
        method = getattr(addon, hook, None)
        if method is None:
            return None
        try:
            result = method(self.context, *args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            where = f" for {package.name}" if package is not None else ""
            raise AddonError(
                f'Addon "{addon.name}" failed during "{hook}" hook{where}: {e}',
                addon.name,
                hook,
                package.name if package is not None else None,
            ) from e
        return result

    async def _broadcast(self, hook: str, *args, package: PackageRecord | None = None) -> None:
        for addon in self.addons:
            await self._call(addon, hook, *args, package=package)

    async def setup(self) -> None:
        await self._broadcast("setup")

    async def after_packages_loaded(self, packages: list[PackageRecord]) -> None:
        await self._broadcast("after_packages_loaded", packages)

    async def before_package_start(self, package: PackageRecord) -> None:
        await self._broadcast("before_package_start", package, package=package)

    async def on_dependency_resolved(self, package: PackageRecord, change: ResolvedDependencyChange) -> None:
        await self._broadcast("on_dependency_resolved", package, change, package=package)

    async def before_package_write(
        self, package: PackageRecord, changes: list[ResolvedDependencyChange]
    ) -> bool:
        """False from any addon vetoes the write."""
        for addon in self.addons:
            if await self._call(addon, "before_package_write", package, changes, package=package) is False:
                return False
        return True

    async def after_package_write(self, package: PackageRecord, changes: list[ResolvedDependencyChange]) -> None:
        await self._broadcast("after_package_write", package, changes, package=package)

    async def after_package_end(self, package: PackageRecord) -> None:
        await self._broadcast("after_package_end", package, package=package)

    async def after_packages_end(self, packages: list[PackageRecord]) -> None:
        await self._broadcast("after_packages_end", packages)
