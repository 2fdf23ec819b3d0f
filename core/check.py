"""Check/update run: resolve every package, select, write, report."""

import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx

from .addons import AddonLifecycle
from .cache import open_cache
from .errors import AddonError, ConfigError, WriteError
from .global_packages import load_global_packages, load_global_packages_all
from .manifests import load_packages
from .models import PackageRecord, PackageWriteResult, ResolvedDependencyChange
from .npmrc import load_npmrc
from .patterns import compile_patterns_strict
from .registry import RegistryClient
from .resolve import collect_private_packages, resolve_package
from .shell import CommandRunner, LocalRunner
from .write import apply_package_write

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_OUTDATED = 1
EXIT_ERROR = 2

LOCKFILES = (
    ("bun.lock", "bun"),
    ("bun.lockb", "bun"),
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
)

Select = Callable[
    [PackageRecord, list[ResolvedDependencyChange]],
    list[ResolvedDependencyChange] | Awaitable[list[ResolvedDependencyChange]],
]


@dataclass
class DependencyFailure:
    package: str
    name: str
    message: str


@dataclass
class CheckResult:
    """Everything a renderer needs about one run."""

    exit_code: int = EXIT_OK
    total: int = 0
    major: int = 0
    minor: int = 0
    patch: int = 0
    packages_with_updates: int = 0
    updates: dict[str, list[ResolvedDependencyChange]] = field(default_factory=dict)
    errors: list[DependencyFailure] = field(default_factory=list)
    planned: int = 0
    applied: int = 0
    reverted: int = 0
    did_write: bool = False
    no_packages_found: bool = False
    cache_errors: list[str] = field(default_factory=list)
    write_errors: list[str] = field(default_factory=list)
    fatal_error: str | None = None

    def count(self, change: ResolvedDependencyChange) -> None:
        self.total += 1
        if change.diff_class in ("major", "minor", "patch"):
            setattr(self, change.diff_class, getattr(self, change.diff_class) + 1)

    def record_write(self, outcome: PackageWriteResult) -> None:
        self.planned += outcome.planned
        self.applied += outcome.applied
        self.reverted += outcome.reverted
        self.did_write = self.did_write or outcome.did_write

    def to_dict(self) -> dict[str, Any]:
        return {
            "exit_code": self.exit_code,
            "summary": {
                "total": self.total,
                "major": self.major,
                "minor": self.minor,
                "patch": self.patch,
                "packages_with_updates": self.packages_with_updates,
                "planned": self.planned,
                "applied": self.applied,
                "reverted": self.reverted,
                "did_write": self.did_write,
                "no_packages_found": self.no_packages_found,
            },
            "packages": {
                package: [
                    {
                        "name": change.name,
                        "current": change.current_version_spec,
                        "target": change.target_version_spec,
                        "diff": change.diff_class,
                        "source": change.source_field,
                        "latest": change.latest_version,
                        "published_at": change.target_version_published_at,
                        "deprecated": change.deprecated,
                    }
                    for change in changes
                ]
                for package, changes in self.updates.items()
            },
            "errors": [
                {"package": e.package, "name": e.name, "message": e.message} for e in self.errors
            ],
            "cache_errors": list(self.cache_errors),
            "write_errors": list(self.write_errors),
            "fatal_error": self.fatal_error,
        }


def collect_packages(paths: list[str], options, runner: CommandRunner | None = None) -> list[PackageRecord]:
    """Records for a run: global scans when requested, manifests otherwise."""
    if options.global_all:
        return load_global_packages_all(runner)
    if options.global_packages:
        return load_global_packages(options.global_manager, runner)
    return load_packages(paths, options)


def detect_package_manager(cwd: str, packages: list[PackageRecord]) -> str:
    """packageManager field first, then lockfiles, then npm."""
    for package in packages:
        if package.package_manager is not None:
            return package.package_manager.name
    directory = Path(cwd)
    for lockfile, manager in LOCKFILES:
        if (directory / lockfile).exists():
            return manager
    return "npm"


def run_post_write_actions(options, packages: list[PackageRecord], runner: CommandRunner) -> None:
    """Run execute, then update or install, once for the whole batch.

    Failures are logged and never change the run outcome.
    """
    if options.execute:
        logger.info("Running: %s", options.execute)
        result = runner.run(options.execute, cwd=options.cwd)
        if not result.success:
            logger.error("Command failed: %s", options.execute)

    if options.update or options.install:
        manager = detect_package_manager(options.cwd, packages)
        command = f"{manager} {'update' if options.update else 'install'}"
        logger.info("Running %s...", command)
        result = runner.run(command, cwd=options.cwd)
        if not result.success:
            logger.error("%s failed", command)


def _select_default(changes: list[ResolvedDependencyChange], force: bool) -> list[ResolvedDependencyChange]:
    return [c for c in changes if c.is_update or (force and c.diff_class == "none")]


async def _process_package(
    record: PackageRecord,
    options,
    client: RegistryClient,
    lifecycle: AddonLifecycle,
    select: Select | None,
    runner: CommandRunner,
    private_packages: set[str],
    result: CheckResult,
) -> None:
    await lifecycle.before_package_start(record)

    changes = await resolve_package(
        record, options, client, private_packages, on_resolved=lifecycle.on_dependency_resolved
    )
    updates = [change for change in changes if change.is_update]
    for change in changes:
        if change.diff_class == "error":
            result.errors.append(DependencyFailure(record.name, change.name, change.error or "unknown error"))
    if updates:
        result.updates[record.name] = updates
        result.packages_with_updates += 1
        for change in updates:
            result.count(change)

    selected = _select_default(changes, options.force)
    if select is not None and selected:
        chosen = select(record, selected)
        if inspect.isawaitable(chosen):
            chosen = await chosen
        selected = [change for change in chosen if change.diff_class != "error"]

    if options.write and selected:
        if await lifecycle.before_package_write(record, selected):
            try:
                outcome = apply_package_write(record, selected, options, runner)
            except WriteError as e:
                logger.error("%s: %s", record.name, e)
                result.write_errors.append(f"{record.name}: {e}")
                if e.result is not None:
                    result.record_write(e.result)
                    logger.debug("%s: %s", record.name, e.result.state)
            else:
                result.record_write(outcome)
                logger.debug("%s: %s", record.name, outcome.state)
                await lifecycle.after_package_write(record, selected)
        else:
            logger.info("%s: write skipped by addon", record.name)

    await lifecycle.after_package_end(record)


def _exit_code(result: CheckResult, options) -> int:
    if result.write_errors:
        return EXIT_ERROR
    if result.total and not options.write and options.fail_on_outdated:
        return EXIT_OUTDATED
    return EXIT_OK


async def run_check(
    packages: list[PackageRecord],
    options,
    addons=(),
    select: Select | None = None,
    runner: CommandRunner | None = None,
    cache=None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CheckResult:
    """Resolve, select and write updates for every package.

    Packages are processed one after another so no two writes ever touch
    the same file at once; registry fetches inside a package run
    concurrently under the client's limit.

    Args:
        packages: Loaded package records
        options: CheckOptions for the run
        addons: Objects implementing some of the addon hooks
        select: Optional callback narrowing the accepted changes per package
        runner: Command runner for verify, install and post-write commands
        cache: Registry cache; defaults to the on-disk SQLite cache
        transport: Optional httpx transport for the registry client

    Returns:
        CheckResult with counters and the exit code. Configuration and
        addon errors are reported through ``fatal_error`` with exit code 2;
        other exceptions propagate.
    """
    result = CheckResult()
    runner = runner or LocalRunner()
    own_cache = False

    try:
        lifecycle = AddonLifecycle(addons, options)
        compile_patterns_strict(options.include)
        compile_patterns_strict(options.exclude)

        await lifecycle.setup()
        if not packages:
            logger.info("No packages found")
            result.no_packages_found = True
            return result

        await lifecycle.after_packages_loaded(packages)
        private_packages = collect_private_packages(packages)

        if cache is None and options.cache_ttl > 0:
            cache = open_cache()
            own_cache = True

        client = RegistryClient(
            npmrc=load_npmrc(options.cwd),
            cache=cache,
            concurrency=options.concurrency,
            timeout=options.timeout,
            retries=options.retries,
            cache_ttl=options.cache_ttl,
            bypass_cache=options.refresh_cache,
            cooldown=options.cooldown,
            transport=transport,
        )
        async with client:
            for record in packages:
                await _process_package(
                    record, options, client, lifecycle, select, runner, private_packages, result
                )
        result.cache_errors = [str(e) for e in client.cache_errors]

        await lifecycle.after_packages_end(packages)
    except (ConfigError, AddonError) as e:
        logger.error("%s", e)
        result.fatal_error = str(e)
        result.exit_code = EXIT_ERROR
        return result
    finally:
        if own_cache:
            cache.close()

    if options.write and result.applied > 0:
        run_post_write_actions(options, packages, runner)

    result.exit_code = _exit_code(result, options)
    return result
