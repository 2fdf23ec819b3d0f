"""Globally installed packages (npm, pnpm, bun) as a synthetic PackageRecord."""

import json
import logging
import re

from .errors import WriteError
from .models import PackageRecord, RawDependency
from .shell import CommandRunner, LocalRunner

logger = logging.getLogger(__name__)

GLOBAL_ALL_MANAGERS = ("npm", "pnpm", "bun")
BUN_LINE_RE = re.compile(r"[├└]──\s+(.+)@(\d.+)")

LIST_COMMANDS = {
    "npm": "npm list -g --depth=0 --json",
    "pnpm": "pnpm list -g --json",
    "bun": "bun pm ls -g",
}

INSTALL_COMMANDS = {
    "npm": "npm install -g {spec}",
    "pnpm": "pnpm add -g {spec}",
    "bun": "bun add -g {spec}",
}


def detect_global_package_manager(manager: str | None = None, runner: CommandRunner | None = None) -> str:
    """Explicit manager if valid, else the first of pnpm, bun that runs, else npm."""
    if manager in GLOBAL_ALL_MANAGERS:
        return manager
    runner = runner or LocalRunner()
    for candidate in ("pnpm", "bun"):
        if runner.run(f"{candidate} --version").success:
            return candidate
    return "npm"


def _entries(dependencies) -> list[tuple[str, str]]:
    if not isinstance(dependencies, dict):
        return []
    return [
        (name, info["version"])
        for name, info in dependencies.items()
        if isinstance(info, dict) and isinstance(info.get("version"), str)
    ]


def parse_npm_global_list(output: str) -> list[tuple[str, str]]:
    try:
        data = json.loads(output)
    except ValueError:
        return []
    return _entries(data.get("dependencies")) if isinstance(data, dict) else []


def parse_pnpm_global_list(output: str) -> list[tuple[str, str]]:
    try:
        data = json.loads(output)
    except ValueError:
        return []
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return []
    return _entries(data[0].get("dependencies"))


def parse_bun_global_list(output: str) -> list[tuple[str, str]]:
    results = []
    for line in output.splitlines():
        match = BUN_LINE_RE.search(line)
        if match:
            results.append((match.group(1), match.group(2).strip()))
    return results


PARSERS = {
    "npm": parse_npm_global_list,
    "pnpm": parse_pnpm_global_list,
    "bun": parse_bun_global_list,
}


def list_global_packages(manager: str, runner: CommandRunner | None = None) -> list[tuple[str, str]]:
    if manager not in LIST_COMMANDS:
        return []
    result = (runner or LocalRunner()).run(LIST_COMMANDS[manager])
    if not result.success:
        logger.debug("%s global listing failed: %s", manager, result.stderr.strip())
        return []
    return PARSERS[manager](result.stdout)


def _global_dependency(name: str, version: str) -> RawDependency:
    return RawDependency(
        name=name,
        current_version_spec=version,
        source_field="dependencies",
        eligible_for_update=True,
    )


def load_global_packages(manager: str | None = None, runner: CommandRunner | None = None) -> list[PackageRecord]:
    detected = detect_global_package_manager(manager, runner)
    packages = list_global_packages(detected, runner)
    if not packages:
        return []
    return [
        PackageRecord(
            name="Global packages",
            kind="global",
            file_path=f"global:{detected}",
            dependencies=[_global_dependency(name, version) for name, version in packages],
        )
    ]


def dedupe_global_packages(
    records: list[tuple[str, str, str]],
) -> tuple[list[tuple[str, str]], dict[str, list[str]]]:
    """Merge (manager, name, version) rows by name.

    The first reported version wins; every reporting manager is kept.
    Output is sorted by name.
    """
    by_name: dict[str, tuple[str, list[str]]] = {}
    for manager, name, version in records:
        if name not in by_name:
            by_name[name] = (version, [manager])
        elif manager not in by_name[name][1]:
            by_name[name][1].append(manager)

    names = sorted(by_name)
    packages = [(name, by_name[name][0]) for name in names]
    managers = {name: list(by_name[name][1]) for name in names}
    return packages, managers


def load_global_packages_all(runner: CommandRunner | None = None) -> list[PackageRecord]:
    rows = [
        (manager, name, version)
        for manager in GLOBAL_ALL_MANAGERS
        for name, version in list_global_packages(manager, runner)
    ]
    if not rows:
        return []

    packages, managers = dedupe_global_packages(rows)
    return [
        PackageRecord(
            name="Global packages",
            kind="global",
            file_path="global:" + "+".join(GLOBAL_ALL_MANAGERS),
            dependencies=[_global_dependency(name, version) for name, version in packages],
            managers_by_dependency=managers,
        )
    ]


def get_global_write_targets(record: PackageRecord, dependency_name: str) -> list[str]:
    """Managers that should receive the install for one dependency."""
    mapped = record.managers_by_dependency.get(dependency_name)
    if mapped:
        return list(dict.fromkeys(mapped))

    if not record.file_path.startswith("global:"):
        return []
    return [
        manager
        for manager in dict.fromkeys(record.file_path[len("global:"):].split("+"))
        if manager in INSTALL_COMMANDS or manager == "yarn"
    ]


def write_global_package(
    manager: str,
    name: str,
    version: str,
    runner: CommandRunner | None = None,
) -> bool:
    """Install ``name@version`` globally. Returns False when the manager is unsupported.

    Raises:
        WriteError: If the install command fails
    """
    if manager not in INSTALL_COMMANDS:
        logger.warning("%s global packages are not supported", manager)
        return False

    command = INSTALL_COMMANDS[manager].format(spec=f"{name}@{version}")
    result = (runner or LocalRunner()).run(command)
    if not result.success:
        raise WriteError(f"`{command}` failed: {result.stderr.strip() or result.returncode}")
    logger.info("Installed %s@%s with %s", name, version, manager)
    return True
