"""Load package manifests and workspace catalogs into PackageRecords."""

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from .detect import identify
from .extract import parse_catalog_dependencies, parse_dependencies, parse_package_manager_field
from .models import CatalogSource, PackageRecord
from .serializers import detect_indent, read_text

logger = logging.getLogger(__name__)

MANIFEST_NAMES = ("package.json", "package.yaml")


def _as_mapping(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def find_up(filename: str, start: str | Path) -> Path | None:
    """Return the nearest ``filename`` in ``start`` or one of its parents."""
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None


def load_package(file_path: str | Path, options) -> PackageRecord:
    """Parse one manifest file into a PackageRecord.

    Raises:
        ValueError: If the file is not a package.json / package.yaml or
            does not parse
    """
    path = Path(file_path)
    content = read_text(str(path))
    kind = identify(content, path.name)

    if kind == "manifest-json":
        document = _as_mapping(json.loads(content))
    elif kind == "manifest-yaml":
        document = _as_mapping(yaml.safe_load(content))
    else:
        raise ValueError(f"Unsupported package manifest file: {path}")

    name = document.get("name")
    record = PackageRecord(
        name=name if isinstance(name, str) else path.parent.name,
        kind=kind,
        file_path=str(path),
        dependencies=parse_dependencies(document, options),
        parsed_document=document,
        detected_indent=detect_indent(content) or "  ",
        package_manager=parse_package_manager_field(document.get("packageManager")),
    )
    logger.debug("Loaded %s (%d deps)", path, len(record.dependencies))
    return record


def _catalog_tables(
    catalog_format: str,
    file_path: Path,
    document: dict,
    base: tuple[str, ...],
    indent: str,
    options,
) -> list[CatalogSource]:
    """Read ``<base>.catalog`` and ``<base>.catalogs.<name>`` tables."""
    container = document
    for key in base:
        container = _as_mapping(container.get(key))

    tables: list[tuple[str, tuple[str, ...], dict]] = []
    if isinstance(container.get("catalog"), dict):
        tables.append(("default", (*base, "catalog"), container["catalog"]))
    for name, entries in _as_mapping(container.get("catalogs")).items():
        if isinstance(entries, dict):
            tables.append((name, (*base, "catalogs", name), entries))

    sources = []
    for name, section_path, entries in tables:
        dependencies = parse_catalog_dependencies(entries, options, section_path)
        sources.append(
            CatalogSource(
                catalog_format=catalog_format,
                catalog_name=name,
                file_path=str(file_path),
                dependencies=dependencies,
                parsed_document=document,
                detected_indent=indent,
                section_path=section_path,
            )
        )
    return sources


def load_pnpm_catalogs(directory: str | Path, options) -> list[CatalogSource]:
    path = find_up("pnpm-workspace.yaml", directory)
    if path is None:
        return []
    content = read_text(str(path))
    document = _as_mapping(yaml.safe_load(content))
    return _catalog_tables("pnpm", path, document, (), detect_indent(content) or "  ", options)


def load_bun_catalogs(directory: str | Path, options) -> list[CatalogSource]:
    path = Path(directory) / "package.json"
    if not path.is_file():
        return []
    content = read_text(str(path))
    document = _as_mapping(json.loads(content))
    if not isinstance(document.get("workspaces"), dict):
        return []
    return _catalog_tables(
        "bun", path, document, ("workspaces",), detect_indent(content) or "  ", options
    )


def load_yarn_catalogs(directory: str | Path, options) -> list[CatalogSource]:
    path = find_up(".yarnrc.yml", directory)
    if path is None:
        return []
    content = read_text(str(path))
    document = _as_mapping(yaml.safe_load(content))
    return _catalog_tables("yarn", path, document, (), detect_indent(content) or "  ", options)


CATALOG_LOADERS = {
    "pnpm": load_pnpm_catalogs,
    "bun": load_bun_catalogs,
    "yarn": load_yarn_catalogs,
}

# identify() kinds that are catalog hosts rather than manifests
CATALOG_FILE_KINDS = {"pnpm-workspace": "pnpm", "yarnrc": "yarn"}


def load_catalogs(directory: str | Path, options) -> list[CatalogSource]:
    catalogs = []
    for catalog_format, loader in CATALOG_LOADERS.items():
        try:
            catalogs.extend(loader(directory, options))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Failed to load %s catalogs: %s", catalog_format, e)
    return catalogs


def catalog_record(catalog: CatalogSource) -> PackageRecord:
    """Wrap one catalog as a standalone catalog-host PackageRecord."""
    if catalog.catalog_name == "default":
        name = f"{catalog.catalog_format} catalog"
    else:
        name = f"{catalog.catalog_format} catalog:{catalog.catalog_name}"
    return PackageRecord(
        name=name,
        kind="catalog-host",
        file_path=catalog.file_path,
        dependencies=list(catalog.dependencies),
        parsed_document=catalog.parsed_document,
        detected_indent=catalog.detected_indent,
        catalogs=[catalog],
    )


def _manifest_in(directory: Path) -> Path | None:
    for name in MANIFEST_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_packages(paths: list[str], options) -> list[PackageRecord]:
    """Load manifests from explicit paths (files or directories) plus the
    workspace catalogs found from ``options.cwd``.

    An explicit pnpm-workspace.yaml or .yarnrc.yml path loads that file's
    catalogs. Files that fail to load are logged and skipped.
    """
    records = []
    catalogs = []
    targets = [Path(p) for p in paths] or [Path(options.cwd)]
    for target in targets:
        manifest = _manifest_in(target) if target.is_dir() else target
        if manifest is None:
            logger.info("No package manifest in %s", target)
            continue
        try:
            catalog_format = CATALOG_FILE_KINDS.get(identify(read_text(str(manifest)), manifest.name))
            if catalog_format is not None:
                catalogs.extend(CATALOG_LOADERS[catalog_format](manifest.parent, options))
            else:
                records.append(load_package(manifest, options))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Failed to load %s: %s", manifest, e)

    seen = set()
    for catalog in [*catalogs, *load_catalogs(options.cwd, options)]:
        key = (str(Path(catalog.file_path).resolve()), catalog.section_path)
        if key in seen:
            continue
        seen.add(key)
        records.append(catalog_record(catalog))
        logger.debug("Loaded catalog %s (%d deps)", catalog.catalog_name, len(catalog.dependencies))

    logger.info(
        "Found %d packages with %d dependencies",
        len(records),
        sum(len(r.dependencies) for r in records),
    )
    return records
