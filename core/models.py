"""Core data models for freshen."""

from dataclasses import dataclass, field
from typing import Any

RANGE_MODES = ("default", "major", "minor", "patch", "latest", "newest", "next", "ignore")
DIFF_CLASSES = ("major", "minor", "patch", "none", "error")
PACKAGE_KINDS = ("manifest-json", "manifest-yaml", "global", "catalog-host")
CATALOG_FORMATS = ("pnpm", "bun", "yarn")
PACKAGE_MANAGERS = ("npm", "pnpm", "yarn", "bun")


@dataclass(frozen=True)
class RawDependency:
    """A single dependency entry extracted from a manifest or catalog."""

    name: str
    current_version_spec: str
    source_field: str  # dependencies, devDependencies, overrides, catalog, packageManager, ...
    eligible_for_update: bool
    parent_path: tuple[str, ...] = ()
    protocol: str | None = None  # npm, jsr, github, workspace
    alias_name: str | None = None

    @property
    def registry_name(self) -> str:
        """Name used to look the dependency up in a registry."""
        return self.alias_name or self.name


@dataclass
class RegistrySnapshot:
    """Version metadata for one package as reported by a registry."""

    name: str
    versions: list[str]
    dist_tags: dict[str, str]
    time: dict[str, str] = field(default_factory=dict)
    deprecated: dict[str, str] = field(default_factory=dict)
    description: str | None = None
    homepage: str | None = None
    repository: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "versions": list(self.versions),
            "dist_tags": dict(self.dist_tags),
            "time": dict(self.time),
            "deprecated": dict(self.deprecated),
            "description": self.description,
            "homepage": self.homepage,
            "repository": self.repository,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RegistrySnapshot":
        return cls(
            name=data["name"],
            versions=list(data.get("versions") or []),
            dist_tags=dict(data.get("dist_tags") or {}),
            time=dict(data.get("time") or {}),
            deprecated=dict(data.get("deprecated") or {}),
            description=data.get("description"),
            homepage=data.get("homepage"),
            repository=data.get("repository"),
        )


@dataclass
class ResolvedDependencyChange:
    """Result of resolving a dependency against the registry."""

    dependency: RawDependency
    target_version_spec: str
    diff_class: str  # major, minor, patch, none, error
    registry_snapshot: RegistrySnapshot
    current_version_published_at: str | None = None
    target_version_published_at: str | None = None
    latest_version: str | None = None
    deprecated: str | None = None
    error: str | None = None

    @property
    def name(self) -> str:
        return self.dependency.name

    @property
    def current_version_spec(self) -> str:
        return self.dependency.current_version_spec

    @property
    def source_field(self) -> str:
        return self.dependency.source_field

    @property
    def parent_path(self) -> tuple[str, ...]:
        return self.dependency.parent_path

    @property
    def protocol(self) -> str | None:
        return self.dependency.protocol

    @property
    def alias_name(self) -> str | None:
        return self.dependency.alias_name

    @property
    def is_update(self) -> bool:
        return self.diff_class not in ("none", "error")


@dataclass
class CatalogSource:
    """A named catalog table living in a workspace file."""

    catalog_format: str  # pnpm, bun, yarn
    catalog_name: str
    file_path: str
    dependencies: list[RawDependency]
    parsed_document: Any = None
    detected_indent: str = "  "
    section_path: tuple[str, ...] = ("catalog",)


@dataclass(frozen=True)
class PackageManagerField:
    """Parsed ``packageManager`` field, e.g. ``pnpm@9.1.0+sha512.abc``."""

    name: str
    version: str
    raw: str
    hash: str | None = None

    def with_version(self, version: str) -> str:
        if self.hash:
            return f"{self.name}@{version}+{self.hash}"
        return f"{self.name}@{version}"


@dataclass
class PackageRecord:
    """One manifest, catalog host or synthetic global-package scan."""

    name: str
    kind: str  # manifest-json, manifest-yaml, global, catalog-host
    file_path: str
    dependencies: list[RawDependency]
    resolved_changes: list[ResolvedDependencyChange] = field(default_factory=list)
    parsed_document: Any = None
    detected_indent: str = "  "
    package_manager: PackageManagerField | None = None
    catalogs: list[CatalogSource] = field(default_factory=list)
    managers_by_dependency: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class FileBackup:
    """Original content of a file captured before a mutating write."""

    file_path: str
    original_content: str


@dataclass
class PackageWriteResult:
    """Outcome of writing one package's accepted changes."""

    planned: int
    applied: int
    reverted: int
    state: str  # written, skipped, partially-written

    @property
    def did_write(self) -> bool:
        return self.applied > 0

    @classmethod
    def from_counts(
        cls, planned: int, applied: int, reverted: int, stopped: bool = False
    ) -> "PackageWriteResult":
        """Derive the terminal state.

        Any applied change makes the package ``written``; verification
        rejections only show in the counters. ``partially-written`` is kept
        for a write that stopped on an error after earlier changes stuck.
        """
        if applied == 0:
            state = "skipped"
        elif stopped:
            state = "partially-written"
        else:
            state = "written"
        return cls(planned=planned, applied=applied, reverted=reverted, state=state)
