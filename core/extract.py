"""Dependency extraction from parsed manifest documents.

Works on the plain dict produced by ``json.loads`` or ``yaml.safe_load``;
the document is never mutated.
"""

import re
from dataclasses import dataclass
from typing import Any

from . import semver
from .models import PackageManagerField, RawDependency
from .patterns import compile_patterns_strict, matches_any
from .versions import is_locked

DEP_FIELDS = ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies")
OVERRIDE_FIELDS = ("overrides", "resolutions", "pnpm.overrides")

NPM_ALIAS_RE = re.compile(r"^npm:(.+)@(.+)$")
JSR_ALIAS_RE = re.compile(r"^jsr:(.+)@(.+)$")
GITHUB_RE = re.compile(r"^github:([^/#\s]+/[^#\s]+)#(.+)$")
UNSUPPORTED_RE = re.compile(r"^(catalog|link|file|git|git\+[a-z]+|github|https?|portal|patch):")
PACKAGE_MANAGER_RE = re.compile(r"^(npm|pnpm|yarn|bun)@([^+]+)(?:\+(.+))?$")


@dataclass(frozen=True)
class ProtocolSpec:
    """What a raw specifier means once aliases are unwrapped."""

    current_version: str
    protocol: str | None = None
    alias_name: str | None = None
    supported: bool = True


def normalize_github_ref(ref: str) -> str:
    """``refs/tags/v1.2.3`` -> ``1.2.3``."""
    if ref.startswith("refs/tags/"):
        ref = ref[len("refs/tags/"):]
    if ref[:1] in ("v", "V"):
        ref = ref[1:]
    return ref


def parse_protocol(spec: str) -> ProtocolSpec:
    npm_alias = NPM_ALIAS_RE.match(spec)
    if npm_alias:
        return ProtocolSpec(npm_alias.group(2), "npm", npm_alias.group(1))

    jsr_alias = JSR_ALIAS_RE.match(spec)
    if jsr_alias:
        return ProtocolSpec(jsr_alias.group(2), "jsr", f"jsr:{jsr_alias.group(1)}")

    github = GITHUB_RE.match(spec)
    if github:
        version = normalize_github_ref(github.group(2))
        if not semver.valid(version):
            return ProtocolSpec(spec, supported=False)
        return ProtocolSpec(version, "github", f"github:{github.group(1)}")

    if spec.startswith("workspace:"):
        version = spec[len("workspace:"):]
        # workspace:*, workspace:^ and workspace:~ carry no range to compare
        if version in ("", "*", "^", "~"):
            return ProtocolSpec(spec, supported=False)
        return ProtocolSpec(version, "workspace")

    # owner/repo shorthands and tarball paths are not registry versions
    if UNSUPPORTED_RE.match(spec) or "/" in spec:
        return ProtocolSpec(spec, supported=False)

    return ProtocolSpec(spec)


def parse_override_key(key: str) -> str:
    """Strip a version selector from an override key.

    ``@scope/name@^1`` -> ``@scope/name`` and ``name@1`` -> ``name``.
    """
    at = key.find("@", 1) if key.startswith("@") else key.find("@")
    return key if at == -1 else key[:at]


def parse_package_manager_field(value: Any) -> PackageManagerField | None:
    if not isinstance(value, str):
        return None
    match = PACKAGE_MANAGER_RE.match(value.strip())
    if not match:
        return None
    name, version, digest = match.groups()
    return PackageManagerField(name=name, version=version, raw=value, hash=digest)


def get_nested_field(document: dict, path: str) -> Any:
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def is_dep_field_enabled(field: str, options) -> bool:
    if (options.dep_fields or {}).get(field) is False:
        return False
    if field == "peerDependencies" and not options.peer:
        return False
    return True


class _Extractor:
    """Walks one document, applying the eligibility and filter rules."""

    def __init__(self, options):
        self.options = options
        self.include = compile_patterns_strict(options.include) if options.include else []
        self.exclude = compile_patterns_strict(options.exclude) if options.exclude else []
        self.dependencies: list[RawDependency] = []

    def filtered_out(self, name: str) -> bool:
        if self.include and not matches_any(name, self.include):
            return True
        return bool(self.exclude) and matches_any(name, self.exclude)

    def add(self, name: str, spec: str, source: str, parent_path: tuple[str, ...] = ()):
        if self.filtered_out(name):
            return

        parsed = parse_protocol(spec)
        if not parsed.supported:
            eligible = False
        elif parsed.protocol == "workspace" and not self.options.include_workspace:
            eligible = False
        elif parsed.protocol == "github":
            # Tag pins are always exact
            eligible = True
        else:
            eligible = self.options.include_locked or not is_locked(parsed.current_version)

        self.dependencies.append(
            RawDependency(
                name=name,
                current_version_spec=parsed.current_version,
                source_field=source,
                eligible_for_update=eligible,
                parent_path=parent_path,
                protocol=parsed.protocol,
                alias_name=parsed.alias_name,
            )
        )

    def add_overrides(self, section: dict, source: str, parents: tuple[str, ...], owner: str | None):
        for key, value in section.items():
            if isinstance(value, str):
                # npm's "." key pins the package that owns the nested object
                name = owner if key == "." and owner else parse_override_key(key)
                self.add(name, value, source, (*parents, key))
            elif isinstance(value, dict):
                self.add_overrides(value, source, (*parents, key), parse_override_key(key))


def parse_dependencies(document: dict, options) -> list[RawDependency]:
    """Flatten a manifest document into RawDependency entries.

    Args:
        document: Parsed manifest (package.json or package.yaml contents)
        options: Object exposing dep_fields, peer, include, exclude,
            include_locked and include_workspace

    Returns:
        Dependencies in field order; ineligible specifiers are kept with
        ``eligible_for_update=False`` while filtered names are dropped

    Raises:
        ConfigError: If an include/exclude pattern does not compile
    """
    extractor = _Extractor(options)
    if not isinstance(document, dict):
        return extractor.dependencies

    for field in DEP_FIELDS:
        if not is_dep_field_enabled(field, options):
            continue
        section = document.get(field)
        if not isinstance(section, dict):
            continue
        for name, spec in section.items():
            if isinstance(spec, str):
                extractor.add(name, spec, field)

    for field in OVERRIDE_FIELDS:
        if not is_dep_field_enabled(field, options):
            continue
        section = get_nested_field(document, field)
        if isinstance(section, dict):
            extractor.add_overrides(section, field, (), None)

    if is_dep_field_enabled("packageManager", options):
        manager = parse_package_manager_field(document.get("packageManager"))
        if manager and not extractor.filtered_out(manager.name):
            extractor.dependencies.append(
                RawDependency(
                    name=manager.name,
                    current_version_spec=manager.version,
                    source_field="packageManager",
                    eligible_for_update=True,
                )
            )

    return extractor.dependencies


def parse_catalog_dependencies(
    entries: dict, options, section_path: tuple[str, ...] = ("catalog",)
) -> list[RawDependency]:
    """Extract dependencies from a flat ``name -> range`` catalog table."""
    extractor = _Extractor(options)
    if isinstance(entries, dict):
        for name, spec in entries.items():
            if isinstance(spec, str):
                extractor.add(name, spec, "catalog", section_path)
    return extractor.dependencies
