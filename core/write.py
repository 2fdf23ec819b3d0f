"""Write/verify engine.

Accepted changes for one package are merged into a single
read-render-write cycle per physical file. With a verify command each
change is applied and verified on its own and rolled back on failure;
without one, a failure in any file restores the whole package.
Global records dispatch to package-manager install commands instead.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .errors import WriteError
from .extract import OVERRIDE_FIELDS
from .global_packages import get_global_write_targets, write_global_package
from .models import FileBackup, PackageRecord, PackageWriteResult, ResolvedDependencyChange
from .serializers import CATALOG_SERIALIZERS, SERIALIZERS, ValueEdit, read_text, write_text
from .shell import CommandRunner, LocalRunner
from .versions import get_version_prefix

logger = logging.getLogger(__name__)


@dataclass
class FileEdits:
    """Every edit destined for one physical file."""

    file_path: str
    serializer: object
    fallback_indent: str
    edits: list[ValueEdit] = field(default_factory=list)


def value_path(change: ResolvedDependencyChange) -> tuple[str, ...]:
    """Key path of the version string a change rewrites."""
    if change.source_field == "catalog":
        return (*change.parent_path, change.name)
    if change.source_field in OVERRIDE_FIELDS:
        return (*change.source_field.split("."), *change.parent_path)
    if change.source_field == "packageManager":
        return ("packageManager",)
    return (change.source_field, change.name)


def _destination(record: PackageRecord, change: ResolvedDependencyChange):
    if change.source_field == "catalog":
        for catalog in record.catalogs:
            if catalog.section_path == change.parent_path:
                return (
                    catalog.file_path,
                    CATALOG_SERIALIZERS[catalog.catalog_format],
                    catalog.detected_indent,
                )
        raise WriteError(f"{record.name}: no catalog holds {change.name}")

    serializer = SERIALIZERS.get(record.kind)
    if serializer is None:
        raise WriteError(f"{record.name}: cannot write records of kind {record.kind}")
    return record.file_path, serializer, record.detected_indent


def plan_file_edits(record: PackageRecord, changes: list[ResolvedDependencyChange]) -> list[FileEdits]:
    """Group changes by the file they land in, keeping first-seen order."""
    plans: dict[str, FileEdits] = {}
    for change in changes:
        file_path, serializer, indent = _destination(record, change)
        plan = plans.setdefault(file_path, FileEdits(file_path, serializer, indent))
        plan.edits.append(ValueEdit(value_path(change), change.target_version_spec))
    return list(plans.values())


def write_package(record: PackageRecord, changes: list[ResolvedDependencyChange]) -> int:
    """Apply changes with one read-render-write cycle per file.

    Files are read fresh, so records sharing a file (a manifest and the bun
    catalog inside it) see each other's earlier writes.

    Raises:
        WriteError: If a file cannot be read, parsed or written
    """
    for plan in plan_file_edits(record, changes):
        changed = plan.serializer.write(plan.file_path, plan.edits, plan.fallback_indent)
        logger.debug("%s %s (%d edits)", "Wrote" if changed else "Unchanged", plan.file_path, len(plan.edits))
    return len(changes)


def package_files(record: PackageRecord) -> list[str]:
    paths = [record.file_path] if record.kind != "global" else []
    paths.extend(catalog.file_path for catalog in record.catalogs)
    return list(dict.fromkeys(paths))


def backup_package_files(record: PackageRecord) -> list[FileBackup]:
    """Capture the record's own file and every catalog file it references."""
    backups = []
    for path in package_files(record):
        try:
            backups.append(FileBackup(path, read_text(path)))
        except OSError as e:
            raise WriteError(f"Cannot back up {path}: {e}") from e
    return backups


def restore_package_files(backups: list[FileBackup]) -> None:
    for backup in backups:
        try:
            write_text(backup.file_path, backup.original_content)
        except OSError as e:
            raise WriteError(f"Cannot restore {backup.file_path}: {e}") from e


def verify_and_write(
    record: PackageRecord,
    changes: list[ResolvedDependencyChange],
    verify_command: str,
    runner: CommandRunner,
) -> PackageWriteResult:
    """Apply and verify changes one at a time.

    Each change is backed up against the current file state, so a rejected
    change rolls back to the state that already includes earlier accepted
    changes. The command runs in the manifest's directory.
    """
    cwd = str(Path(record.file_path).parent)
    applied = reverted = 0
    for change in changes:
        backups = backup_package_files(record)
        try:
            write_package(record, [change])
        except WriteError as e:
            restore_package_files(backups)
            if applied:
                e.result = PackageWriteResult.from_counts(len(changes), applied, reverted, stopped=True)
            raise

        result = runner.run(verify_command, cwd=cwd)
        if result.success:
            applied += 1
            logger.info("%s: %s -> %s verified", record.name, change.name, change.target_version_spec)
        else:
            restore_package_files(backups)
            reverted += 1
            logger.warning(
                "%s: verify failed for %s@%s, reverted",
                record.name,
                change.name,
                change.target_version_spec,
            )
    return PackageWriteResult.from_counts(len(changes), applied, reverted)


def write_global_changes(
    record: PackageRecord,
    changes: list[ResolvedDependencyChange],
    runner: CommandRunner,
) -> PackageWriteResult:
    applied = 0
    for change in changes:
        version = change.target_version_spec[len(get_version_prefix(change.target_version_spec)):]
        installed = False
        try:
            for manager in get_global_write_targets(record, change.name):
                installed = write_global_package(manager, change.name, version, runner) or installed
        except WriteError as e:
            applied += int(installed)
            if applied:
                e.result = PackageWriteResult.from_counts(len(changes), applied, 0, stopped=True)
            raise
        applied += int(installed)
    return PackageWriteResult.from_counts(len(changes), applied, 0)


def apply_package_write(
    record: PackageRecord,
    changes: list[ResolvedDependencyChange],
    options,
    runner: CommandRunner | None = None,
) -> PackageWriteResult:
    """Write one package's accepted changes.

    Args:
        record: Package the changes belong to
        changes: Accepted changes; error entries are dropped
        options: Object exposing verify_command
        runner: Command runner for verify and global installs

    Returns:
        Planned/applied/reverted counters and the terminal state

    Raises:
        WriteError: If a file or install step fails
    """
    changes = [change for change in changes if change.diff_class != "error"]
    if not changes:
        return PackageWriteResult.from_counts(0, 0, 0)

    runner = runner or LocalRunner()
    if record.kind == "global":
        return write_global_changes(record, changes, runner)

    if options.verify_command:
        return verify_and_write(record, changes, options.verify_command, runner)

    backups = backup_package_files(record)
    try:
        applied = write_package(record, changes)
    except WriteError:
        restore_package_files(backups)
        raise
    logger.info("%s: wrote %d change(s)", record.name, applied)
    return PackageWriteResult.from_counts(len(changes), applied, 0)
