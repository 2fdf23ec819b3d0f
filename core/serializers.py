"""Format-preserving writers for JSON and YAML manifests.

Only the targeted version strings change. Indentation, line endings, the
trailing newline, key order and (for YAML) comments and quoting survive.
Serializers are picked from the SERIALIZERS / CATALOG_SERIALIZERS tables
by record kind or catalog format.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

import yaml

from .errors import WriteError
from .extract import parse_package_manager_field
from .versions import apply_version_prefix, get_version_prefix

logger = logging.getLogger(__name__)

INDENT_RE = re.compile(r"^([ \t]+)\S", re.MULTILINE)
ALIAS_RE = re.compile(r"^((?:npm|jsr):.+@)(.+)$")
GITHUB_REF_RE = re.compile(r"^(github:[^#]+#)(refs/tags/)?(v?)(.+)$")


def read_text(path: str) -> str:
    """Read a file without newline translation."""
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def write_text(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def detect_indent(content: str) -> str | None:
    """Indent unit of the first indented line, or None for flat content."""
    match = INDENT_RE.search(content)
    return match.group(1) if match else None


def detect_line_ending(content: str) -> str:
    return "\r\n" if "\r\n" in content else "\n"


@dataclass(frozen=True)
class TextFormat:
    indent: str
    newline: str
    trailing_newline: bool

    @classmethod
    def from_content(cls, content: str, fallback_indent: str = "  ") -> "TextFormat":
        return cls(
            indent=detect_indent(content) or fallback_indent,
            newline=detect_line_ending(content),
            trailing_newline=content.endswith("\n"),
        )


def rebuild_version(current_raw: str, target_spec: str) -> str:
    """Substitute a new version into a raw specifier.

    Keeps alias prefixes (``npm:pkg@``, ``jsr:pkg@``), ``workspace:``, the
    range operator, and for ``github:`` refs the ``refs/tags/`` and ``v``
    segments.
    """
    bare = target_spec[len(get_version_prefix(target_spec)):]

    github = GITHUB_REF_RE.match(current_raw)
    if github:
        return f"{github.group(1)}{github.group(2) or ''}{github.group(3)}{bare}"

    alias = ALIAS_RE.match(current_raw)
    if alias:
        return alias.group(1) + apply_version_prefix(bare, get_version_prefix(alias.group(2)))

    if current_raw.startswith("workspace:"):
        return "workspace:" + rebuild_version(current_raw[len("workspace:"):], target_spec)

    return apply_version_prefix(bare, get_version_prefix(current_raw))


@dataclass(frozen=True)
class ValueEdit:
    """Replace the string at ``path`` with ``target`` rebuilt against its current value."""

    path: tuple[str, ...]
    target: str

    def apply(self, current_raw: str) -> str:
        if self.path == ("packageManager",):
            field = parse_package_manager_field(current_raw)
            if field is not None:
                return field.with_version(self.target)
        return rebuild_version(current_raw, self.target)


def _container(document: Any, path: tuple[str, ...]) -> dict | None:
    current = document
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current if isinstance(current, dict) else None


def _apply_to_document(document: Any, edits: list[ValueEdit]) -> int:
    applied = 0
    for edit in edits:
        container = _container(document, edit.path[:-1])
        key = edit.path[-1]
        if container is None or not isinstance(container.get(key), str):
            logger.warning("Skipping %s: no string value at that path", ".".join(edit.path))
            continue
        container[key] = edit.apply(container[key])
        applied += 1
    return applied


class _FileSerializer:
    """Shared read-render-write cycle. Content is always read fresh."""

    def detect(self, content: str, fallback_indent: str = "  ") -> TextFormat:
        return TextFormat.from_content(content, fallback_indent)

    def load(self, content: str) -> Any:
        raise NotImplementedError

    def render(self, content: str, edits: list[ValueEdit], fallback_indent: str = "  ") -> str:
        raise NotImplementedError

    def write(self, path: str, edits: list[ValueEdit], fallback_indent: str = "  ") -> bool:
        """Apply edits to ``path``. Returns True when the file changed.

        Raises:
            WriteError: If the file cannot be read, parsed or written
        """
        try:
            content = read_text(path)
        except OSError as e:
            raise WriteError(f"Cannot read {path}: {e}") from e

        try:
            self.load(content)
            rendered = self.render(content, edits, fallback_indent)
        except (ValueError, yaml.YAMLError) as e:
            raise WriteError(f"Cannot parse {path}: {e}") from e

        if rendered == content:
            return False

        try:
            write_text(path, rendered)
        except OSError as e:
            raise WriteError(f"Cannot write {path}: {e}") from e
        return True


class JsonSerializer(_FileSerializer):
    def load(self, content: str) -> Any:
        return json.loads(content)

    def render(self, content: str, edits: list[ValueEdit], fallback_indent: str = "  ") -> str:
        if not edits:
            return content

        fmt = self.detect(content, fallback_indent)
        document = json.loads(content)
        if not _apply_to_document(document, edits):
            return content

        text = json.dumps(document, indent=fmt.indent, ensure_ascii=False)
        if fmt.trailing_newline:
            text += "\n"
        return text.replace("\n", fmt.newline)


KEY_RE = re.compile(
    r"""^(?P<key>"(?:[^"\\]|\\.)*"|'(?:[^']|'')*'|[^\s#'"{}\[\],][^:#]*?)\s*:(?:[ \t]+|$)(?P<rest>.*)$"""
)
DOUBLE_QUOTED_RE = re.compile(r'^"((?:[^"\\]|\\.)*)"')
SINGLE_QUOTED_RE = re.compile(r"^'((?:[^']|'')*)'")


def _unquote_key(raw: str) -> str:
    if raw.startswith('"'):
        return json.loads(raw)
    if raw.startswith("'"):
        return raw[1:-1].replace("''", "'")
    return raw.strip()


def _needs_quotes(value: str) -> bool:
    try:
        return yaml.safe_load(f"v: {value}") != {"v": value}
    except yaml.YAMLError:
        return True


class YamlSerializer(_FileSerializer):
    def load(self, content: str) -> Any:
        return yaml.safe_load(content)

    def _locate(self, lines: list[str], path: tuple[str, ...]) -> int | None:
        start = 0
        parent_indent = -1
        for depth, key in enumerate(path):
            found = None
            child_indent = None
            for i in range(start, len(lines)):
                stripped = lines[i].strip()
                if not stripped or stripped.startswith("#"):
                    continue
                indent = len(lines[i]) - len(lines[i].lstrip(" "))
                if indent <= parent_indent:
                    break
                if child_indent is None:
                    child_indent = indent
                if indent != child_indent:
                    continue
                match = KEY_RE.match(lines[i][indent:])
                if match and _unquote_key(match.group("key")) == key:
                    found = i
                    break
            if found is None:
                return None
            if depth == len(path) - 1:
                return found
            parent_indent = child_indent
            start = found + 1
        return None

    def _replace_scalar(self, line: str, apply: Callable[[str], str]) -> str | None:
        indent = len(line) - len(line.lstrip(" "))
        match = KEY_RE.match(line[indent:])
        if not match:
            return None
        rest = match.group("rest")
        head = line[: len(line) - len(rest)]

        double = DOUBLE_QUOTED_RE.match(rest)
        single = SINGLE_QUOTED_RE.match(rest)
        if double:
            current = json.loads(double.group(0))
            tail = rest[double.end():]
            updated = json.dumps(apply(current), ensure_ascii=False)
        elif single:
            current = single.group(1).replace("''", "'")
            tail = rest[single.end():]
            updated = "'" + apply(current).replace("'", "''") + "'"
        else:
            comment = re.search(r"\s+#", rest)
            value = rest[: comment.start()] if comment else rest
            tail = rest[len(value.rstrip()):]
            current = value.strip()
            if not current or current[0] in "{[|>&*!":
                return None
            new_value = apply(current)
            updated = "'" + new_value.replace("'", "''") + "'" if _needs_quotes(new_value) else new_value
        return head + updated + tail

    def render(self, content: str, edits: list[ValueEdit], fallback_indent: str = "  ") -> str:
        if not edits:
            return content

        fmt = self.detect(content, fallback_indent)
        lines = content.replace("\r\n", "\n").split("\n")
        leftovers = []
        for edit in edits:
            index = self._locate(lines, edit.path)
            replaced = self._replace_scalar(lines[index], edit.apply) if index is not None else None
            if replaced is None:
                leftovers.append(edit)
            else:
                lines[index] = replaced
        text = "\n".join(lines)

        if leftovers:
            logger.warning(
                "Could not edit %d YAML value(s) in place; re-dumping the document", len(leftovers)
            )
            document = yaml.safe_load(text)
            _apply_to_document(document, leftovers)
            text = yaml.safe_dump(
                document,
                sort_keys=False,
                default_flow_style=False,
                allow_unicode=True,
                indent=len(fmt.indent.expandtabs(2)),
            )
            if not fmt.trailing_newline:
                text = text.rstrip("\n")

        return text.replace("\n", fmt.newline)


SERIALIZERS = {
    "manifest-json": JsonSerializer(),
    "manifest-yaml": YamlSerializer(),
}

CATALOG_SERIALIZERS = {
    "pnpm": SERIALIZERS["manifest-yaml"],
    "bun": SERIALIZERS["manifest-json"],
    "yarn": SERIALIZERS["manifest-yaml"],
}
