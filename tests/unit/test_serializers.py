"""Tests for the format-preserving JSON and YAML writers."""

import json

import pytest
import yaml

from core.errors import WriteError
from core.serializers import (
    JsonSerializer,
    TextFormat,
    ValueEdit,
    YamlSerializer,
    detect_indent,
    rebuild_version,
)


class TestRebuildVersion:
    """Test substitution of new versions into raw specifiers."""

    @pytest.mark.parametrize(
        "current,target,expected",
        [
            ("^1.2.0", "^2.0.0", "^2.0.0"),
            ("~1.2.0", "1.3.0", "~1.3.0"),
            ("1.2.0", "^2.0.0", "2.0.0"),
            (">=1.0.0", "2.0.0", ">=2.0.0"),
            ("npm:string-width@^4.2.0", "^5.1.2", "npm:string-width@^5.1.2"),
            ("jsr:@std/path@^1.0.0", "1.1.0", "jsr:@std/path@^1.1.0"),
            ("workspace:^1.0.0", "^1.2.0", "workspace:^1.2.0"),
        ],
    )
    def test_rebuild(self, current, target, expected):
        """Should keep the current prefix and protocol."""
        assert rebuild_version(current, target) == expected

    def test_github_ref_shape_preserved(self):
        """Should keep the v prefix and refs/tags/ segment of github refs."""
        assert rebuild_version("github:owner/repo#v1.2.3", "1.3.0") == "github:owner/repo#v1.3.0"
        assert (
            rebuild_version("github:owner/repo#refs/tags/v1.2.3", "2.0.0")
            == "github:owner/repo#refs/tags/v2.0.0"
        )
        assert rebuild_version("github:owner/repo#1.2.3", "2.0.0") == "github:owner/repo#2.0.0"

    def test_package_manager_edit_keeps_hash(self):
        """Should rewrite only the version of a packageManager value."""
        edit = ValueEdit(("packageManager",), "9.4.0")
        assert edit.apply("pnpm@9.1.0+sha512.abc") == "pnpm@9.4.0+sha512.abc"


class TestTextFormat:
    """Test indentation and line ending detection."""

    def test_detect_format(self):
        """Should detect indent, line endings and trailing newline."""
        fmt = TextFormat.from_content('{\r\n\t"a": 1\r\n}')
        assert fmt.indent == "\t"
        assert fmt.newline == "\r\n"
        assert not fmt.trailing_newline

    def test_flat_content_has_no_indent(self):
        """Should return None when nothing is indented."""
        assert detect_indent("{}") is None


class TestJsonSerializer:
    """Test JSON manifest writes."""

    def setup_method(self):
        """Setup test fixtures."""
        self.serializer = JsonSerializer()
        self.document = {
            "name": "café",
            "dependencies": {"express": "^4.18.0", "lodash": "~4.17.21"},
            "packageManager": "pnpm@9.1.0+sha512.abc",
        }

    def test_zero_edits_round_trip(self, tmp_path):
        """Should leave the file byte-identical when there is nothing to change."""
        path = tmp_path / "package.json"
        path.write_bytes(b'{\r\n    "name": "x",\r\n    "dependencies": {"a": "^1.0.0"}\r\n}')
        before = path.read_bytes()

        assert self.serializer.write(str(path), []) is False
        assert path.read_bytes() == before

    def test_preserves_indent_newlines_and_key_order(self, tmp_path):
        """Should only change the targeted values."""
        path = tmp_path / "package.json"
        original = json.dumps(self.document, indent=4, ensure_ascii=False).replace("\n", "\r\n")
        path.write_bytes(original.encode("utf-8"))

        changed = self.serializer.write(
            str(path),
            [
                ValueEdit(("dependencies", "express"), "^4.19.2"),
                ValueEdit(("packageManager",), "9.4.0"),
            ],
        )

        expected = dict(self.document)
        expected["dependencies"] = {"express": "^4.19.2", "lodash": "~4.17.21"}
        expected["packageManager"] = "pnpm@9.4.0+sha512.abc"
        assert changed is True
        assert path.read_bytes() == json.dumps(expected, indent=4, ensure_ascii=False).replace(
            "\n", "\r\n"
        ).encode("utf-8")

    def test_trailing_newline_kept(self, tmp_path):
        """Should keep a trailing newline when the file had one."""
        path = tmp_path / "package.json"
        path.write_text(json.dumps(self.document, indent=2) + "\n")

        self.serializer.write(str(path), [ValueEdit(("dependencies", "lodash"), "~4.17.22")])

        content = path.read_text(encoding="utf-8")
        assert content.endswith("}\n")
        assert json.loads(content)["dependencies"]["lodash"] == "~4.17.22"

    def test_missing_path_skipped(self, tmp_path):
        """Should skip edits whose path holds no string."""
        path = tmp_path / "package.json"
        path.write_text(json.dumps(self.document, indent=2) + "\n")
        before = path.read_bytes()

        assert self.serializer.write(str(path), [ValueEdit(("dependencies", "react"), "^18.0.0")]) is False
        assert path.read_bytes() == before

    def test_invalid_json_raises(self, tmp_path):
        """Should wrap parse failures in WriteError."""
        path = tmp_path / "package.json"
        path.write_text("{ not json")
        with pytest.raises(WriteError):
            self.serializer.write(str(path), [ValueEdit(("dependencies", "a"), "1.0.0")])

    def test_missing_file_raises(self, tmp_path):
        """Should wrap read failures in WriteError."""
        with pytest.raises(WriteError):
            self.serializer.write(str(tmp_path / "nope.json"), [ValueEdit(("a",), "1.0.0")])


class TestYamlSerializer:
    """Test in-place YAML edits."""

    CONTENT = (
        "name: app # the app\n"
        "dependencies:\n"
        "  express: ^4.18.0  # web\n"
        "  \"@types/node\": '^20.1.0'\n"
        "  lodash: \"~4.17.21\"\n"
        "devDependencies:\n"
        "  typescript: ^5.0.0\n"
    )

    def setup_method(self):
        """Setup test fixtures."""
        self.serializer = YamlSerializer()

    def test_preserves_comments_and_quoting(self, tmp_path):
        """Should edit scalars in place keeping quotes and comments."""
        path = tmp_path / "package.yaml"
        path.write_text(self.CONTENT)

        self.serializer.write(
            str(path),
            [
                ValueEdit(("dependencies", "express"), "^4.19.2"),
                ValueEdit(("dependencies", "@types/node"), "^20.11.0"),
                ValueEdit(("dependencies", "lodash"), "~4.17.22"),
                ValueEdit(("devDependencies", "typescript"), "^5.4.0"),
            ],
        )

        assert path.read_text() == (
            "name: app # the app\n"
            "dependencies:\n"
            "  express: ^4.19.2  # web\n"
            "  \"@types/node\": '^20.11.0'\n"
            "  lodash: \"~4.17.22\"\n"
            "devDependencies:\n"
            "  typescript: ^5.4.0\n"
        )

    def test_zero_edits_round_trip(self, tmp_path):
        """Should not touch the file without edits."""
        path = tmp_path / "package.yaml"
        path.write_bytes(self.CONTENT.replace("\n", "\r\n").encode())
        before = path.read_bytes()

        assert self.serializer.write(str(path), []) is False
        assert path.read_bytes() == before

    def test_crlf_preserved(self, tmp_path):
        """Should keep CRLF line endings."""
        path = tmp_path / "package.yaml"
        path.write_bytes(self.CONTENT.replace("\n", "\r\n").encode())

        self.serializer.write(str(path), [ValueEdit(("dependencies", "express"), "^4.19.2")])

        content = path.read_bytes().decode()
        assert "express: ^4.19.2  # web\r\n" in content
        assert content.count("\r\n") == self.CONTENT.count("\n")

    def test_flow_mapping_falls_back_to_dump(self, tmp_path):
        """Should re-dump the document when a value cannot be edited in place."""
        path = tmp_path / "package.yaml"
        path.write_text("name: app\ndependencies: {express: ^4.18.0}\n")

        assert self.serializer.write(str(path), [ValueEdit(("dependencies", "express"), "^4.19.0")])

        data = yaml.safe_load(path.read_text())
        assert data == {"name": "app", "dependencies": {"express": "^4.19.0"}}
