"""Tests for global package discovery and installs."""

import json

from core.global_packages import (
    dedupe_global_packages,
    detect_global_package_manager,
    get_global_write_targets,
    load_global_packages,
    load_global_packages_all,
    parse_bun_global_list,
    parse_npm_global_list,
    parse_pnpm_global_list,
    write_global_package,
)
from core.models import PackageRecord, RegistrySnapshot, ResolvedDependencyChange
from core.options import CheckOptions
from core.shell import CommandResult
from core.write import apply_package_write

NPM_OUTPUT = json.dumps(
    {"dependencies": {"typescript": {"version": "5.3.3"}, "npm": {"version": "10.2.4"}}}
)
PNPM_OUTPUT = json.dumps(
    [{"path": "/pnpm/global/5", "dependencies": {"typescript": {"version": "5.4.0"}, "vercel": {"version": "33.0.0"}}}]
)
BUN_OUTPUT = """/home/user/.bun/install/global node_modules (3)
├── @biomejs/biome@1.5.3
└── eslint@8.56.0
"""


def listing_runner(fake_runner, outputs):
    """Answer list commands from ``outputs`` keyed by manager."""

    def handler(cmd, cwd):
        manager = cmd.split()[0]
        if manager in outputs and ("list" in cmd or "ls" in cmd):
            return CommandResult(0, stdout=outputs[manager])
        return CommandResult(1, stderr="not found")

    fake_runner.handler = handler
    return fake_runner


class TestParsers:
    """Test the per-manager list parsers."""

    def test_npm(self):
        """Should read npm list --json output."""
        assert parse_npm_global_list(NPM_OUTPUT) == [("typescript", "5.3.3"), ("npm", "10.2.4")]
        assert parse_npm_global_list("not json") == []

    def test_pnpm(self):
        """Should read the first pnpm list entry."""
        assert parse_pnpm_global_list(PNPM_OUTPUT) == [("typescript", "5.4.0"), ("vercel", "33.0.0")]
        assert parse_pnpm_global_list("[]") == []

    def test_bun(self):
        """Should read bun's tree output."""
        assert parse_bun_global_list(BUN_OUTPUT) == [("@biomejs/biome", "1.5.3"), ("eslint", "8.56.0")]


class TestDetection:
    """Test global manager detection."""

    def test_explicit_manager(self, fake_runner):
        """Should trust an explicit manager."""
        assert detect_global_package_manager("bun", fake_runner) == "bun"
        assert fake_runner.calls == []

    def test_probe_order(self, fake_runner):
        """Should probe pnpm then bun and fall back to npm."""
        fake_runner.handler = lambda cmd, cwd: CommandResult(0 if cmd.startswith("bun") else 127)
        assert detect_global_package_manager(None, fake_runner) == "bun"

        fake_runner.handler = lambda cmd, cwd: CommandResult(127)
        assert detect_global_package_manager(None, fake_runner) == "npm"


class TestLoading:
    """Test synthetic global records."""

    def test_single_manager(self, fake_runner):
        """Should build one record for the chosen manager."""
        records = load_global_packages("npm", listing_runner(fake_runner, {"npm": NPM_OUTPUT}))
        assert len(records) == 1
        assert records[0].kind == "global"
        assert records[0].file_path == "global:npm"
        assert [d.name for d in records[0].dependencies] == ["typescript", "npm"]
        assert all(d.eligible_for_update for d in records[0].dependencies)

    def test_empty_listing(self, fake_runner):
        """Should return no records when nothing is installed."""
        assert load_global_packages("npm", listing_runner(fake_runner, {})) == []

    def test_all_managers_dedupe(self, fake_runner):
        """Should merge managers by name and remember who reported each package."""
        runner = listing_runner(fake_runner, {"npm": NPM_OUTPUT, "pnpm": PNPM_OUTPUT, "bun": BUN_OUTPUT})
        (record,) = load_global_packages_all(runner)

        assert record.file_path == "global:npm+pnpm+bun"
        assert [d.name for d in record.dependencies] == ["@biomejs/biome", "eslint", "npm", "typescript", "vercel"]
        typescript = next(d for d in record.dependencies if d.name == "typescript")
        assert typescript.current_version_spec == "5.3.3"
        assert record.managers_by_dependency["typescript"] == ["npm", "pnpm"]
        assert get_global_write_targets(record, "typescript") == ["npm", "pnpm"]
        assert "bun" not in get_global_write_targets(record, "typescript")

    def test_update_dispatches_to_reporting_managers(self, fake_runner):
        """Should install a shared package with npm and pnpm but never bun."""
        outputs = {
            "npm": json.dumps({"dependencies": {"typescript": {"version": "5.0.0"}}}),
            "pnpm": json.dumps(
                [{"dependencies": {"typescript": {"version": "5.8.0"}, "tsx": {"version": "4.19.2"}}}]
            ),
            "bun": "├── eslint@9.0.0\n",
        }
        (record,) = load_global_packages_all(listing_runner(fake_runner, outputs))
        assert len(record.dependencies) == 3
        assert record.managers_by_dependency == {
            "eslint": ["bun"],
            "tsx": ["pnpm"],
            "typescript": ["npm", "pnpm"],
        }

        fake_runner.calls.clear()
        fake_runner.handler = None
        typescript = ResolvedDependencyChange(
            dependency=next(d for d in record.dependencies if d.name == "typescript"),
            target_version_spec="5.9.2",
            diff_class="minor",
            registry_snapshot=RegistrySnapshot("typescript", [], {}),
        )
        apply_package_write(record, [typescript], CheckOptions(), fake_runner)

        assert fake_runner.commands == ["npm install -g typescript@5.9.2", "pnpm add -g typescript@5.9.2"]

    def test_dedupe(self):
        """Should keep the first version and every manager once."""
        packages, managers = dedupe_global_packages(
            [("npm", "b", "1.0.0"), ("pnpm", "a", "2.0.0"), ("pnpm", "b", "1.1.0"), ("npm", "b", "1.0.0")]
        )
        assert packages == [("a", "2.0.0"), ("b", "1.0.0")]
        assert managers == {"a": ["pnpm"], "b": ["npm", "pnpm"]}


class TestWriteGlobal:
    """Test global installs."""

    def test_install_commands(self, fake_runner):
        """Should use each manager's global install command."""
        assert write_global_package("pnpm", "vercel", "34.0.0", fake_runner)
        assert fake_runner.commands == ["pnpm add -g vercel@34.0.0"]

    def test_yarn_unsupported(self, fake_runner):
        """Should skip yarn without running anything."""
        assert write_global_package("yarn", "vercel", "34.0.0", fake_runner) is False
        assert fake_runner.calls == []

    def test_targets_from_file_path(self):
        """Should derive targets from the record path when no mapping exists."""
        record = PackageRecord("Global packages", "global", "global:pnpm", [])
        assert get_global_write_targets(record, "anything") == ["pnpm"]
