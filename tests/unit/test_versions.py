"""Tests for version targeting, diff classification and filtering."""

from datetime import datetime, timezone

import pytest

from core.models import RegistrySnapshot
from core.versions import (
    apply_cooldown,
    apply_version_prefix,
    diff_class,
    filter_versions,
    get_max_version,
    get_version_prefix,
    is_locked,
    resolve_target,
)


def snapshot(versions, latest=None, deprecated=None, time=None, **tags):
    return RegistrySnapshot(
        name="pkg",
        versions=versions,
        dist_tags={"latest": latest or versions[-1], **tags},
        deprecated=deprecated or {},
        time=time or {},
    )


class TestPrefixes:
    """Test range prefix helpers."""

    def test_get_version_prefix(self):
        """Should return the leading range operator."""
        assert get_version_prefix("^1.2.3") == "^"
        assert get_version_prefix("~1.2.3") == "~"
        assert get_version_prefix(">=1.0.0") == ">="
        assert get_version_prefix("1.0.0") == ""

    def test_apply_version_prefix(self):
        """Should prepend the prefix only when there is one."""
        assert apply_version_prefix("2.0.0", "^") == "^2.0.0"
        assert apply_version_prefix("2.0.0", "") == "2.0.0"

    def test_is_locked(self):
        """Should treat only bare valid versions as locked."""
        assert is_locked("1.2.3")
        assert not is_locked("^1.2.3")
        assert not is_locked("latest")


class TestResolveTarget:
    """Test target selection per range mode."""

    def test_major_and_newest_ignore_order(self):
        """Should pick the overall maximum regardless of list order."""
        versions = ["1.0.0", "3.0.0", "2.5.0", "10.0.0", "9.9.9"]
        for mode in ("major", "newest"):
            assert resolve_target("^1.0.0", versions, {}, mode) == "10.0.0"
            assert resolve_target("^1.0.0", list(reversed(versions)), {}, mode) == "10.0.0"

    def test_get_max_version_skips_invalid(self):
        """Should skip non-semver entries."""
        assert get_max_version(["1.0.0", "banana", "1.1.0"]) == "1.1.0"
        assert get_max_version([]) is None

    def test_minor_mode_keeps_major(self):
        """Should stay within the current major."""
        versions = ["1.2.0", "1.9.1", "2.0.0", "1.5.0"]
        assert resolve_target("^1.2.0", versions, {}, "minor") == "1.9.1"

    def test_patch_mode_keeps_minor(self):
        """Should stay within the current minor."""
        versions = ["1.2.0", "1.2.7", "1.3.0", "1.2.3"]
        assert resolve_target("~1.2.0", versions, {}, "patch") == "1.2.7"

    def test_latest_and_next_use_dist_tags(self):
        """Should read the dist-tags directly."""
        tags = {"latest": "2.0.0", "next": "3.0.0-rc.1"}
        assert resolve_target("^1.0.0", ["1.0.0", "2.0.0"], tags, "latest") == "2.0.0"
        assert resolve_target("^1.0.0", ["1.0.0", "2.0.0"], tags, "next") == "3.0.0-rc.1"
        assert resolve_target("^1.0.0", ["1.0.0"], {"latest": "1.0.0"}, "next") == "1.0.0"

    def test_default_mode_max_satisfying(self):
        """Should pick the highest version inside the declared range."""
        versions = ["1.2.0", "1.4.0", "2.0.0"]
        assert resolve_target("^1.2.0", versions, {"latest": "2.0.0"}, "default") == "1.4.0"

    def test_default_mode_falls_back_to_latest(self):
        """Should fall back to the latest tag when nothing satisfies."""
        versions = ["1.2.0", "2.0.0"]
        assert resolve_target("^5.0.0", versions, {"latest": "2.0.0"}, "default") == "2.0.0"


class TestDiffClass:
    """Test semantic diff classification."""

    @pytest.mark.parametrize(
        "current,target,expected",
        [
            ("^1.2.0", "^2.0.0", "major"),
            ("1.2.0", "1.3.0", "minor"),
            ("~1.2.0", "1.2.5", "patch"),
            ("1.2.3", "1.2.3", "none"),
            ("^1.2", "1.2.0", "none"),
            ("latest", "1.0.0", "error"),
        ],
    )
    def test_diff_class(self, current, target, expected):
        """Should classify the distance between coerced versions."""
        assert diff_class(current, target) == expected

    def test_identical_versions_are_none(self):
        """Should return none for any version compared with itself."""
        for version in ("0.0.1", "^4.18.2", "~0.3", "10.0.0-beta.1"):
            assert diff_class(version, version) == "none"


class TestFilterVersions:
    """Test deprecated and prerelease filtering."""

    def test_drops_deprecated_versions(self):
        """Should hide deprecated versions unless the current one is deprecated."""
        data = snapshot(["1.0.0", "1.1.0", "1.2.0"], deprecated={"1.2.0": "broken"})
        assert filter_versions(data, "^1.0.0") == ["1.0.0", "1.1.0"]

        data = snapshot(["1.0.0", "1.1.0"], deprecated={"1.0.0": "old", "1.1.0": "old"})
        assert filter_versions(data, "^1.0.0") == ["1.0.0", "1.1.0"]

    def test_drops_prereleases_for_stable_current(self):
        """Should ignore prereleases when the current version is stable."""
        data = snapshot(["1.0.0", "2.0.0-beta.1", "1.1.0"], latest="1.1.0")
        assert filter_versions(data, "^1.0.0") == ["1.0.0", "1.1.0"]

    def test_keeps_prerelease_channel(self):
        """Should keep the same prerelease channel and drop others."""
        data = snapshot(["1.0.0", "2.0.0-beta.2", "2.0.0-rc.1", "2.0.0-beta.3"], latest="1.0.0")
        assert filter_versions(data, "2.0.0-beta.1") == ["1.0.0", "2.0.0-beta.2", "2.0.0-beta.3"]


class TestCooldown:
    """Test the publish-age filter."""

    NOW = datetime(2024, 6, 30, tzinfo=timezone.utc)
    TIME = {
        "1.0.0": "2024-01-01T00:00:00.000Z",
        "1.1.0": "2024-06-01T00:00:00.000Z",
        "1.2.0": "2024-06-29T00:00:00.000Z",
    }

    def test_hides_recent_versions_and_moves_latest(self):
        """Should drop young versions and move latest to the newest survivor."""
        data = snapshot(["1.0.0", "1.1.0", "1.2.0"], time=self.TIME)
        result = apply_cooldown(data, 7, now=self.NOW)
        assert result.versions == ["1.0.0", "1.1.0"]
        assert result.dist_tags["latest"] == "1.1.0"

    def test_keeps_versions_without_time(self):
        """Should keep versions with no publish time."""
        data = snapshot(["1.0.0", "1.2.0", "1.3.0"], time=self.TIME)
        result = apply_cooldown(data, 7, now=self.NOW)
        assert result.versions == ["1.0.0", "1.3.0"]

    def test_returns_snapshot_when_everything_is_recent(self):
        """Should leave the snapshot untouched rather than empty it."""
        data = snapshot(["1.2.0"], time=self.TIME)
        assert apply_cooldown(data, 7, now=self.NOW) is data

    def test_zero_days_is_noop(self):
        """Should do nothing without a cooldown."""
        data = snapshot(["1.0.0", "1.2.0"], time=self.TIME)
        assert apply_cooldown(data, 0, now=self.NOW) is data
