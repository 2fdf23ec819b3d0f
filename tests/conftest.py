"""Pytest configuration and fixtures."""

import json

import httpx
import pytest

from core.options import CheckOptions
from core.shell import CommandResult


class FakeRunner:
    """CommandRunner that records commands and answers from a callback."""

    def __init__(self, handler=None):
        self.calls: list[tuple[str, str]] = []
        self.handler = handler

    def run(self, cmd, *, cwd="."):
        self.calls.append((cmd, cwd))
        if self.handler is None:
            return CommandResult(0)
        return self.handler(cmd, cwd)

    @property
    def commands(self) -> list[str]:
        return [cmd for cmd, _ in self.calls]


def make_packument(name, versions, latest=None, time=None, deprecated=None, next_tag=None):
    """Minimal npm registry document."""
    dist_tags = {"latest": latest or versions[-1]}
    if next_tag:
        dist_tags["next"] = next_tag
    return {
        "name": name,
        "dist-tags": dist_tags,
        "versions": {
            v: ({"deprecated": deprecated[v]} if deprecated and v in deprecated else {}) for v in versions
        },
        "time": time or {},
    }


@pytest.fixture
def options():
    """Default options with caching disabled."""
    return CheckOptions(cache_ttl=0)


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def packument():
    return make_packument


@pytest.fixture
def registry_transport():
    """Build an httpx.MockTransport serving npm packuments by package name."""

    def build(packuments: dict):
        def handler(request: httpx.Request) -> httpx.Response:
            name = request.url.path.lstrip("/").replace("%2F", "/").replace("%2f", "/")
            if name not in packuments:
                return httpx.Response(404, json={"error": "Not found"})
            return httpx.Response(200, json=packuments[name])

        return httpx.MockTransport(handler)

    return build


@pytest.fixture
def sample_package_json():
    """Sample package.json content for testing."""
    return """{
  "name": "test-project",
  "dependencies": {
    "express": "^4.18.0",
    "lodash": "~4.17.21"
  },
  "devDependencies": {
    "typescript": "^5.0.0"
  }
}
"""


@pytest.fixture
def temp_manifest_file(tmp_path, sample_package_json):
    """Create a temporary package.json for testing."""
    manifest = tmp_path / "package.json"
    manifest.write_text(sample_package_json)
    return manifest


@pytest.fixture
def write_json(tmp_path):
    def write(name, data, indent=2):
        path = tmp_path / name
        path.write_text(json.dumps(data, indent=indent) + "\n")
        return path

    return write
