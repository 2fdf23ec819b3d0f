"""Registry and auth settings from ``.npmrc`` files."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_REGISTRY = "https://registry.npmjs.org/"

SCOPED_REGISTRY_RE = re.compile(r"^(@[^:]+):registry$")
AUTH_TOKEN_RE = re.compile(r"^//(.+?)/?:_authToken$")
AUTH_BASIC_RE = re.compile(r"^//(.+?)/?:_auth$")
ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


@dataclass
class RegistryConfig:
    url: str
    token: str | None = None
    auth_type: str | None = None  # bearer or basic

    @property
    def headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        scheme = "Basic" if self.auth_type == "basic" else "Bearer"
        return {"Authorization": f"{scheme} {self.token}"}


@dataclass
class NpmrcConfig:
    default_registry: str = DEFAULT_REGISTRY
    scopes: dict[str, str] = field(default_factory=dict)
    tokens: dict[str, tuple[str, str]] = field(default_factory=dict)  # host/path -> (auth_type, token)

    def registry_for(self, name: str) -> RegistryConfig:
        """Registry URL and credentials to use for a package name."""
        url = self.default_registry
        if name.startswith("@") and "/" in name:
            url = self.scopes.get(name.split("/", 1)[0], url)

        config = RegistryConfig(url=url)
        bare = re.sub(r"^https?://", "", url).rstrip("/")
        # Longest matching credential key wins
        for key in sorted(self.tokens, key=len, reverse=True):
            if bare == key or bare.startswith(key + "/"):
                config.auth_type, config.token = self.tokens[key]
                break
        return config


def _ensure_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else f"{url}/"


def _expand_env(value: str) -> str:
    return ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)


def parse_npmrc(content: str, config: NpmrcConfig) -> None:
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", ";")) or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        value = _expand_env(value.strip("\"'"))

        if key == "registry":
            config.default_registry = _ensure_trailing_slash(value)
            continue

        scoped = SCOPED_REGISTRY_RE.match(key)
        if scoped:
            config.scopes[scoped.group(1)] = _ensure_trailing_slash(value)
            continue

        token = AUTH_TOKEN_RE.match(key)
        if token:
            config.tokens[token.group(1).rstrip("/")] = ("bearer", value)
            continue

        basic = AUTH_BASIC_RE.match(key)
        if basic:
            # _auth is already base64(user:password)
            config.tokens[basic.group(1).rstrip("/")] = ("basic", value)


def load_npmrc(cwd: str | Path, home: str | Path | None = None) -> NpmrcConfig:
    """Read ``~/.npmrc`` then ``<cwd>/.npmrc``; NPM_CONFIG_REGISTRY wins."""
    config = NpmrcConfig()
    home_dir = Path(home) if home is not None else Path.home()
    for path in (home_dir / ".npmrc", Path(cwd) / ".npmrc"):
        try:
            content = path.read_text(encoding="utf-8")
        except OSError:
            continue
        parse_npmrc(content, config)

    env_registry = os.environ.get("npm_config_registry") or os.environ.get("NPM_CONFIG_REGISTRY")
    if env_registry:
        config.default_registry = _ensure_trailing_slash(env_registry)
    return config
