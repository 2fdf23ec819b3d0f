"""Manifest kind detection."""

import re
from pathlib import Path


def identify(content: str, filename: str | None = None) -> str:
    """Detect what kind of npm-ecosystem file we are looking at.

    Args:
        content: The file content
        filename: Optional filename for additional context

    Returns:
        One of 'manifest-json', 'manifest-yaml', 'pnpm-workspace',
        'yarnrc' or 'unknown'
    """
    # Filename-based detection (takes precedence)
    if filename:
        name = Path(filename).name
        if name == "package.json":
            return "manifest-json"
        if name in ("package.yaml", "package.yml"):
            return "manifest-yaml"
        if name == "pnpm-workspace.yaml":
            return "pnpm-workspace"
        if name == ".yarnrc.yml":
            return "yarnrc"

    stripped = content.lstrip()
    if stripped.startswith("{"):
        json_patterns = [
            r'"(?:dev|peer|optional)?[dD]ependencies"\s*:',
            r'"(?:overrides|resolutions|packageManager)"\s*:',
        ]
        for pattern in json_patterns:
            if re.search(pattern, content):
                return "manifest-json"
        return "unknown"

    if re.search(r"^packages\s*:\s*$", content, re.MULTILINE) and re.search(
        r"^catalogs?\s*:", content, re.MULTILINE
    ):
        return "pnpm-workspace"

    yaml_patterns = [
        r"^(?:dev|peer|optional)?[dD]ependencies\s*:",
        r"^(?:overrides|resolutions)\s*:",
    ]
    for pattern in yaml_patterns:
        if re.search(pattern, content, re.MULTILINE):
            return "manifest-yaml"

    return "unknown"
