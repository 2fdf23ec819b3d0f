"""Name filters: ``/regex/flags``, simple globs and plain regexes."""

import re

from .errors import ConfigError

SLASH_RE = re.compile(r"^/(.+)/([gimsuy]*)$")
REGEX_META_RE = re.compile(r"[\^$\[\]()\\|+?]")

_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def is_glob(pattern: str) -> bool:
    """A glob contains ``*`` and none of the regex metacharacters."""
    return "*" in pattern and not REGEX_META_RE.search(pattern)


def pattern_to_regex(pattern: str) -> re.Pattern:
    slash = SLASH_RE.match(pattern)
    if slash:
        flags = 0
        for letter in slash.group(2):
            flags |= _FLAGS.get(letter, 0)
        return re.compile(slash.group(1), flags)

    if is_glob(pattern):
        escaped = re.sub(r"[.@/]", lambda m: "\\" + m.group(0), pattern)
        return re.compile("^" + escaped.replace("*", "[^/]*") + "$")

    return re.compile(pattern)


def compile_patterns(patterns: list[str]) -> list[re.Pattern]:
    """Compile patterns, silently dropping the ones that are not valid."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(pattern_to_regex(pattern))
        except re.error:
            continue
    return compiled


def compile_patterns_strict(patterns: list[str]) -> list[re.Pattern]:
    """Compile patterns, raising ConfigError on the first invalid one."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(pattern_to_regex(pattern))
        except re.error as e:
            raise ConfigError(f"Invalid dependency filter pattern: {pattern}") from e
    return compiled


def matches_any(name: str, compiled: list[re.Pattern]) -> bool:
    return any(regex.search(name) for regex in compiled)
