"""npm-flavoured semantic versioning.

Implements the parts of npm's semver that version targeting needs:
strict parsing, precedence, coercion and range matching (``||`` unions,
hyphen ranges, x-ranges, caret, tilde and plain comparators).
"""

import re
from dataclasses import dataclass
from functools import total_ordering

_IDENT = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"
SEMVER_RE = re.compile(
    rf"^[v=\s]*(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)(?:-({_IDENT}))?(?:\+({_IDENT}))?$"
)
PARTIAL_RE = re.compile(
    rf"^[v=\s]*(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?(?:-({_IDENT}))?(?:\+{_IDENT})?$"
)
COERCE_RE = re.compile(r"(?:^|[^\d])(\d{1,16})(?:\.(\d{1,16}))?(?:\.(\d{1,16}))?(?:$|[^\d])")
COMPARATOR_RE = re.compile(r"^(\^|~>?|>=|<=|>|<|=)?\s*(\S*)$")
HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")


def _prerelease_key(prerelease: tuple[str, ...]) -> tuple:
    # Numeric identifiers sort before alphanumeric ones
    return tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in prerelease)


@total_ordering
@dataclass(frozen=True)
class SemVer:
    """A parsed semantic version."""

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    @property
    def sort_key(self) -> tuple:
        return (
            self.major,
            self.minor,
            self.patch,
            0 if self.prerelease else 1,
            _prerelease_key(self.prerelease),
        )

    @property
    def release(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self.sort_key == other.sort_key

    def __lt__(self, other: "SemVer") -> bool:
        return self.sort_key < other.sort_key

    def __hash__(self) -> int:
        return hash(self.sort_key)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        return text


def parse(version: str) -> SemVer | None:
    """Parse a full version string, returning None when it is not valid semver."""
    match = SEMVER_RE.match(version.strip()) if isinstance(version, str) else None
    if not match:
        return None
    major, minor, patch, pre, build = match.groups()
    return SemVer(
        int(major),
        int(minor),
        int(patch),
        tuple(pre.split(".")) if pre else (),
        tuple(build.split(".")) if build else (),
    )


def valid(version: str) -> bool:
    return parse(version) is not None


def coerce(version: str) -> SemVer | None:
    """Pull the first ``X[.Y[.Z]]`` out of arbitrary text, e.g. ``^1.2`` -> 1.2.0."""
    if not isinstance(version, str):
        return None
    match = COERCE_RE.search(version)
    if not match:
        return None
    major, minor, patch = match.groups()
    return SemVer(int(major), int(minor or 0), int(patch or 0))


def compare(a: str, b: str) -> int:
    left, right = parse(a), parse(b)
    if left is None or right is None:
        raise ValueError(f"Invalid version comparison: {a!r} vs {b!r}")
    return (left > right) - (left < right)


def prerelease(version: str) -> tuple[str, ...]:
    parsed = parse(version)
    return parsed.prerelease if parsed else ()


# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------

Comparator = tuple[str, SemVer]


def _is_wild(part: str | None) -> bool:
    return part is None or part in ("x", "X", "*")


def _parse_partial(text: str) -> tuple[int | None, int | None, int | None, tuple[str, ...]]:
    if text in ("", "*", "x", "X"):
        return (None, None, None, ())
    match = PARTIAL_RE.match(text)
    if not match:
        raise ValueError(f"Invalid version in range: {text!r}")
    major, minor, patch, pre = match.groups()
    values = [None if _is_wild(p) else int(p) for p in (major, minor, patch)]
    # Anything after a wildcard is a wildcard too (1.x.3 == 1.x)
    for i in range(1, 3):
        if values[i - 1] is None:
            values[i] = None
    pre_parts = tuple(pre.split(".")) if pre and values[2] is not None else ()
    return (values[0], values[1], values[2], pre_parts)


def _desugar(op: str, text: str) -> list[Comparator]:
    major, minor, patch, pre = _parse_partial(text)

    if op == "^":
        if major is None:
            return []
        lower = SemVer(major, minor or 0, patch or 0, pre)
        if major > 0 or minor is None:
            upper = SemVer(major + 1, 0, 0)
        elif minor > 0 or patch is None:
            upper = SemVer(0, minor + 1, 0)
        else:
            upper = SemVer(0, 0, patch + 1)
        return [(">=", lower), ("<", upper)]

    if op in ("~", "~>"):
        if major is None:
            return []
        lower = SemVer(major, minor or 0, patch or 0, pre)
        if minor is None:
            upper = SemVer(major + 1, 0, 0)
        else:
            upper = SemVer(major, minor + 1, 0)
        return [(">=", lower), ("<", upper)]

    if major is None:
        # "<*" can never match; every other operator with * matches anything
        return [("<", SemVer(0, 0, 0, ("0",)))] if op == "<" else []

    if minor is None or patch is None:
        if op in ("", "="):
            lower = SemVer(major, minor or 0, 0)
            upper = SemVer(major + 1, 0, 0) if minor is None else SemVer(major, minor + 1, 0)
            return [(">=", lower), ("<", upper)]
        if op == ">":
            bumped = SemVer(major + 1, 0, 0) if minor is None else SemVer(major, minor + 1, 0)
            return [(">=", bumped)]
        if op == ">=":
            return [(">=", SemVer(major, minor or 0, 0))]
        if op == "<":
            return [("<", SemVer(major, minor or 0, 0))]
        if op == "<=":
            bumped = SemVer(major + 1, 0, 0) if minor is None else SemVer(major, minor + 1, 0)
            return [("<", bumped)]

    exact = SemVer(major, minor, patch, pre)
    return [(op or "=", exact)]


def _hyphen(lower_text: str, upper_text: str) -> list[Comparator]:
    comparators: list[Comparator] = []
    major, minor, patch, pre = _parse_partial(lower_text)
    if major is not None:
        comparators.append((">=", SemVer(major, minor or 0, patch or 0, pre)))

    major, minor, patch, pre = _parse_partial(upper_text)
    if major is None:
        return comparators
    if minor is None:
        comparators.append(("<", SemVer(major + 1, 0, 0)))
    elif patch is None:
        comparators.append(("<", SemVer(major, minor + 1, 0)))
    else:
        comparators.append(("<=", SemVer(major, minor, patch, pre)))
    return comparators


def _tokens(comparator_set: str) -> list[str]:
    # Glue operators to the version that follows: ">= 1.2.3" -> ">=1.2.3"
    glued = re.sub(r"(\^|~>?|>=|<=|>|<|=)\s+", r"\1", comparator_set.strip())
    return glued.split()


def parse_range(range_text: str) -> list[list[Comparator]]:
    """Parse an npm range into a union of comparator sets.

    Raises:
        ValueError: when the range is not valid npm range syntax
    """
    if not isinstance(range_text, str):
        raise ValueError(f"Invalid range: {range_text!r}")

    sets: list[list[Comparator]] = []
    for part in range_text.split("||"):
        hyphen = HYPHEN_RE.match(part)
        if hyphen:
            sets.append(_hyphen(hyphen.group(1), hyphen.group(2)))
            continue

        comparators: list[Comparator] = []
        for token in _tokens(part):
            match = COMPARATOR_RE.match(token)
            if not match:
                raise ValueError(f"Invalid comparator {token!r} in range {range_text!r}")
            comparators.extend(_desugar(match.group(1) or "", match.group(2)))
        sets.append(comparators)
    return sets


def _test(op: str, version: SemVer, bound: SemVer) -> bool:
    if op == "=":
        return version == bound
    if op == ">":
        return version > bound
    if op == ">=":
        return version >= bound
    if op == "<":
        return version < bound
    if op == "<=":
        return version <= bound
    raise ValueError(f"Unknown operator {op!r}")


def _test_set(comparators: list[Comparator], version: SemVer) -> bool:
    if not all(_test(op, version, bound) for op, bound in comparators):
        return False
    if not version.prerelease:
        return True
    # A prerelease only matches when some comparator opts into the same tuple
    return any(
        bound.prerelease and bound.release == version.release for _, bound in comparators
    )


def satisfies(version: str, range_text: str) -> bool:
    """Return True when ``version`` lies in ``range_text``; invalid input never matches."""
    parsed = parse(version)
    if parsed is None:
        return False
    try:
        sets = parse_range(range_text)
    except ValueError:
        return False
    return any(_test_set(comparators, parsed) for comparators in sets)


def valid_range(range_text: str) -> bool:
    try:
        parse_range(range_text)
    except ValueError:
        return False
    return True


def max_satisfying(versions: list[str], range_text: str) -> str | None:
    """Highest version in ``versions`` that satisfies ``range_text``."""
    try:
        sets = parse_range(range_text)
    except ValueError:
        return None

    best: tuple[SemVer, str] | None = None
    for candidate in versions:
        parsed = parse(candidate)
        if parsed is None:
            continue
        if not any(_test_set(comparators, parsed) for comparators in sets):
            continue
        if best is None or parsed > best[0]:
            best = (parsed, candidate)
    return best[1] if best else None
