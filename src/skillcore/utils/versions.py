"""Semantic version helpers."""

import re

SEMVER_PATTERN = re.compile(
    r"^(\d+)\.(\d+)\.(\d+)(?:-([a-zA-Z0-9.-]+))?(?:\+([a-zA-Z0-9.-]+))?$"
)

# Lenient form: "v1.2", "1", "2.0.0-rc1"
_LENIENT_PATTERN = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def is_semver(version: str) -> bool:
    """Check whether a string is a strict semantic version.

    Examples:
        >>> is_semver("1.2.3")
        True
        >>> is_semver("1.2")
        False
    """
    return bool(SEMVER_PATTERN.match(version or ""))


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse a version string into (major, minor, patch).

    Missing or unparsable segments are treated as 0.

    Examples:
        >>> parse_version("1.2.3-beta")
        (1, 2, 3)
        >>> parse_version("v2")
        (2, 0, 0)
    """
    match = _LENIENT_PATTERN.match((version or "").strip())
    if not match:
        return (0, 0, 0)
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return (major, minor, patch)


def format_version(parts: tuple[int, int, int]) -> str:
    return ".".join(str(part) for part in parts)


def compare_versions(left: str, right: str) -> int:
    """Compare two versions by their numeric segments.

    Returns:
        -1 if left < right, 0 if equal, 1 if left > right
    """
    a, b = parse_version(left), parse_version(right)
    return (a > b) - (a < b)


def merge_versions(left: str, right: str) -> str:
    """Merge two versions by taking the maximum of each segment.

    Examples:
        >>> merge_versions("1.4.0", "2.0.3")
        '2.4.3'
    """
    a, b = parse_version(left), parse_version(right)
    return format_version((max(a[0], b[0]), max(a[1], b[1]), max(a[2], b[2])))
