"""Utility modules for skillcore."""

from skillcore.utils.responses import create_error_response, create_success_response
from skillcore.utils.versions import (
    compare_versions,
    is_semver,
    merge_versions,
    parse_version,
)

__all__ = [
    "create_success_response",
    "create_error_response",
    "compare_versions",
    "is_semver",
    "merge_versions",
    "parse_version",
]
