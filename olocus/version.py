"""
Olocus - Version Management
=============================
Versione del package e versione di protocollo supportata.

Security Level: LOW
Last Updated: 2026-10-19
Version: 1.0.0
"""

from typing import NamedTuple

from olocus.constants import PROTOCOL_VERSION_MAJOR, PROTOCOL_VERSION_MINOR


class VersionInfo(NamedTuple):
    """Package version (Semantic Versioning)"""
    major: int
    minor: int
    patch: int
    prerelease: str = ""


VERSION = VersionInfo(major=1, minor=0, patch=0)


def get_version_string() -> str:
    """
    Example:
        >>> get_version_string()
        '1.0.0'
    """
    version_str = f"{VERSION.major}.{VERSION.minor}.{VERSION.patch}"
    if VERSION.prerelease:
        version_str += f"-{VERSION.prerelease}"
    return version_str


def get_protocol_version_string() -> str:
    """Versione wire protocol (major.minor)"""
    return f"{PROTOCOL_VERSION_MAJOR}.{PROTOCOL_VERSION_MINOR}"


def get_build_info() -> dict:
    return {
        "version": get_version_string(),
        "protocol_version": get_protocol_version_string(),
    }


__version__ = get_version_string()
__version_info__ = VERSION

__all__ = [
    "__version__",
    "__version_info__",
    "VERSION",
    "get_version_string",
    "get_protocol_version_string",
    "get_build_info",
]
