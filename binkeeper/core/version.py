"""
Version string normalization.

Versions are compared by string equality after normalization only. There is
no semantic ordering: a remote rollback or a locally newer build both count
as "different" and trigger an update.
"""


def normalize_version(raw: str) -> str:
    """
    Canonicalize a version string.

    Trims surrounding whitespace and strips a single leading 'v' when it
    prefixes a version number (so 'v1.2.3' and '1.2.3' compare equal).
    Normalization is idempotent.

    Example:
        >>> normalize_version(" v1.2.3\\n")
        '1.2.3'
    """
    version = raw.strip()
    if version[:1] == "v" and version[1:2].isdigit():
        version = version[1:]
    return version


def versions_match(local: str, remote: str) -> bool:
    """Return True if both versions are known and equal after normalization."""
    local = normalize_version(local)
    remote = normalize_version(remote)
    return bool(local) and local == remote
