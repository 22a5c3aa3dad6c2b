"""Helpers for comparing the binary version against installed packages."""

from __future__ import annotations

from packaging.version import InvalidVersion, Version


__all__ = [
    "compare_versions",
    "is_binary_newer",
    "is_same_binary_version",
]


def compare_versions(current_version: str, candidate: str) -> int:
    """Compare ``candidate`` against ``current_version``.

    Returns ``1`` when ``candidate`` is newer, ``-1`` when it is older and ``0``
    when the versions are equivalent.  Strings that are not PEP 440 versions
    (``1.0-build7``, ``2024.1.x``) are compared token by token instead.
    """

    if candidate == current_version:
        return 0

    try:
        candidate_version = Version(candidate)
        current_version_parsed = Version(current_version)
    except InvalidVersion:
        return _tokenized_compare(current_version, candidate)

    if candidate_version == current_version_parsed:
        return 0
    if candidate_version > current_version_parsed:
        return 1
    return -1


def is_same_binary_version(package_app_version: str | None, binary_version: str) -> bool:
    """Return ``True`` when a package was installed for ``binary_version``.

    Packages without a recorded app version are assumed to match.
    """

    if not package_app_version:
        return True
    return compare_versions(package_app_version, binary_version) == 0


def is_binary_newer(package_app_version: str | None, binary_version: str) -> bool:
    if not package_app_version:
        return False
    return compare_versions(package_app_version, binary_version) > 0


def _tokenized_compare(current_version: str, candidate: str) -> int:
    def tokenize(version: str) -> list[tuple[int, object]]:
        tokens: list[tuple[int, object]] = []
        for raw in version.replace("-", ".").replace("+", ".").split("."):
            if not raw:
                continue
            if raw.isdigit():
                tokens.append((0, int(raw)))
            else:
                tokens.append((1, raw.lower()))
        return tokens

    current_tokens = tokenize(current_version)
    candidate_tokens = tokenize(candidate)
    length = max(len(current_tokens), len(candidate_tokens))
    for index in range(length):
        current_token = current_tokens[index] if index < len(current_tokens) else (0, 0)
        candidate_token = candidate_tokens[index] if index < len(candidate_tokens) else (0, 0)
        if candidate_token != current_token:
            return 1 if candidate_token > current_token else -1
    return 0
