"""
Parsing of operator-supplied mapping resolutions for the command line.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import MappingKind, Resolution

if TYPE_CHECKING:
    from collections.abc import Sequence


def parse_resolution(pattern: str) -> Resolution:
    """Parse a resolution pattern of the form "kind:source_value=dest_value".

    The kind is split off at the first ":" and the source value ends at the
    first "=", so destination values may contain either character.

    Examples:
        "status:Open=to do", "priority:High=high", "assignee:1203=48213"
    """
    if ":" not in pattern or "=" not in pattern:
        msg = f"Invalid resolution format: {pattern} (expected kind:source=destination)"
        raise ValueError(msg)

    kind_name, rest = pattern.split(":", 1)
    source_value, dest_value = rest.split("=", 1)

    try:
        kind = MappingKind(kind_name.strip().lower())
    except ValueError:
        kinds = ", ".join(k.value for k in MappingKind)
        msg = f"Invalid mapping kind '{kind_name}' in {pattern} (expected one of: {kinds})"
        raise ValueError(msg) from None

    if not source_value:
        msg = f"Empty source value in resolution: {pattern}"
        raise ValueError(msg)
    if not dest_value:
        msg = f"Empty destination value in resolution: {pattern}"
        raise ValueError(msg)

    return Resolution(kind=kind, source_value=source_value, dest_value=dest_value)


def parse_resolutions(patterns: Sequence[str] | None) -> list[Resolution]:
    """Parse every pattern. A later pattern for the same kind and source value wins."""
    by_key: dict[tuple[MappingKind, str], Resolution] = {}
    for pattern in patterns or []:
        resolution = parse_resolution(pattern)
        by_key[(resolution.kind, resolution.source_value)] = resolution
    return list(by_key.values())
