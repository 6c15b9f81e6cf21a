from __future__ import annotations

from typing import Iterable

from app.zeus.core.error_catalog import AppError, ErrorCatalog

GROUP_NAME_MAX_LENGTH = 255


def normalize_groups(groups: Iterable[str] | None) -> frozenset[str]:
    """Collapse an admin-supplied group list into a whitelist.

    Surrounding whitespace is stripped and duplicates collapse. Blank or
    oversized names are rejected rather than dropped so a typo never widens
    a whitelist silently.
    """
    if not groups:
        return frozenset()
    normalized = set()
    for index, name in enumerate(groups):
        if not isinstance(name, str) or not name.strip():
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"field": f"groups.{index}", "message": "group name must not be blank"},
            )
        name = name.strip()
        if len(name) > GROUP_NAME_MAX_LENGTH:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={
                    "field": f"groups.{index}",
                    "message": f"group name exceeds {GROUP_NAME_MAX_LENGTH} characters",
                },
            )
        normalized.add(name)
    return frozenset(normalized)


def groups_match(allowed_groups: Iterable[str], caller_groups: Iterable[str] | None) -> bool:
    """Empty whitelist admits everyone; otherwise at least one exact, case-sensitive shared name."""
    allowed = frozenset(allowed_groups)
    if not allowed:
        return True
    caller = frozenset(caller_groups or ())
    if not caller:
        return False
    return not allowed.isdisjoint(caller)
