"""Cohort-based audience selection over the connection registry."""
from __future__ import annotations

from typing import Dict, Iterable, Optional

from roomcast.registry import ConnectionRegistry
from roomcast.settings import settings


def normalize_cohort(value: Optional[str]) -> str:
    cohort = (value or "").strip().lower()
    return cohort or settings.DEFAULT_COHORT.lower()


def select_by_cohort(
    registry: ConnectionRegistry, cohort: Optional[str], exclude: Iterable[str] = ()
) -> list[str]:
    """Live connection ids whose cohort matches and whose user is not excluded.

    Every device of a matching user is included.
    """
    target = normalize_cohort(cohort)
    excluded = {str(user_id) for user_id in exclude}
    return [
        connection_id
        for connection_id, identity in registry.snapshot()
        if normalize_cohort(identity.cohort) == target and identity.user_id not in excluded
    ]


def group_by_user(registry: ConnectionRegistry, connection_ids: Iterable[str]) -> Dict[str, list[str]]:
    """Group connection ids by user id, dropping connections that are gone."""
    grouped: Dict[str, list[str]] = {}
    for connection_id in connection_ids:
        identity = registry.lookup(connection_id)
        if identity is None:
            continue
        grouped.setdefault(identity.user_id, []).append(connection_id)
    return grouped
