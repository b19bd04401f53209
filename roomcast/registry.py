"""Registry of live connections and the identity each one declared."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from roomcast.settings import settings


@dataclass(frozen=True)
class Identity:
    user_id: str
    display_name: str
    role: str = "student"
    cohort: str = settings.DEFAULT_COHORT

    @property
    def is_student(self) -> bool:
        return self.role == "student"


class ConnectionRegistry:
    """Maps connection ids to identities.

    One entry per live socket; a user may hold several entries (one per
    device). Scans iterate over a snapshot, so registering or removing a
    connection while a scan is suspended never breaks the scan.
    """

    def __init__(self) -> None:
        self._identities: Dict[str, Identity] = {}

    def register(self, connection_id: str, identity: Identity) -> None:
        self._identities[connection_id] = identity

    def lookup(self, connection_id: str) -> Optional[Identity]:
        return self._identities.get(connection_id)

    def remove(self, connection_id: str) -> Optional[Identity]:
        return self._identities.pop(connection_id, None)

    def snapshot(self) -> list[tuple[str, Identity]]:
        return list(self._identities.items())

    def for_each(self, visitor: Callable[[str, Identity], None]) -> None:
        for connection_id, identity in self.snapshot():
            visitor(connection_id, identity)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._identities

    def __len__(self) -> int:
        return len(self._identities)
