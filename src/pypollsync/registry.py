"""In-memory registry of watched entities.

Entities are grouped by owner key and kept in insertion order at both
levels. That order is what lets a cycle line up anonymous response slots
with the entities that requested them.
"""

from __future__ import annotations

from pypollsync.models.entity import EntityHandler, GroupSnapshot, WatchedEntity


class EntityRegistry:
    """Owner key -> kind -> :class:`WatchedEntity`.

    No operation here performs network I/O.
    """

    def __init__(self) -> None:
        self._groups: dict[str, dict[str, WatchedEntity]] = {}

    def register(self, owner_key: str, kind: str, address: str, handler: EntityHandler) -> bool:
        """Start watching *address* as *kind* under *owner_key*.

        Returns ``False`` (and keeps the existing entity untouched) when the
        ``(owner_key, kind)`` pair is already registered.
        """
        group = self._groups.setdefault(owner_key, {})
        if kind in group:
            return False
        group[kind] = WatchedEntity(owner_key=owner_key, kind=kind, address=address, handler=handler)
        return True

    def unregister(self, owner_key: str, kind: str) -> bool:
        group = self._groups.get(owner_key)
        if group is None or kind not in group:
            return False
        del group[kind]
        if not group:
            del self._groups[owner_key]
        return True

    def unregister_group(self, owner_key: str) -> bool:
        return self._groups.pop(owner_key, None) is not None

    def has_group(self, owner_key: str) -> bool:
        return owner_key in self._groups

    def list_owners(self) -> list[str]:
        return list(self._groups)

    def get(self, owner_key: str, kind: str) -> WatchedEntity | None:
        group = self._groups.get(owner_key)
        if group is None:
            return None
        return group.get(kind)

    def clear(self) -> None:
        self._groups = {}

    def snapshot(self) -> list[GroupSnapshot]:
        """Capture the current groups for one refresh cycle.

        The returned tuples are detached from the registry's dicts, so later
        (un)registrations do not change a snapshot already being processed.
        The entities themselves are shared.
        """
        return [
            GroupSnapshot(owner_key=owner_key, entities=tuple(group.values()))
            for owner_key, group in self._groups.items()
            if group
        ]

    def address_count(self) -> int:
        return sum(len(group) for group in self._groups.values())

    def __len__(self) -> int:
        return self.address_count()

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, tuple) or len(item) != 2:
            return False
        owner_key, kind = item
        return self.get(owner_key, kind) is not None
