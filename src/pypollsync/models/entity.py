"""Watched entity types and update handlers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pypollsync.models.account import RawPayload


class EntityHandler(Protocol):
    """Receives change notifications for one watched entity."""

    def on_update(self, value: Any) -> None: ...

    def on_error(self, error: Exception) -> None: ...


class CallbackHandler:
    """Adapts a pair of plain callables to :class:`EntityHandler`.

    Without an ``on_error`` callable decode errors are dropped; the
    reconciler still logs them at DEBUG level.
    """

    __slots__ = ("_on_update", "_on_error")

    def __init__(
        self,
        on_update: Callable[[Any], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._on_update = on_update
        self._on_error = on_error

    def on_update(self, value: Any) -> None:
        self._on_update(value)

    def on_error(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)


@dataclass(slots=True)
class WatchedEntity:
    """One remote record tracked by the synchronizer.

    ``last_payload``, ``last_version`` and ``last_decoded`` stay ``None``
    until the first accepted update and are written only by the reconciler.
    """

    owner_key: str
    kind: str
    address: str
    handler: EntityHandler
    last_payload: RawPayload | None = None
    last_version: int | None = None
    last_decoded: Any = None


@dataclass(frozen=True, slots=True)
class GroupSnapshot:
    """An owner group as captured at cycle start."""

    owner_key: str
    entities: tuple[WatchedEntity, ...]

    @property
    def addresses(self) -> list[str]:
        return [entity.address for entity in self.entities]

    def __len__(self) -> int:
        return len(self.entities)
