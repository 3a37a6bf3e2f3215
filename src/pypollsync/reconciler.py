"""Map a cycle's responses back onto watched entities.

The remote service does not echo addresses, so responses are matched
purely by position: the reconciler walks the same group/entity order the
dispatcher flattened, with a running offset into the response list.

For each entity the payload is decoded first. Decode failures go to the
entity's ``on_error`` and never abort the walk. A decoded value is then
either delivered directly (the entity vanished from the registry while the
cycle was in flight), cached and delivered (accepted update), or dropped
(stale or unchanged).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pypollsync.decoding import DecoderRegistry
from pypollsync.exceptions import DecodeError, EntityDecodeError, MissingAccountError, RpcResponseError
from pypollsync.models.account import RawPayload, SlotResponse
from pypollsync.models.entity import EntityHandler, GroupSnapshot, WatchedEntity
from pypollsync.policy import should_accept_update
from pypollsync.registry import EntityRegistry

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CycleReport:
    """Per-cycle outcome counts."""

    updated: int = 0
    unchanged: int = 0
    stale: int = 0
    errors: int = 0
    detached: int = 0

    @property
    def total(self) -> int:
        return self.updated + self.unchanged + self.stale + self.errors + self.detached


def _attach_context(exc: DecodeError, entity: WatchedEntity) -> None:
    exc.owner_key = exc.owner_key or entity.owner_key
    exc.kind = exc.kind or entity.kind
    exc.address = exc.address or entity.address


class Reconciler:
    """Applies flattened slot responses to the live registry."""

    def __init__(self, registry: EntityRegistry, decoders: DecoderRegistry) -> None:
        self._registry = registry
        self._decoders = decoders

    def reconcile(self, groups: Sequence[GroupSnapshot], slots: Sequence[SlotResponse]) -> CycleReport:
        """Apply *slots* to the entities of *groups*.

        Raises
        ------
        RpcResponseError
            If the number of slots does not match the number of entities;
            nothing is applied in that case.
        """
        expected = sum(len(group) for group in groups)
        if len(slots) != expected:
            raise RpcResponseError(f"got {len(slots)} responses for {expected} watched addresses")

        report = CycleReport()
        offset = 0
        for group in groups:
            for position, entity in enumerate(group.entities):
                self._reconcile_entity(entity, slots[offset + position], report)
            offset += len(group)
        return report

    def decode(self, entity: WatchedEntity, slot: SlotResponse) -> tuple[RawPayload, Any]:
        """Decode *slot* with the decoder registered for *entity*'s kind.

        Raises
        ------
        DecodeError
            Any failure, tagged with the entity's owner, kind and address.
        """
        try:
            account = slot.account
            if account is None:
                raise MissingAccountError(f"no account found at {entity.address}")
            decoder = self._decoders.get(entity.kind)
            payload_bytes = account.data.as_bytes()
            try:
                value = decoder.decode(payload_bytes)
            except DecodeError:
                raise
            except Exception as exc:
                raise EntityDecodeError(f"failed to decode {entity.kind!r} at {entity.address}: {exc}") from exc
        except DecodeError as exc:
            _attach_context(exc, entity)
            raise
        return account.data, value

    def _reconcile_entity(self, entity: WatchedEntity, slot: SlotResponse, report: CycleReport) -> None:
        try:
            payload, value = self.decode(entity, slot)
        except DecodeError as exc:
            report.errors += 1
            _logger.debug("Decode failed for %s/%s: %s", entity.owner_key, entity.kind, exc)
            self._notify_error(entity.handler, exc)
            return

        live = self._live_entity(entity)
        if live is None:
            # Unregistered while the cycle was in flight: nothing to cache into.
            report.detached += 1
            self._notify_update(entity.handler, value)
            return

        if not should_accept_update(
            cached_payload=live.last_payload,
            cached_version=live.last_version,
            incoming_payload=payload,
            incoming_version=slot.version,
        ):
            if live.last_version is not None and slot.version < live.last_version:
                report.stale += 1
            else:
                report.unchanged += 1
            return

        live.last_payload = payload
        live.last_version = slot.version
        live.last_decoded = value
        report.updated += 1
        self._notify_update(live.handler, value)

    def _live_entity(self, entity: WatchedEntity) -> WatchedEntity | None:
        if not self._registry.has_group(entity.owner_key):
            return None
        live = self._registry.get(entity.owner_key, entity.kind)
        # Re-registered under the same kind with another address: this slot is not its data.
        if live is None or live.address != entity.address:
            return None
        return live

    @staticmethod
    def _notify_update(handler: EntityHandler, value: Any) -> None:
        try:
            handler.on_update(value)
        except Exception:
            _logger.warning("on_update handler raised", exc_info=True)

    @staticmethod
    def _notify_error(handler: EntityHandler, error: DecodeError) -> None:
        try:
            handler.on_error(error)
        except Exception:
            _logger.warning("on_error handler raised", exc_info=True)
