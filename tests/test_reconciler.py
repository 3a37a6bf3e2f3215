from __future__ import annotations

import base64
import logging
from typing import Any

import pytest

from pypollsync.decoding import DecoderRegistry
from pypollsync.exceptions import (
    DecodeError,
    EntityDecodeError,
    MissingAccountError,
    RpcResponseError,
    UnknownKindError,
)
from pypollsync.models.account import AccountSlot, RawPayload, SlotResponse
from pypollsync.reconciler import Reconciler
from pypollsync.registry import EntityRegistry


class _Recorder:
    def __init__(self) -> None:
        self.updates: list[Any] = []
        self.errors: list[Exception] = []

    def on_update(self, value: Any) -> None:
        self.updates.append(value)

    def on_error(self, error: Exception) -> None:
        self.errors.append(error)


def _slot(data: bytes | None, version: int) -> SlotResponse:
    if data is None:
        return SlotResponse(version=version, account=None)
    payload = RawPayload(data=base64.b64encode(data).decode(), encoding="base64")
    return SlotResponse(version=version, account=AccountSlot(data=payload))


def _text_decoder(payload: bytes) -> str:
    return payload.decode("ascii")


def _strict_decoder(payload: bytes) -> str:
    if not payload.startswith(b"ok"):
        raise ValueError("bad layout")
    return payload.decode("ascii")


def _setup(*kinds: str) -> tuple[EntityRegistry, Reconciler, dict[str, _Recorder]]:
    registry = EntityRegistry()
    decoders = DecoderRegistry({"text": _text_decoder, "strict": _strict_decoder})
    recorders: dict[str, _Recorder] = {}
    for kind in kinds:
        recorders[kind] = _Recorder()
        registry.register("o1", kind, f"addr-{kind}", recorders[kind])
    return registry, Reconciler(registry, decoders), recorders


def test_identical_payloads_fire_one_update() -> None:
    registry, reconciler, rec = _setup("text")

    reconciler.reconcile(registry.snapshot(), [_slot(b"P1", 10)])
    report = reconciler.reconcile(registry.snapshot(), [_slot(b"P1", 11)])

    assert rec["text"].updates == ["P1"]
    assert report.unchanged == 1
    entity = registry.get("o1", "text")
    assert entity is not None
    assert entity.last_version == 10


def test_older_version_is_rejected_even_with_new_bytes() -> None:
    registry, reconciler, rec = _setup("text")

    reconciler.reconcile(registry.snapshot(), [_slot(b"P1", 10)])
    report = reconciler.reconcile(registry.snapshot(), [_slot(b"P2", 9)])

    assert rec["text"].updates == ["P1"]
    assert report.stale == 1
    entity = registry.get("o1", "text")
    assert entity is not None
    assert entity.last_decoded == "P1"
    assert entity.last_version == 10


def test_accepted_update_overwrites_cache() -> None:
    registry, reconciler, rec = _setup("text")

    reconciler.reconcile(registry.snapshot(), [_slot(b"P1", 10)])
    reconciler.reconcile(registry.snapshot(), [_slot(b"P2", 12)])

    entity = registry.get("o1", "text")
    assert entity is not None
    assert entity.last_decoded == "P2"
    assert entity.last_version == 12
    assert entity.last_payload is not None and entity.last_payload.as_bytes() == b"P2"
    assert rec["text"].updates == ["P1", "P2"]


def test_decode_errors_are_isolated_per_entity() -> None:
    registry = EntityRegistry()
    decoders = DecoderRegistry({"strict": _strict_decoder})
    good, bad_layout, missing = _Recorder(), _Recorder(), _Recorder()
    registry.register("o1", "strict", "a", good)
    registry.register("o2", "strict", "b", bad_layout)
    registry.register("o3", "strict", "c", missing)
    reconciler = Reconciler(registry, decoders)

    report = reconciler.reconcile(
        registry.snapshot(),
        [_slot(b"ok-1", 5), _slot(b"garbage", 5), _slot(None, 5)],
    )

    assert good.updates == ["ok-1"]
    assert len(bad_layout.errors) == 1
    assert isinstance(bad_layout.errors[0], EntityDecodeError)
    assert isinstance(bad_layout.errors[0].__cause__, ValueError)
    assert len(missing.errors) == 1
    assert isinstance(missing.errors[0], MissingAccountError)
    assert missing.errors[0].owner_key == "o3"
    assert missing.errors[0].address == "c"
    assert report.errors == 2
    assert report.updated == 1

    failed = registry.get("o2", "strict")
    assert failed is not None
    assert failed.last_payload is None


def test_decode_error_keeps_previous_cached_value() -> None:
    registry = EntityRegistry()
    rec = _Recorder()
    registry.register("o1", "strict", "a", rec)
    reconciler = Reconciler(registry, DecoderRegistry({"strict": _strict_decoder}))

    reconciler.reconcile(registry.snapshot(), [_slot(b"ok-1", 1)])
    reconciler.reconcile(registry.snapshot(), [_slot(b"broken", 2)])

    entity = registry.get("o1", "strict")
    assert entity is not None
    assert entity.last_decoded == "ok-1"
    assert entity.last_version == 1
    assert rec.updates == ["ok-1"]
    assert len(rec.errors) == 1


def test_unknown_kind_routes_to_on_error() -> None:
    registry = EntityRegistry()
    rec = _Recorder()
    registry.register("o1", "mystery", "a", rec)
    reconciler = Reconciler(registry, DecoderRegistry())

    reconciler.reconcile(registry.snapshot(), [_slot(b"x", 1)])

    assert len(rec.errors) == 1
    error = rec.errors[0]
    assert isinstance(error, UnknownKindError)
    assert isinstance(error, DecodeError)
    assert error.kind == "mystery"
    assert error.address == "a"


def test_removed_group_gets_direct_update_without_caching() -> None:
    registry, reconciler, rec = _setup("text", "strict")
    snapshot = registry.snapshot()

    # Group removed after dispatch, before reconciliation.
    registry.unregister_group("o1")
    report = reconciler.reconcile(snapshot, [_slot(b"T1", 3), _slot(b"ok", 3)])

    assert rec["text"].updates == ["T1"]
    assert rec["strict"].updates == ["ok"]
    assert report.detached == 2
    assert registry.has_group("o1") is False
    assert registry.list_owners() == []


def test_reregistered_kind_with_new_address_is_not_overwritten() -> None:
    registry, reconciler, rec = _setup("text")
    snapshot = registry.snapshot()

    registry.unregister("o1", "text")
    fresh = _Recorder()
    registry.register("o1", "text", "addr-moved", fresh)
    reconciler.reconcile(snapshot, [_slot(b"old-address", 4)])

    assert rec["text"].updates == ["old-address"]
    assert fresh.updates == []
    entity = registry.get("o1", "text")
    assert entity is not None
    assert entity.last_payload is None


def test_offsets_follow_group_sizes() -> None:
    registry = EntityRegistry()
    recorders = [_Recorder() for _ in range(5)]
    registry.register("o1", "a", "x0", recorders[0])
    registry.register("o1", "b", "x1", recorders[1])
    registry.register("o2", "a", "x2", recorders[2])
    registry.register("o3", "a", "x3", recorders[3])
    registry.register("o3", "b", "x4", recorders[4])
    reconciler = Reconciler(registry, DecoderRegistry({"a": _text_decoder, "b": _text_decoder}))

    reconciler.reconcile(registry.snapshot(), [_slot(f"v{i}".encode(), 1) for i in range(5)])

    assert [r.updates for r in recorders] == [["v0"], ["v1"], ["v2"], ["v3"], ["v4"]]


def test_handler_exception_does_not_abort_cycle(caplog: pytest.LogCaptureFixture) -> None:
    registry = EntityRegistry()

    class _Exploding(_Recorder):
        def on_update(self, value: Any) -> None:
            raise RuntimeError("consumer bug")

    after = _Recorder()
    registry.register("o1", "text", "a", _Exploding())
    registry.register("o2", "text", "b", after)
    reconciler = Reconciler(registry, DecoderRegistry({"text": _text_decoder}))

    with caplog.at_level(logging.WARNING, logger="pypollsync.reconciler"):
        reconciler.reconcile(registry.snapshot(), [_slot(b"1", 1), _slot(b"2", 1)])

    assert after.updates == ["2"]
    # The exploding consumer still had its update cached.
    entity = registry.get("o1", "text")
    assert entity is not None
    assert entity.last_decoded == "1"

    records = [r for r in caplog.records if r.getMessage() == "on_update handler raised"]
    assert len(records) == 1
    assert records[0].levelno == logging.WARNING
    assert records[0].exc_info is not None
    assert isinstance(records[0].exc_info[1], RuntimeError)


def test_slot_count_mismatch_raises_without_applying() -> None:
    registry, reconciler, rec = _setup("text")
    with pytest.raises(RpcResponseError):
        reconciler.reconcile(registry.snapshot(), [])
    assert rec["text"].updates == []


def test_non_canonical_encoding_of_same_bytes_is_unchanged() -> None:
    registry = EntityRegistry()
    reconciler = Reconciler(registry, DecoderRegistry({"raw": lambda payload: payload}))
    recorder = _Recorder()
    registry.register("o1", "raw", "addr-raw", recorder)

    def _encoded(text: str, version: int) -> SlotResponse:
        return SlotResponse(version=version, account=AccountSlot(data=RawPayload(data=text, encoding="base64")))

    reconciler.reconcile(registry.snapshot(), [_encoded("AA==", 1)])
    report = reconciler.reconcile(registry.snapshot(), [_encoded("AB==", 2)])

    assert recorder.updates == [b"\x00"]
    assert report.unchanged == 1
    entity = registry.get("o1", "raw")
    assert entity is not None
    assert entity.last_version == 1
