"""Decode-by-kind dispatch for account payloads.

Each watched entity carries a ``kind`` tag. The :class:`DecoderRegistry`
maps that tag to a decoder which turns raw account bytes into a typed
value. Decoders may raise for malformed payloads; the reconciler isolates
those failures per entity.
"""

from __future__ import annotations

import hashlib
import struct
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from pydantic import BaseModel

from pypollsync._constants import DISCRIMINATOR_NAMESPACE, DISCRIMINATOR_SIZE
from pypollsync.exceptions import PayloadDecodeError, UnknownKindError

_BYTE_ORDER_CHARS = frozenset("@=<>!")


class Decoder(Protocol):
    """Turns raw account bytes into a value."""

    def decode(self, payload: bytes) -> Any: ...


class _FunctionDecoder:
    __slots__ = ("_fn",)

    def __init__(self, fn: Callable[[bytes], Any]) -> None:
        self._fn = fn

    def decode(self, payload: bytes) -> Any:
        return self._fn(payload)


def capitalize(name: str) -> str:
    """Upper-case the first character only (``"userStats"`` -> ``"UserStats"``)."""
    return name[:1].upper() + name[1:]


def account_discriminator(name: str) -> bytes:
    """Return the 8-byte discriminator that prefixes accounts of type *name*.

    Computed as ``sha256("account:" + Name)[:8]`` where ``Name`` is *name*
    with its first character upper-cased.
    """
    preimage = f"{DISCRIMINATOR_NAMESPACE}{capitalize(name)}".encode()
    return hashlib.sha256(preimage).digest()[:DISCRIMINATOR_SIZE]


class StructDecoder:
    """Fixed-layout decoder built on :mod:`struct`.

    Parameters
    ----------
    name : str
        Account type name, used for the discriminator.
    fmt : str
        :mod:`struct` format of the body. Little-endian (``<``) is assumed
        when no byte-order character is given.
    fields : Sequence[str]
        One name per value unpacked by *fmt*.
    model : type[BaseModel] or None
        When given, the field dict is validated into this model.
    discriminator : bool
        Whether the payload starts with the 8-byte account discriminator.
        Trailing bytes after the body are ignored.
    """

    def __init__(
        self,
        name: str,
        fmt: str,
        fields: Sequence[str],
        *,
        model: type[BaseModel] | None = None,
        discriminator: bool = True,
    ) -> None:
        if not fmt or fmt[0] not in _BYTE_ORDER_CHARS:
            fmt = f"<{fmt}"
        self._struct = struct.Struct(fmt)
        self._fields = tuple(fields)
        unpacked = len(self._struct.unpack(bytes(self._struct.size)))
        if unpacked != len(self._fields):
            raise ValueError(f"format {fmt!r} unpacks {unpacked} values but {len(self._fields)} fields were named")
        self.name = name
        self._model = model
        self._discriminator = account_discriminator(name) if discriminator else b""

    @property
    def size(self) -> int:
        """Minimum payload size in bytes."""
        return len(self._discriminator) + self._struct.size

    def decode(self, payload: bytes) -> Any:
        if len(payload) < self.size:
            raise PayloadDecodeError(f"{self.name} payload is {len(payload)} bytes, expected at least {self.size}")
        offset = len(self._discriminator)
        if offset and payload[:offset] != self._discriminator:
            raise PayloadDecodeError(f"payload is not a {capitalize(self.name)} account (discriminator mismatch)")
        values = dict(zip(self._fields, self._struct.unpack_from(payload, offset), strict=True))
        if self._model is not None:
            return self._model.model_validate(values)
        return values


class DecoderRegistry:
    """Table mapping entity kinds to decoders."""

    def __init__(self, decoders: dict[str, Decoder | Callable[[bytes], Any]] | None = None) -> None:
        self._decoders: dict[str, Decoder] = {}
        for kind, decoder in (decoders or {}).items():
            self.register(kind, decoder)

    def register(self, kind: str, decoder: Decoder | Callable[[bytes], Any]) -> None:
        """Register (or replace) the decoder for *kind*.

        *decoder* is either an object with a ``decode(bytes)`` method or a
        plain callable taking the payload bytes.
        """
        if hasattr(decoder, "decode"):
            self._decoders[kind] = decoder  # type: ignore[assignment]
        elif callable(decoder):
            self._decoders[kind] = _FunctionDecoder(decoder)
        else:
            raise TypeError(f"decoder for {kind!r} must be callable or define decode()")

    def get(self, kind: str) -> Decoder:
        decoder = self._decoders.get(kind)
        if decoder is None:
            raise UnknownKindError(f"no decoder registered for kind {kind!r}", kind=kind)
        return decoder

    def kinds(self) -> list[str]:
        return list(self._decoders)

    def __contains__(self, kind: object) -> bool:
        return kind in self._decoders

    def __len__(self) -> int:
        return len(self._decoders)
