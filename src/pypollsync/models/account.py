"""Models for ``getMultipleAccounts`` responses."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from pypollsync._constants import SUPPORTED_ENCODINGS
from pypollsync.exceptions import PayloadDecodeError
from pypollsync.models._base import RpcBaseModel


class RawPayload(BaseModel):
    """Opaque account bytes as delivered by the RPC node.

    The node sends account data as ``["<text>", "<encoding>"]``; both the
    list form and a ``{"data": ..., "encoding": ...}`` mapping are accepted.

    Parameters
    ----------
    data : str
        Encoded account bytes.
    encoding : str
        Encoding tag (``"base64"``).
    """

    model_config = ConfigDict(frozen=True)

    data: str
    encoding: str = "base64"

    @model_validator(mode="before")
    @classmethod
    def _from_pair(cls, values: Any) -> Any:
        if isinstance(values, (list, tuple)):
            if len(values) != 2:
                raise ValueError(f"account data must be a [data, encoding] pair, got {len(values)} items")
            return {"data": values[0], "encoding": values[1]}
        return values

    def as_bytes(self) -> bytes:
        """Decode the payload text into raw bytes.

        Raises
        ------
        PayloadDecodeError
            If the encoding is unsupported or the text is not valid for it.
        """
        if self.encoding not in SUPPORTED_ENCODINGS:
            raise PayloadDecodeError(f"unsupported account data encoding {self.encoding!r}")
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise PayloadDecodeError(f"account data is not valid {self.encoding}") from exc

    def same_bytes(self, other: RawPayload | None) -> bool:
        """Whether *other* carries byte-for-byte the same payload."""
        if other is None:
            return False
        try:
            return self.as_bytes() == other.as_bytes()
        except PayloadDecodeError:
            return False


class AccountSlot(RpcBaseModel):
    """One non-empty entry of a ``getMultipleAccounts`` value list.

    Parameters
    ----------
    data : RawPayload
        The account bytes and their encoding.
    owner : str or None
        Program owning the account.
    lamports : int or None
        Account balance.
    executable : bool
        Whether the account holds a program.
    rent_epoch : int or None
        Next rent epoch.
    space : int or None
        Allocated data size.
    raw : dict
        Full RPC entry.
    """

    data: RawPayload
    owner: str | None = None
    lamports: int | None = None
    executable: bool = False
    rent_epoch: int | None = None
    space: int | None = None


class ReadResult(BaseModel):
    """Result of one remote read call.

    ``values`` has exactly one entry per requested address, in request
    order; ``None`` marks an address with no account.
    """

    model_config = ConfigDict(frozen=True)

    version: int
    values: list[AccountSlot | None]

    @classmethod
    def from_rpc(cls, result: Any) -> ReadResult:
        """Build from a JSON-RPC ``result`` member (``{"context": {"slot": n}, "value": [...]}``)."""
        if not isinstance(result, dict):
            raise ValueError("result is not an object")
        context = result.get("context")
        if not isinstance(context, dict) or "slot" not in context:
            raise ValueError("result is missing context.slot")
        return cls.model_validate({"version": context["slot"], "values": result.get("value")})


class SlotResponse(BaseModel):
    """One address's response after flattening all calls of a cycle."""

    model_config = ConfigDict(frozen=True)

    version: int
    account: AccountSlot | None = None
