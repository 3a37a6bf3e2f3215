"""Data models for RPC responses and watched entities."""

from pypollsync.models._base import RpcBaseModel
from pypollsync.models.account import AccountSlot, RawPayload, ReadResult, SlotResponse
from pypollsync.models.entity import CallbackHandler, EntityHandler, GroupSnapshot, WatchedEntity

__all__ = [
    "AccountSlot",
    "CallbackHandler",
    "EntityHandler",
    "GroupSnapshot",
    "RawPayload",
    "ReadResult",
    "RpcBaseModel",
    "SlotResponse",
    "WatchedEntity",
]
