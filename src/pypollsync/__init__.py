"""pypollsync - Async batched polling synchronizer for remote account data."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pypollsync")
except PackageNotFoundError:
    __version__ = "0+local"
from pypollsync._transport import JsonRpcTransport, ReadTransport
from pypollsync.config import SyncConfig
from pypollsync.decoding import Decoder, DecoderRegistry, StructDecoder, account_discriminator
from pypollsync.dispatcher import BatchDispatcher, DispatchPlan, plan_dispatch
from pypollsync.exceptions import (
    ConfigError,
    DecodeError,
    EntityDecodeError,
    MissingAccountError,
    PayloadDecodeError,
    PollSyncError,
    RpcResponseError,
    SynchronizerError,
    TransportError,
    UnknownKindError,
)
from pypollsync.models import (
    AccountSlot,
    CallbackHandler,
    EntityHandler,
    GroupSnapshot,
    RawPayload,
    ReadResult,
    SlotResponse,
    WatchedEntity,
)
from pypollsync.reconciler import CycleReport, Reconciler
from pypollsync.registry import EntityRegistry
from pypollsync.synchronizer import PollSynchronizer

__all__ = [
    "__version__",
    "AccountSlot",
    "BatchDispatcher",
    "CallbackHandler",
    "ConfigError",
    "CycleReport",
    "DecodeError",
    "Decoder",
    "DecoderRegistry",
    "DispatchPlan",
    "EntityDecodeError",
    "EntityHandler",
    "EntityRegistry",
    "GroupSnapshot",
    "JsonRpcTransport",
    "MissingAccountError",
    "PayloadDecodeError",
    "PollSyncError",
    "PollSynchronizer",
    "RawPayload",
    "ReadResult",
    "ReadTransport",
    "Reconciler",
    "RpcResponseError",
    "SlotResponse",
    "StructDecoder",
    "SyncConfig",
    "SynchronizerError",
    "TransportError",
    "UnknownKindError",
    "WatchedEntity",
    "account_discriminator",
    "plan_dispatch",
]
