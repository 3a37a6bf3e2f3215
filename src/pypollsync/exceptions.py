"""Custom exception hierarchy for pypollsync."""

from __future__ import annotations


class PollSyncError(Exception):
    """Base exception for all pypollsync errors."""


class ConfigError(PollSyncError):
    """Invalid or missing configuration."""


class SynchronizerError(PollSyncError):
    """Synchronizer used in an invalid state (not started, no event loop, ...)."""


class TransportError(PollSyncError):
    """Batch read failed at the HTTP level (network, non-200, invalid JSON).

    Transport failures are never isolated per entity: the whole refresh
    cycle fails and the registry is left untouched.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class RpcResponseError(TransportError):
    """The RPC node answered, but with an error member or a malformed result."""

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.code = code
        super().__init__(message, endpoint=endpoint)


class DecodeError(PollSyncError):
    """A single entity's payload could not be turned into a value.

    Routed to the entity's ``on_error`` handler; never aborts a cycle.
    """

    def __init__(
        self,
        message: str,
        *,
        owner_key: str = "",
        kind: str = "",
        address: str = "",
    ) -> None:
        self.owner_key = owner_key
        self.kind = kind
        self.address = address
        super().__init__(message)


class MissingAccountError(DecodeError):
    """The remote service returned the absent marker for a watched address."""


class PayloadDecodeError(DecodeError):
    """Payload bytes could not be recovered or do not match the expected layout."""


class UnknownKindError(DecodeError):
    """No decoder is registered for the entity's kind."""


class EntityDecodeError(DecodeError):
    """The kind's decoder raised while decoding the payload.

    The decoder's exception is chained as ``__cause__``.
    """
