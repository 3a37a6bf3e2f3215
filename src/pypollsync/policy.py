"""Update acceptance policy.

This module intentionally contains *no* decoding. It only decides, from
the cached and incoming raw payloads and versions, whether a fresh
response replaces what an entity already holds.
"""

from __future__ import annotations

from pypollsync.models.account import RawPayload


def should_accept_update(
    *,
    cached_payload: RawPayload | None,
    cached_version: int | None,
    incoming_payload: RawPayload,
    incoming_version: int,
) -> bool:
    """Decide whether an incoming response should replace the cached one.

    Policy:
    - Nothing cached yet: accept.
    - Otherwise accept only if the incoming version is not older than the
      cached version *and* the payload bytes differ.
    """
    if cached_payload is None:
        return True
    if cached_version is not None and incoming_version < cached_version:
        return False
    return not incoming_payload.same_bytes(cached_payload)
