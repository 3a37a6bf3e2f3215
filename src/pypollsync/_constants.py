"""Internal constants shared across the library."""

USER_AGENT = "pypollsync/0.1"
RPC_METHOD = "getMultipleAccounts"

#: Largest address list a single ``getMultipleAccounts`` call accepts.
MAX_KEYS = 100
CHUNKS_PER_BATCH = 10
BATCHES_PER_WAVE = 5
WAVE_STAGGER_MS = 1000
POLLING_INTERVAL_MS = 1000

#: Successor of the legacy ``"recent"`` commitment level.
DEFAULT_COMMITMENT = "processed"
VALID_COMMITMENTS: frozenset[str] = frozenset({"processed", "confirmed", "finalized"})

#: Encodings a ``getMultipleAccounts`` response may carry that we can decode.
SUPPORTED_ENCODINGS: frozenset[str] = frozenset({"base64"})

#: Prefix hashed with the capitalized account name to build an account discriminator.
DISCRIMINATOR_NAMESPACE = "account:"
DISCRIMINATOR_SIZE = 8
