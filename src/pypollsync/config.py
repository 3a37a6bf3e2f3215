"""Synchronizer configuration for pypollsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pypollsync._constants import (
    BATCHES_PER_WAVE,
    CHUNKS_PER_BATCH,
    DEFAULT_COMMITMENT,
    MAX_KEYS,
    POLLING_INTERVAL_MS,
    VALID_COMMITMENTS,
    WAVE_STAGGER_MS,
)
from pypollsync.exceptions import ConfigError

# Pre-1.9 RPC commitment names still accepted by some callers.
_LEGACY_COMMITMENTS: dict[str, str] = {
    "recent": "processed",
    "single": "confirmed",
    "singleGossip": "confirmed",
    "max": "finalized",
    "root": "finalized",
}


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Synchronizer configuration.

    Parameters
    ----------
    rpc_url : str
        JSON-RPC endpoint used by the default transport. May embed an API
        key; it is redacted from logs.
    polling_interval_ms : int
        Interval between timer-driven refresh cycles.
    max_keys_per_call : int
        Largest number of addresses sent in one remote read call.
    chunks_per_batch : int
        Number of calls bundled into one JSON-RPC batch envelope.
    batches_per_wave : int
        Number of envelopes issued concurrently in one dispatch wave.
    wave_stagger_ms : int
        Delay between the start of consecutive waves.
    commitment : str
        Consistency level passed with every read. Legacy names
        (``"recent"``, ``"max"``, ...) are mapped to their current names.
    request_timeout_s : float
        Total timeout of one HTTP request.
    rpc_trace_enabled : bool
        Log (redacted) request and response bodies at DEBUG level.
    """

    rpc_url: str = "http://127.0.0.1:8899"
    polling_interval_ms: int = POLLING_INTERVAL_MS
    max_keys_per_call: int = MAX_KEYS
    chunks_per_batch: int = CHUNKS_PER_BATCH
    batches_per_wave: int = BATCHES_PER_WAVE
    wave_stagger_ms: int = WAVE_STAGGER_MS
    commitment: str = DEFAULT_COMMITMENT
    request_timeout_s: float = 30.0
    rpc_trace_enabled: bool = False

    def __post_init__(self) -> None:
        for name in ("polling_interval_ms", "max_keys_per_call", "chunks_per_batch", "batches_per_wave"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")
        if not isinstance(self.wave_stagger_ms, int) or self.wave_stagger_ms < 0:
            raise ConfigError(f"wave_stagger_ms must be a non-negative integer, got {self.wave_stagger_ms!r}")
        if self.request_timeout_s <= 0:
            raise ConfigError(f"request_timeout_s must be positive, got {self.request_timeout_s!r}")
        if not self.rpc_url.strip():
            raise ConfigError("rpc_url must be non-empty")

        commitment = _LEGACY_COMMITMENTS.get(self.commitment, self.commitment)
        if commitment not in VALID_COMMITMENTS:
            allowed = ", ".join(sorted(VALID_COMMITMENTS))
            raise ConfigError(f"commitment must be one of {allowed}, got {self.commitment!r}")
        # Frozen dataclass: normalize in place.
        object.__setattr__(self, "commitment", commitment)

    @property
    def polling_interval(self) -> float:
        """Polling interval in seconds."""
        return self.polling_interval_ms / 1000.0

    @property
    def wave_stagger(self) -> float:
        """Wave stagger in seconds."""
        return self.wave_stagger_ms / 1000.0

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from ``POLLSYNC_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SyncConfig
            Populated configuration.

        Raises
        ------
        ConfigError
            If a numeric variable cannot be parsed or a value is invalid.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        for env_key, field_name in (("POLLSYNC_RPC_URL", "rpc_url"), ("POLLSYNC_COMMITMENT", "commitment")):
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        _ENV_INT_MAP = {
            "POLLSYNC_POLLING_INTERVAL_MS": "polling_interval_ms",
            "POLLSYNC_MAX_KEYS": "max_keys_per_call",
            "POLLSYNC_CHUNKS_PER_BATCH": "chunks_per_batch",
            "POLLSYNC_BATCHES_PER_WAVE": "batches_per_wave",
            "POLLSYNC_WAVE_STAGGER_MS": "wave_stagger_ms",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = int(val)
            except ValueError as exc:
                raise ConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        timeout_env = env.get("POLLSYNC_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout_s" not in overrides:
            try:
                config_kwargs["request_timeout_s"] = float(timeout_env)
            except ValueError as exc:
                raise ConfigError(f"POLLSYNC_REQUEST_TIMEOUT must be a number, got {timeout_env!r}") from exc

        if "rpc_trace_enabled" not in overrides:
            config_kwargs["rpc_trace_enabled"] = _env_bool(env.get("POLLSYNC_RPC_TRACE_ENABLED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
