"""Partition a registry snapshot into rate-limited remote read calls.

Addresses are flattened in snapshot order and split three ways:

* **chunks** of at most ``max_keys_per_call`` addresses (one RPC call each),
* **batches** of at most ``chunks_per_batch`` chunks (one HTTP envelope each),
* **waves** of at most ``batches_per_wave`` batches issued concurrently.

Wave *i* starts ``i * wave_stagger`` seconds after the cycle starts, whether
or not earlier waves have completed. Results are flattened back into the
original address order so the reconciler can match them by position.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from pypollsync._transport import ReadTransport
from pypollsync.config import SyncConfig
from pypollsync.exceptions import RpcResponseError
from pypollsync.models.account import ReadResult, SlotResponse
from pypollsync.models.entity import GroupSnapshot

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Chunk = list[str]
Batch = list[Chunk]


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split *items* into contiguous lists of at most *size* elements."""
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


@dataclass(frozen=True, slots=True)
class DispatchPlan:
    """How one cycle's addresses are spread over calls, envelopes and waves."""

    chunks: list[Chunk]
    batches: list[Batch]
    waves: list[list[Batch]]

    @property
    def address_count(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)

    @property
    def call_count(self) -> int:
        return len(self.chunks)

    @property
    def batch_count(self) -> int:
        return len(self.batches)

    @property
    def wave_count(self) -> int:
        return len(self.waves)


def plan_dispatch(addresses: Sequence[str], config: SyncConfig) -> DispatchPlan:
    """Build the dispatch plan for *addresses* under *config*'s limits."""
    if not addresses:
        return DispatchPlan(chunks=[], batches=[], waves=[])
    if len(addresses) <= config.max_keys_per_call:
        chunk = list(addresses)
        return DispatchPlan(chunks=[chunk], batches=[[chunk]], waves=[[[chunk]]])

    chunks = partition(addresses, config.max_keys_per_call)
    batches = partition(chunks, config.chunks_per_batch)
    waves = partition(batches, config.batches_per_wave)
    return DispatchPlan(chunks=chunks, batches=batches, waves=waves)


def flatten_addresses(groups: Sequence[GroupSnapshot]) -> list[str]:
    return [address for group in groups for address in group.addresses]


class BatchDispatcher:
    """Issues the remote reads for one cycle and returns per-address responses."""

    def __init__(
        self,
        config: SyncConfig,
        transport: ReadTransport,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._transport = transport
        self._sleep = sleep

    @property
    def transport(self) -> ReadTransport:
        return self._transport

    def plan(self, groups: Sequence[GroupSnapshot]) -> DispatchPlan:
        return plan_dispatch(flatten_addresses(groups), self._config)

    async def dispatch(self, groups: Sequence[GroupSnapshot]) -> list[SlotResponse]:
        """Read every address in *groups*.

        Returns one :class:`SlotResponse` per address, in flattened snapshot
        order. Any failed call fails the whole dispatch; waves that have
        not completed yet are cancelled.
        """
        plan = self.plan(groups)
        if not plan.chunks:
            return []

        _logger.debug(
            "Dispatching %d addresses as %d calls in %d envelopes over %d waves",
            plan.address_count,
            plan.call_count,
            plan.batch_count,
            plan.wave_count,
        )

        tasks = [asyncio.ensure_future(self._run_wave(index, wave)) for index, wave in enumerate(plan.waves)]
        try:
            wave_results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        slots: list[SlotResponse] = []
        for wave, batch_results in zip(plan.waves, wave_results, strict=True):
            for batch, results in zip(wave, batch_results, strict=True):
                slots.extend(self._flatten_batch(batch, results))
        return slots

    async def _run_wave(self, index: int, wave: list[Batch]) -> list[list[ReadResult]]:
        delay = index * self._config.wave_stagger
        if delay > 0:
            await self._sleep(delay)
        _logger.debug("Wave %d: issuing %d envelopes", index, len(wave))
        commitment = self._config.commitment
        return list(
            await asyncio.gather(*(self._transport.read_multiple(batch, commitment=commitment) for batch in wave))
        )

    @staticmethod
    def _flatten_batch(batch: Batch, results: list[ReadResult]) -> list[SlotResponse]:
        if len(results) != len(batch):
            raise RpcResponseError(f"transport returned {len(results)} results for {len(batch)} calls")
        slots: list[SlotResponse] = []
        for chunk, result in zip(batch, results, strict=True):
            if len(result.values) != len(chunk):
                raise RpcResponseError(f"call returned {len(result.values)} values for {len(chunk)} addresses")
            slots.extend(SlotResponse(version=result.version, account=value) for value in result.values)
        return slots
