"""Batched poll synchronizer.

Keeps a local mirror of remote accounts fresh by polling them in bulk.
Consumers register ``(owner_key, kind, address)`` triples with an update
handler; every refresh cycle reads all registered addresses in as few
rate-limited calls as possible and notifies handlers only when an account's
bytes actually changed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from pypollsync._transport import JsonRpcTransport, ReadTransport
from pypollsync.config import SyncConfig
from pypollsync.decoding import DecoderRegistry
from pypollsync.dispatcher import BatchDispatcher
from pypollsync.exceptions import SynchronizerError
from pypollsync.models.entity import CallbackHandler, EntityHandler, WatchedEntity
from pypollsync.reconciler import CycleReport, Reconciler
from pypollsync.registry import EntityRegistry

_logger = logging.getLogger(__name__)


class PollSynchronizer:
    """Polls registered accounts on a fixed interval or on demand.

    Usage::

        decoders = DecoderRegistry({"user": user_decoder})
        async with PollSynchronizer(SyncConfig(rpc_url=url), decoders=decoders) as sync:
            sync.register(authority, "user", user_address, on_update=print)
            await sync.fetch()
            sync.subscribe()

    Cycles are single-flight: a timer tick that fires while a cycle is still
    running is skipped, and :meth:`fetch` waits for the running cycle before
    starting its own.
    """

    def __init__(
        self,
        config: SyncConfig | None = None,
        *,
        transport: ReadTransport | None = None,
        decoders: DecoderRegistry | None = None,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config if config is not None else SyncConfig()
        self._external_session = session is not None
        self._http_session = session
        if transport is None and session is not None:
            transport = JsonRpcTransport(self._config, session)
        self._transport = transport
        self._dispatcher: BatchDispatcher | None = None
        self._decoders = decoders if decoders is not None else DecoderRegistry()
        self._registry = EntityRegistry()
        self._reconciler = Reconciler(self._registry, self._decoders)
        self._cycle_lock = asyncio.Lock()
        self._timer_task: asyncio.Task[None] | None = None
        self._tick_tasks: set[asyncio.Task[None]] = set()
        self._last_report: CycleReport | None = None
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> PollSynchronizer:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = JsonRpcTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop polling, wait for background tasks and release owned resources."""
        timer = self._timer_task
        self.unsubscribe()
        pending = [task for task in (timer, *self._tick_tasks) if task is not None]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tick_tasks.clear()

        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None
            self._dispatcher = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def decoders(self) -> DecoderRegistry:
        return self._decoders

    @property
    def is_subscribed(self) -> bool:
        return self._timer_task is not None

    @property
    def last_report(self) -> CycleReport | None:
        """Outcome counts of the most recent completed cycle."""
        return self._last_report

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(
        self,
        owner_key: str,
        kind: str,
        address: str,
        on_update: Callable[[Any], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        *,
        handler: EntityHandler | None = None,
    ) -> bool:
        """Watch *address* as *kind* under *owner_key*.

        Pass either ``on_update`` (and optionally ``on_error``) callables or
        a ``handler`` object. Registering an existing ``(owner_key, kind)``
        pair is a no-op and returns ``False``.
        """
        if handler is None:
            if on_update is None:
                raise ValueError("register() requires on_update or handler")
            handler = CallbackHandler(on_update, on_error)
        elif on_update is not None or on_error is not None:
            raise ValueError("pass either callbacks or handler, not both")
        return self._registry.register(owner_key, kind, address, handler)

    def unregister(self, owner_key: str, kind: str) -> bool:
        return self._registry.unregister(owner_key, kind)

    def unregister_group(self, owner_key: str) -> bool:
        return self._registry.unregister_group(owner_key)

    def list_owners(self) -> list[str]:
        return self._registry.list_owners()

    def has_group(self, owner_key: str) -> bool:
        return self._registry.has_group(owner_key)

    def get_entity(self, owner_key: str, kind: str) -> WatchedEntity | None:
        return self._registry.get(owner_key, kind)

    def get_value(self, owner_key: str, kind: str) -> Any:
        """Last accepted decoded value, or ``None`` if never updated."""
        entity = self._registry.get(owner_key, kind)
        return entity.last_decoded if entity is not None else None

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def subscribe(self) -> None:
        """Start timer-driven polling. No-op when already subscribed."""
        if self._timer_task is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise SynchronizerError("subscribe() must be called from a running event loop") from exc
        self._require_dispatcher()
        self._timer_task = loop.create_task(self._run_timer(), name="pypollsync-timer")
        _logger.debug("Subscribed; polling every %d ms", self._config.polling_interval_ms)

    def unsubscribe(self) -> None:
        """Stop timer-driven polling and drop every registered entity.

        A cycle already in flight still completes; entities it no longer
        finds in the registry get their update delivered without caching.
        """
        if self._timer_task is None:
            return
        self._timer_task.cancel()
        self._timer_task = None
        self._registry.clear()
        _logger.debug("Unsubscribed")

    async def fetch(self) -> None:
        """Run one refresh cycle now.

        Raises
        ------
        TransportError
            If any remote read of the cycle fails. The registry is left
            unmodified.
        """
        async with self._cycle_lock:
            await self._run_cycle()

    async def _run_timer(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self._config.polling_interval
        next_tick = loop.time() + interval
        while True:
            await self._sleep(max(0.0, next_tick - loop.time()))
            next_tick += interval
            if next_tick < loop.time():
                # Fell behind (e.g. blocked loop); do not burst to catch up.
                next_tick = loop.time() + interval
            task = loop.create_task(self._tick_cycle())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    async def _tick_cycle(self) -> None:
        if self._cycle_lock.locked():
            _logger.debug("Previous cycle still running; skipping tick")
            return
        async with self._cycle_lock:
            try:
                await self._run_cycle()
            except Exception:
                _logger.warning("Polling cycle failed", exc_info=True)

    async def _run_cycle(self) -> None:
        groups = self._registry.snapshot()
        if not groups:
            return
        dispatcher = self._require_dispatcher()
        slots = await dispatcher.dispatch(groups)
        report = self._reconciler.reconcile(groups, slots)
        self._last_report = report
        _logger.debug(
            "Cycle done: %d updated, %d unchanged, %d stale, %d errors, %d detached",
            report.updated,
            report.unchanged,
            report.stale,
            report.errors,
            report.detached,
        )

    def _require_dispatcher(self) -> BatchDispatcher:
        if self._dispatcher is None:
            if self._transport is None:
                raise SynchronizerError(
                    "No transport. Pass transport=/session= or use 'async with PollSynchronizer(...) as sync:'"
                )
            self._dispatcher = BatchDispatcher(self._config, self._transport)
        return self._dispatcher
