#!/usr/bin/env python3
"""Watch a set of accounts through a live RPC endpoint.

Registers every address given on the command line (one owner group per
``--owner``), polls them with :class:`pypollsync.PollSynchronizer` and prints
one JSON line per accepted update or decode error.

RPC endpoint sourcing:
- ``--rpc-url``
- ``POLLSYNC_RPC_URL`` (and the other ``POLLSYNC_*`` variables)

Example::

    scripts/watch_accounts.py --owner alice user=ADDR1 stats=ADDR2 --seconds 30
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pypollsync import DecoderRegistry, PollSynchronizer, SyncConfig  # noqa: E402


def _emit(record: dict[str, Any]) -> None:
    print(json.dumps(record, separators=(",", ":")), flush=True)


def _parse_pairs(values: list[str]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for value in values:
        kind, sep, address = value.partition("=")
        if not sep or not kind or not address:
            raise SystemExit(f"expected KIND=ADDRESS, got {value!r}")
        pairs.append((kind, address))
    return pairs


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.rpc_url:
        overrides["rpc_url"] = args.rpc_url
    if args.interval_ms:
        overrides["polling_interval_ms"] = args.interval_ms
    config = SyncConfig.from_env(**overrides)

    pairs = _parse_pairs(args.accounts)
    # Raw hex preview; real consumers register layout decoders per kind.
    decoders = DecoderRegistry({kind: (lambda payload: payload[: args.preview_bytes].hex()) for kind, _ in pairs})

    async with PollSynchronizer(config, decoders=decoders) as sync:
        for kind, address in pairs:

            def _on_update(value: Any, *, kind: str = kind, address: str = address) -> None:
                _emit({"ts": time.time(), "event": "update", "kind": kind, "address": address, "value": value})

            def _on_error(error: Exception, *, kind: str = kind, address: str = address) -> None:
                _emit({"ts": time.time(), "event": "error", "kind": kind, "address": address, "error": str(error)})

            sync.register(args.owner, kind, address, _on_update, _on_error)

        await sync.fetch()
        if args.seconds <= 0:
            return 0

        sync.subscribe()
        await asyncio.sleep(args.seconds)
        report = sync.last_report
        if report is not None:
            _emit({"event": "report", "updated": report.updated, "errors": report.errors, "stale": report.stale})
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("accounts", nargs="+", metavar="KIND=ADDRESS", help="accounts to watch")
    parser.add_argument("--owner", default="cli", help="owner key grouping the accounts")
    parser.add_argument("--rpc-url", default=None, help="JSON-RPC endpoint (default: POLLSYNC_RPC_URL)")
    parser.add_argument("--interval-ms", type=int, default=0, help="polling interval override")
    parser.add_argument("--seconds", type=float, default=10.0, help="how long to poll; 0 = single fetch")
    parser.add_argument("--preview-bytes", type=int, default=16, help="bytes of each payload to print")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable DEBUG logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
