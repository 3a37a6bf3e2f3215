"""JSON-RPC transport for batched ``getMultipleAccounts`` reads."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from pypollsync._constants import RPC_METHOD, USER_AGENT
from pypollsync._redact import redact_for_log, redact_url
from pypollsync.config import SyncConfig
from pypollsync.exceptions import RpcResponseError, TransportError
from pypollsync.models.account import ReadResult

_logger = logging.getLogger(__name__)


class ReadTransport(Protocol):
    """Structural batch-read interface used by the dispatcher.

    One call submits a whole request batch (one envelope) and returns one
    :class:`ReadResult` per chunk, in chunk order. Having a protocol here
    makes it easy to pass test doubles while keeping the production
    implementation (:class:`JsonRpcTransport`) concrete.
    """

    async def read_multiple(self, batch: Sequence[Sequence[str]], *, commitment: str) -> list[ReadResult]: ...


def build_batch_envelope(batch: Sequence[Sequence[str]], *, commitment: str) -> list[dict[str, Any]]:
    """Build a JSON-RPC 2.0 batch with one ``getMultipleAccounts`` call per chunk.

    Request ids are the chunk positions, so responses can be matched back
    regardless of the order the node returns them in.
    """
    return [
        {
            "jsonrpc": "2.0",
            "id": index,
            "method": RPC_METHOD,
            "params": [list(chunk), {"commitment": commitment, "encoding": "base64"}],
        }
        for index, chunk in enumerate(batch)
    ]


def parse_batch_response(
    body: Any,
    batch: Sequence[Sequence[str]],
    *,
    endpoint: str = "",
) -> list[ReadResult]:
    """Match a JSON-RPC batch reply to its chunks and validate each result.

    Raises
    ------
    RpcResponseError
        On a top-level or per-call error member, a missing call id, a
        malformed result, or a value list whose length differs from the
        chunk that was requested.
    """
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            raise RpcResponseError(
                f"RPC batch rejected: {error.get('message', '')}",
                code=error.get("code"),
                endpoint=endpoint,
            )
        body = [body]
    if not isinstance(body, list):
        raise RpcResponseError("RPC batch reply is not a list", endpoint=endpoint)

    by_id: dict[Any, Any] = {}
    for entry in body:
        if isinstance(entry, dict):
            by_id[entry.get("id")] = entry

    results: list[ReadResult] = []
    for index, chunk in enumerate(batch):
        entry = by_id.get(index)
        if entry is None:
            raise RpcResponseError(f"RPC batch reply is missing call id {index}", endpoint=endpoint)
        error = entry.get("error")
        if error is not None:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            raise RpcResponseError(
                f"{RPC_METHOD} call {index} failed: code={code} message={message}",
                code=code,
                endpoint=endpoint,
            )
        try:
            result = ReadResult.from_rpc(entry.get("result"))
        except (ValidationError, ValueError) as exc:
            raise RpcResponseError(f"Malformed {RPC_METHOD} result for call {index}: {exc}", endpoint=endpoint) from exc
        if len(result.values) != len(chunk):
            raise RpcResponseError(
                f"{RPC_METHOD} call {index} returned {len(result.values)} values for {len(chunk)} addresses",
                endpoint=endpoint,
            )
        results.append(result)
    return results


class JsonRpcTransport:
    """aiohttp transport that submits each request batch as one JSON-RPC batch POST."""

    def __init__(self, config: SyncConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._endpoint = redact_url(config.rpc_url)
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout_s)

    async def read_multiple(self, batch: Sequence[Sequence[str]], *, commitment: str) -> list[ReadResult]:
        if not batch:
            return []

        envelope = build_batch_envelope(batch, commitment=commitment)
        headers = {
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }

        _logger.debug("POST %s (%d calls, %d addresses)", self._endpoint, len(batch), sum(len(c) for c in batch))
        if self._config.rpc_trace_enabled:
            _logger.debug("RPC request: %s", redact_for_log(envelope))

        try:
            async with self._http.post(
                self._config.rpc_url,
                data=json.dumps(envelope, separators=(",", ":")),
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise TransportError(
                        f"HTTP {resp.status} from {self._endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=self._endpoint,
                    )
        except TransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(
                f"Request to {self._endpoint} failed: {exc!r}",
                endpoint=self._endpoint,
            ) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TransportError(
                f"Invalid JSON from {self._endpoint}: {text[:200]}",
                status_code=200,
                endpoint=self._endpoint,
            ) from exc

        if self._config.rpc_trace_enabled:
            _logger.debug("RPC response: %s", redact_for_log(body))

        return parse_batch_response(body, batch, endpoint=self._endpoint)
