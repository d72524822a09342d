from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from hashlib import sha256

from ..metrics import RATE_LIMIT_DECISIONS, RATE_LIMIT_TRACKED_CLIENTS

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class ClientRecord:
    """Counter state tracked for a single client identifier."""

    count: int
    last_request_at: float
    blocked_until: float | None = None

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and self.blocked_until > now


@dataclass(frozen=True)
class Decision:
    """Outcome of a single admission check."""

    allowed: bool
    count: int
    retry_after: int | None = None

    @classmethod
    def admitted(cls, count: int) -> Decision:
        return cls(allowed=True, count=count)

    @classmethod
    def rejected(cls, retry_after: int, count: int) -> Decision:
        return cls(allowed=False, count=count, retry_after=retry_after)


def hash_client_id(client_id: str) -> str:
    return sha256(client_id.encode("utf-8")).hexdigest()[:12]


class RateLimiter:
    """In-memory sliding window rate limiter with temporary blocking.

    Every client gets a counter that resets once the gap since its previous
    request exceeds ``window_seconds``. A client going over ``max_requests``
    is blocked for ``block_seconds``; while blocked its counter is frozen.

    Memory is bounded by a periodic sweep that keeps only the
    ``max_entries`` most recently active clients. Call :meth:`start` from a
    running event loop to schedule it and :meth:`shutdown` on teardown.
    """

    def __init__(
        self,
        *,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        block_seconds: float = 3600.0,
        max_entries: int = 5000,
        sweep_interval_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if block_seconds <= 0:
            raise ValueError("block_seconds must be > 0")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.block_seconds = block_seconds
        self.max_entries = max_entries
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._records: dict[str, ClientRecord] = {}
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._records)

    def snapshot(self, client_id: str) -> ClientRecord | None:
        with self._lock:
            record = self._records.get(client_id)
            return replace(record) if record is not None else None

    def admit(self, client_id: str | None, now: float | None = None) -> Decision:
        key = client_id or UNKNOWN_CLIENT
        if now is None:
            now = self._clock()

        with self._lock:
            record = self._records.get(key)

            # An active block is read-only: the counter stays frozen.
            if record is not None and record.is_blocked(now):
                retry_after = math.ceil(record.blocked_until - now)
                decision = Decision.rejected(retry_after, record.count)
            else:
                if record is None:
                    record = ClientRecord(count=1, last_request_at=now)
                    self._records[key] = record
                else:
                    if now - record.last_request_at > self.window_seconds:
                        record.count = 1
                    else:
                        record.count += 1
                    record.last_request_at = now

                if record.count > self.max_requests:
                    record.blocked_until = now + self.block_seconds
                    decision = Decision.rejected(math.ceil(self.block_seconds), record.count)
                else:
                    decision = Decision.admitted(record.count)

        if decision.allowed:
            RATE_LIMIT_DECISIONS.labels(decision="admitted").inc()
        else:
            RATE_LIMIT_DECISIONS.labels(decision="rejected").inc()
            logger.warning(
                "rate limit exceeded",
                extra={"client": hash_client_id(key), "retry_after": decision.retry_after},
            )
        return decision

    def sweep(self, now: float | None = None) -> int:
        """Evict the least recently active clients and clear expired blocks.

        Returns the number of evicted entries.
        """

        if now is None:
            now = self._clock()

        with self._lock:
            evicted = 0
            if len(self._records) > self.max_entries:
                ranked = sorted(
                    self._records.items(),
                    key=lambda item: (-item[1].last_request_at, item[0]),
                )
                for key, _ in ranked[self.max_entries :]:
                    del self._records[key]
                    evicted += 1

            for record in self._records.values():
                if record.blocked_until is not None and record.blocked_until <= now:
                    record.blocked_until = None

            remaining = len(self._records)

        RATE_LIMIT_TRACKED_CLIENTS.set(remaining)
        if evicted:
            logger.info(
                "rate limiter sweep evicted clients",
                extra={"extra_fields": {"evicted": evicted, "tracked": remaining}},
            )
        else:
            logger.debug("rate limiter sweep complete", extra={"extra_fields": {"tracked": remaining}})
        return evicted

    def start(self) -> asyncio.Task[None]:
        """Schedule the periodic sweep on the running event loop."""

        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(
                self._run_sweeper(),
                name="rate-limiter-sweeper",
            )
        return self._sweeper

    async def shutdown(self) -> None:
        """Stop the periodic sweep and wait for it to finish."""

        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run_sweeper(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("rate limiter sweep failed")


__all__ = ["ClientRecord", "Decision", "RateLimiter", "UNKNOWN_CLIENT", "hash_client_id"]
