"""Replay protection for single-use envelopes.

The nonce ledger is the only mutable state shared by the recovery workflow:
once a nonce is recorded, every later verification referencing it fails.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from threading import Lock
from typing import Any, Final, Protocol

import redis

from otp_recovery.core.settings import settings

logger = logging.getLogger(__name__)

_KEY_PREFIX: Final[str] = "nonce:"


class NonceLedgerUnavailable(RuntimeError):
    """Raised when the backing store of a nonce ledger cannot be reached."""


class NonceLedger(Protocol):
    """Capability interface shared by every ledger backend."""

    def mark_if_unused(self, nonce: str, ttl_seconds: int) -> bool:
        """Record `nonce`; return False if it was already recorded."""
        ...

    def is_used(self, nonce: str) -> bool:
        """Return True if `nonce` is recorded and not yet expired."""
        ...

    def release(self, nonce: str) -> None:
        """Forget `nonce` so it can be recorded again."""
        ...

    def purge_expired(self) -> int:
        """Drop expired records and return how many were removed."""
        ...


class InMemoryNonceLedger:
    """Process-local ledger backed by a dict guarded by a lock."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = Lock()

    def mark_if_unused(self, nonce: str, ttl_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            expiry = self._entries.get(nonce)
            if expiry is not None and expiry > now:
                return False
            self._entries[nonce] = now + max(1, int(ttl_seconds))
            return True

    def is_used(self, nonce: str) -> bool:
        now = self._clock()
        with self._lock:
            expiry = self._entries.get(nonce)
            return expiry is not None and expiry > now

    def release(self, nonce: str) -> None:
        with self._lock:
            self._entries.pop(nonce, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [nonce for nonce, expiry in self._entries.items() if expiry <= now]
            for nonce in stale:
                del self._entries[nonce]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisNonceLedger:
    """Ledger shared between processes through Redis.

    ``SET NX EX`` performs the check and the mark in one round trip, so only
    one caller can ever observe a first use. Key expiry replaces compaction.
    """

    def __init__(self, client: Any) -> None:
        self._redis = client

    def mark_if_unused(self, nonce: str, ttl_seconds: int) -> bool:
        try:
            created = self._redis.set(
                f"{_KEY_PREFIX}{nonce}", "1", nx=True, ex=max(1, int(ttl_seconds))
            )
        except redis.RedisError as exc:
            raise NonceLedgerUnavailable(f"Nonce ledger write failed: {exc}") from exc
        return bool(created)

    def is_used(self, nonce: str) -> bool:
        try:
            return bool(self._redis.exists(f"{_KEY_PREFIX}{nonce}"))
        except redis.RedisError as exc:
            raise NonceLedgerUnavailable(f"Nonce ledger read failed: {exc}") from exc

    def release(self, nonce: str) -> None:
        try:
            self._redis.delete(f"{_KEY_PREFIX}{nonce}")
        except redis.RedisError as exc:
            raise NonceLedgerUnavailable(f"Nonce ledger delete failed: {exc}") from exc

    def purge_expired(self) -> int:
        return 0


class NonceCompactionWorker:
    """Periodically evicts expired nonces from the ledger.

    Expired records already behave as absent during verification, so the
    schedule only bounds memory use.
    """

    def __init__(self, ledger: NonceLedger, interval_seconds: float | None = None) -> None:
        self.ledger = ledger
        self.interval_seconds = max(
            0.1,
            float(interval_seconds or settings.nonce_compaction_interval_seconds),
        )
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Start the background compaction loop."""

        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background compaction loop."""

        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def run_once(self) -> int:
        removed = await asyncio.to_thread(self.ledger.purge_expired)
        if removed:
            logger.debug("Evicted %d expired nonces", removed)
        return removed

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except NonceLedgerUnavailable as e:
                logger.warning("NonceCompactionWorker could not reach ledger: %s", e)

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                continue


_LEDGER_LOCK = Lock()
_LEDGER: NonceLedger | None = None


def get_nonce_ledger() -> NonceLedger:
    """Return the process-wide nonce ledger selected by configuration."""
    global _LEDGER

    with _LEDGER_LOCK:
        if _LEDGER is None:
            if settings.redis_url:
                logger.info("Using Redis nonce ledger")
                _LEDGER = RedisNonceLedger(redis.from_url(settings.redis_url))
            else:
                logger.info("Using in-memory nonce ledger")
                _LEDGER = InMemoryNonceLedger()
        return _LEDGER
