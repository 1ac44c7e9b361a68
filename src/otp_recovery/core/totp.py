"""Time-based one-time code helpers.

Codes are derived from the server secret, the current time slice and the
subject identifier, so the same subject gets a different code every period
and different subjects get independent code streams.
"""
from __future__ import annotations

import hmac
import struct
import time
from collections.abc import Callable

from otp_recovery.core.config import RecoveryConfig

COUNTER_FORMAT = ">Q"
SUBJECT_FORMAT = ">Q"
MAX_SUBJECT_ID = 2**64 - 1
TRUNCATION_MASK = 0x7FFFFFFF


def dynamic_truncate(digest: bytes, digits: int) -> str:
    """Reduce an HMAC digest to a zero-padded decimal code.

    The offset is the low nibble of the last digest byte; the four bytes at
    that offset are read big-endian with the top bit cleared.
    """
    offset = digest[-1] & 0x0F
    (value,) = struct.unpack(">I", digest[offset:offset + 4])
    code = (value & TRUNCATION_MASK) % (10**digits)
    return str(code).zfill(digits)


class TOTPGenerator:
    """Deterministic one-time code generator bound to one configuration."""

    def __init__(
        self,
        config: RecoveryConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._clock = clock

    @property
    def period_seconds(self) -> int:
        return self._config.period_seconds

    @property
    def digits(self) -> int:
        return self._config.digits

    def time_slice(self, timestamp: float) -> int:
        """Return the slice index containing `timestamp`."""
        return int(timestamp // self._config.period_seconds)

    def generate(self, timestamp: float | None, subject_id: int) -> str:
        """Return the code for `subject_id` in the slice containing `timestamp`.

        Args:
            timestamp: Unix time; the current clock is used when None.
            subject_id: Unsigned integer identifying the subject.

        Returns:
            A `digits`-wide decimal string.

        Raises:
            ValueError: If `subject_id` does not fit in 64 unsigned bits.
        """
        if timestamp is None:
            timestamp = self._clock()
        if not 0 <= subject_id <= MAX_SUBJECT_ID:
            raise ValueError("Subject identifier does not fit in 64 bits")

        message = struct.pack(COUNTER_FORMAT, self.time_slice(timestamp))
        message += struct.pack(SUBJECT_FORMAT, subject_id)
        digest = hmac.new(self._config.secret, message, self._config.algorithm).digest()
        return dynamic_truncate(digest, self._config.digits)

    def verify(self, candidate: str, subject_id: int) -> bool:
        """Return True if `candidate` matches a code inside the accepted window.

        Every slice in ``[now - window, now + window]`` is checked, and each
        comparison runs in constant time; no early exit on the first match.
        """
        if not isinstance(candidate, str) or len(candidate) != self._config.digits:
            return False

        now = self._clock()
        period = self._config.period_seconds
        matched = False
        for step in range(-self._config.window, self._config.window + 1):
            expected = self.generate(now + step * period, subject_id)
            if hmac.compare_digest(expected.encode(), candidate.encode("utf-8")):
                matched = True
        return matched
