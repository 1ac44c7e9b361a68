"""Tests for one-time code generation and window verification."""

import hashlib
import hmac
import struct

import pytest

from otp_recovery.core.config import RecoveryConfig
from otp_recovery.core.totp import TOTPGenerator, dynamic_truncate

SUBJECT = 42


def test_generate_is_deterministic(totp: TOTPGenerator, clock) -> None:
    first = totp.generate(clock.now, SUBJECT)
    assert totp.generate(clock.now, SUBJECT) == first
    assert len(first) == 6
    assert first.isdigit()


def test_generate_matches_byte_layout(config: RecoveryConfig, totp: TOTPGenerator) -> None:
    """The HMAC input is the 64-bit time slice followed by the 64-bit subject id."""
    timestamp = 1_700_000_040
    message = struct.pack(">Q", timestamp // 60) + struct.pack(">Q", SUBJECT)
    digest = hmac.new(config.secret, message, hashlib.sha256).digest()
    offset = digest[-1] & 0x0F
    value = int.from_bytes(digest[offset:offset + 4], "big") & 0x7FFFFFFF

    assert totp.generate(timestamp, SUBJECT) == str(value % 1_000_000).zfill(6)


def test_generate_is_stable_within_a_slice(totp: TOTPGenerator) -> None:
    slice_start = 60 * 28_333_334
    assert totp.generate(slice_start, SUBJECT) == totp.generate(slice_start + 59, SUBJECT)


def test_generate_uses_clock_when_timestamp_missing(totp: TOTPGenerator, clock) -> None:
    assert totp.generate(None, SUBJECT) == totp.generate(clock.now, SUBJECT)


def test_subjects_get_different_codes(totp: TOTPGenerator, clock) -> None:
    codes = {totp.generate(clock.now, subject) for subject in range(1, 6)}
    assert len(codes) > 1


def test_subject_overflow_is_rejected(totp: TOTPGenerator, clock) -> None:
    with pytest.raises(ValueError):
        totp.generate(clock.now, 2**64)
    with pytest.raises(ValueError):
        totp.generate(clock.now, -1)


def test_dynamic_truncate_pads_with_zeroes() -> None:
    digest = bytes([0, 0, 0, 7]) + bytes(27) + bytes([0])
    assert dynamic_truncate(digest, 6) == "000007"


def test_dynamic_truncate_masks_high_bit() -> None:
    digest = bytes([0xFF] * 4) + bytes(27) + bytes([0x00])
    assert dynamic_truncate(digest, 6) == str(0x7FFFFFFF % 1_000_000)


def test_dynamic_truncate_uses_last_nibble_as_offset() -> None:
    digest = bytearray(32)
    digest[-1] = 0x05
    digest[5:9] = (123_456).to_bytes(4, "big")
    assert dynamic_truncate(bytes(digest), 6) == "123456"


@pytest.mark.parametrize("offset_slices", [-1, 0, 1])
def test_verify_accepts_codes_inside_window(totp: TOTPGenerator, clock, offset_slices: int) -> None:
    code = totp.generate(clock.now + offset_slices * 60, SUBJECT)
    assert totp.verify(code, SUBJECT) is True


@pytest.mark.parametrize("offset_slices", [-2, 2])
def test_verify_rejects_codes_outside_window(totp: TOTPGenerator, clock, offset_slices: int) -> None:
    code = totp.generate(clock.now + offset_slices * 60, SUBJECT)
    assert totp.verify(code, SUBJECT) is False


def test_verify_rejects_code_after_clock_moves_on(totp: TOTPGenerator, clock) -> None:
    code = totp.generate(clock.now, SUBJECT)
    clock.advance(60)
    assert totp.verify(code, SUBJECT) is True
    clock.advance(60)
    assert totp.verify(code, SUBJECT) is False


def test_verify_rejects_other_subject_and_bad_shapes(totp: TOTPGenerator, clock) -> None:
    code = totp.generate(clock.now, SUBJECT)
    assert totp.verify(code, SUBJECT + 1) is False
    assert totp.verify(code[:-1], SUBJECT) is False
    assert totp.verify("", SUBJECT) is False


def test_zero_window_only_accepts_current_slice(clock) -> None:
    strict = TOTPGenerator(RecoveryConfig(secret=b"unit-test-secret", window=0), clock)
    assert strict.verify(strict.generate(clock.now, SUBJECT), SUBJECT) is True
    assert strict.verify(strict.generate(clock.now - 60, SUBJECT), SUBJECT) is False


def test_digits_are_configurable(clock) -> None:
    eight = TOTPGenerator(RecoveryConfig(secret=b"unit-test-secret", digits=8), clock)
    code = eight.generate(clock.now, SUBJECT)
    assert len(code) == 8
    assert eight.verify(code, SUBJECT) is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"secret": b""},
        {"period_seconds": 0},
        {"digits": 0},
        {"digits": 11},
        {"window": -1},
        {"algorithm": "not-a-hash"},
        {"step1_ttl_minutes": 0},
    ],
)
def test_config_rejects_invalid_values(overrides: dict) -> None:
    values = {"secret": b"unit-test-secret", **overrides}
    with pytest.raises(ValueError):
        RecoveryConfig(**values)
