"""
CAM numeric encodings used inside CNF containers.

CAM files were written by PDP-11 era software and keep its conventions:

- Floats are IEEE-754 single precision with their two 16-bit words swapped,
  stored as one quarter of the real value.
- Timestamps are a 64-bit count of 100 ns ticks since 1858-11-17 00:00:00
  (the Modified Julian Date epoch), stored as two little-endian uint32
  words ``(I, J)`` so that ``seconds = J*429.4967296 + I/1e7``.
- Durations use the same tick count, but each word is stored as its ones'
  complement.

All functions here are pure conversions between ``bytes`` and Python values.
"""

from __future__ import annotations

import math
import struct
from datetime import datetime, timedelta, timezone
from typing import Optional

from camspec.io.cnf.errors import TimeEncodeError, TimestampOverflowError, ValueEncodeError


CAM_EPOCH = datetime(1858, 11, 17)

TICKS_PER_SECOND = 10_000_000
TICKS_PER_MILLISECOND = 10_000
TICKS_PER_DAY = 86_400 * TICKS_PER_SECOND
WORD_MASK = 0xFFFFFFFF
TICKS_MASK = (1 << 64) - 1

FLOAT_SCALE = 0.25
FLOAT32_MAX = 3.4028234663852886e38

# Durations at or above this many ticks use the extended (year count) form.
MAX_DURATION_TICKS = 1 << 62
JULIAN_YEAR_SECONDS = 31_557_600
MEGAYEAR = 1_000_000
INT32_MAX = 2**31 - 1
EXTENDED_DURATION_FLAG = 0x80
MEGAYEAR_FLAG = 0x01

# [b0, b1, b2, b3] <-> [b2, b3, b0, b1]
WORD_SWAP_ORDER = (2, 3, 0, 1)


def word_swap(raw: bytes) -> bytes:
    """Swap the two 16-bit words of a 4-byte value. The swap is its own inverse."""
    if len(raw) != 4:
        raise ValueError(f"word_swap needs exactly 4 bytes, got {len(raw)}")
    return bytes(raw[i] for i in WORD_SWAP_ORDER)


def decode_cam_float(raw: bytes) -> float:
    """Decode a word-swapped, quarter-scaled CAM float."""
    value = struct.unpack('<f', word_swap(raw))[0]
    return value * FLOAT_SCALE


def encode_cam_float(value: float) -> bytes:
    """
    Encode a float as a word-swapped, quarter-scaled CAM float.

    Raises
    ------
    ValueEncodeError
        If the value is NaN, infinite, or overflows float32 once scaled.
    """
    scaled = float(value) / FLOAT_SCALE
    if not math.isfinite(scaled) or abs(scaled) > FLOAT32_MAX:
        raise ValueEncodeError(f"Cannot encode {value!r} as a CAM float")
    return word_swap(struct.pack('<f', scaled))


def _split_words(raw: bytes):
    if len(raw) != 8:
        raise ValueError(f"CAM time values are 8 bytes, got {len(raw)}")
    return struct.unpack('<II', raw)


def _join_words(ticks: int) -> bytes:
    return struct.pack('<II', ticks & WORD_MASK, (ticks >> 32) & WORD_MASK)


def ticks_to_datetime(ticks: int) -> datetime:
    """
    Add a tick count to the CAM epoch.

    The count is split into whole days, whole seconds and milliseconds before
    being added, so precision is kept to the millisecond.

    Raises
    ------
    TimestampOverflowError
        If the result falls outside the range ``datetime`` can represent.
    """
    days, remainder = divmod(ticks, TICKS_PER_DAY)
    seconds, remainder = divmod(remainder, TICKS_PER_SECOND)
    milliseconds = remainder // TICKS_PER_MILLISECOND
    try:
        result = CAM_EPOCH + timedelta(days=days)
        result += timedelta(seconds=seconds)
        result += timedelta(milliseconds=milliseconds)
    except OverflowError as exc:
        raise TimestampOverflowError(
            f"{ticks} ticks past {CAM_EPOCH:%Y-%m-%d} is not a representable date"
        ) from exc
    return result


def decode_cam_datetime(raw: bytes) -> Optional[datetime]:
    """
    Decode an 8-byte CAM timestamp.

    Returns None (the unset timestamp) when the value overflows the
    representable date range.
    """
    low, high = _split_words(raw)
    try:
        return ticks_to_datetime((high << 32) | low)
    except TimestampOverflowError:
        return None


def datetime_to_ticks(value: datetime) -> int:
    """Number of 100 ns ticks between the CAM epoch and ``value``."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    delta = value - CAM_EPOCH
    return (
        (delta.days * 86_400 + delta.seconds) * TICKS_PER_SECOND
        + delta.microseconds * (TICKS_PER_SECOND // 1_000_000)
    )


def encode_cam_datetime(value: datetime) -> bytes:
    """
    Encode a datetime as an 8-byte CAM timestamp.

    Raises
    ------
    TimeEncodeError
        If the timestamp is before the CAM epoch.
    """
    ticks = datetime_to_ticks(value)
    if ticks < 0:
        raise TimeEncodeError(f"{value.isoformat()} is before the CAM epoch {CAM_EPOCH.date()}")
    return _join_words(ticks)


def decode_cam_duration(raw: bytes) -> float:
    """
    Decode an 8-byte CAM duration to seconds (float32 precision).

    Normal durations store the ones' complement of each tick word. Durations
    too long for the tick form store a signed year count in bytes 0-3 with
    byte 7 set to 0x80 (byte 4 set to 0x01 when counting millions of years).
    """
    if raw[7] == EXTENDED_DURATION_FLAG and raw[5] == 0 and raw[6] == 0:
        years = struct.unpack('<i', raw[:4])[0]
        if raw[4] == MEGAYEAR_FLAG:
            years *= MEGAYEAR
        return _to_float32(years * float(JULIAN_YEAR_SECONDS))

    low, high = _split_words(raw)
    low = WORD_MASK - low
    high = WORD_MASK - high
    seconds = ((high << 32) | low) / TICKS_PER_SECOND
    return _to_float32(seconds)


def encode_cam_duration(seconds: float) -> bytes:
    """
    Encode a duration in seconds as an 8-byte CAM duration.

    Raises
    ------
    TimeEncodeError
        If the duration is negative, not finite, or too long to be stored
        exactly in either the tick form or the extended year form.
    """
    if not math.isfinite(seconds) or seconds < 0:
        raise TimeEncodeError(f"Cannot encode duration {seconds!r} s")

    ticks = round(seconds * TICKS_PER_SECOND)
    if ticks < MAX_DURATION_TICKS:
        return _tick_duration(ticks)

    try:
        return _encode_extended_duration(seconds)
    except TimeEncodeError:
        # Long durations read from the tick form go back to the tick form
        raw = _tick_duration(min(ticks, TICKS_MASK))
        if decode_cam_duration(raw) != seconds:
            raise
        return raw


def _tick_duration(ticks: int) -> bytes:
    return _join_words(~ticks & TICKS_MASK)


def _encode_extended_duration(seconds: float) -> bytes:
    years = round(seconds / JULIAN_YEAR_SECONDS)
    scale = 1
    flags = 0
    if years > INT32_MAX:
        years = round(seconds / (JULIAN_YEAR_SECONDS * MEGAYEAR))
        scale = MEGAYEAR
        flags = MEGAYEAR_FLAG
        if years > INT32_MAX:
            raise TimeEncodeError(f"Duration of {seconds!r} s is out of range")

    # Decoded durations are float32, so accept the rounded year count as well
    stored = years * scale * JULIAN_YEAR_SECONDS
    if seconds != stored and seconds != _to_float32(float(stored)):
        raise TimeEncodeError(
            f"Duration {seconds!r} s is too long for tick precision and is not "
            "a whole number of years"
        )

    out = bytearray(8)
    struct.pack_into('<i', out, 0, years)
    out[4] = flags
    out[7] = EXTENDED_DURATION_FLAG
    return bytes(out)


def _to_float32(value: float) -> float:
    if abs(value) > FLOAT32_MAX:
        return math.copysign(math.inf, value)
    return struct.unpack('<f', struct.pack('<f', value))[0]


def decode_text(raw: bytes) -> str:
    """Decode a fixed-width text field, trimming NUL padding and whitespace."""
    return raw.decode('latin-1').strip(' \t\n\v\f\r\x00')


def encode_text(text: str, width: int) -> bytes:
    """
    Encode text into a NUL padded fixed-width field.

    Raises
    ------
    ValueEncodeError
        If the text does not fit in ``width`` bytes.
    """
    raw = (text or '').encode('latin-1', errors='replace')
    if len(raw) > width:
        raise ValueEncodeError(f"Text {text!r} exceeds the {width} byte field")
    return raw.ljust(width, b'\x00')
