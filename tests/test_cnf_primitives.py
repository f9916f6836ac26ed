"""
Tests for CAM numeric encodings.

Covers word-swapped floats, epoch timestamps, ones' complement durations
(including the extended year form) and fixed-width text fields.
"""

import math
import struct
from datetime import datetime, timedelta

import numpy as np
import pytest

from camspec.io.cnf.errors import TimeEncodeError, ValueEncodeError
from camspec.io.cnf.primitives import (
    CAM_EPOCH,
    JULIAN_YEAR_SECONDS,
    decode_cam_datetime,
    decode_cam_duration,
    decode_cam_float,
    decode_text,
    encode_cam_datetime,
    encode_cam_duration,
    encode_cam_float,
    encode_text,
    word_swap,
)


def _pair(ticks: int) -> bytes:
    return struct.pack('<II', ticks & 0xFFFFFFFF, ticks >> 32)


def _random_float32(seed: int, n: int = 200) -> np.ndarray:
    """Float32 values spread over many decades, both signs."""
    rng = np.random.default_rng(seed)
    magnitude = 10.0 ** rng.uniform(-30, 30, n)
    sign = rng.choice([-1.0, 1.0], n)
    return (sign * magnitude).astype(np.float32)


# =============================================================================
# Word-swapped floats
# =============================================================================

class TestWordSwap:
    """Tests for the 16-bit word swap."""

    def test_reorders_words(self):
        """Bytes [b0,b1,b2,b3] become [b2,b3,b0,b1]."""
        assert word_swap(b'\x01\x02\x03\x04') == b'\x03\x04\x01\x02'

    def test_is_its_own_inverse(self):
        """Swapping twice restores the input."""
        raw = b'\xde\xad\xbe\xef'
        assert word_swap(word_swap(raw)) == raw

    def test_wrong_length(self):
        """Only 4-byte values can be swapped."""
        with pytest.raises(ValueError):
            word_swap(b'\x00\x01')


class TestCamFloat:
    """Tests for CAM float decode/encode."""

    def test_decode_known_value(self):
        """4.0f stored word swapped decodes to 1.0 after the quarter scale."""
        raw = word_swap(struct.pack('<f', 4.0))
        assert decode_cam_float(raw) == 1.0

    def test_encode_known_value(self):
        """1.0 is stored as 4.0f with its words swapped."""
        assert encode_cam_float(1.0) == b'\x80\x40\x00\x00'

    def test_zero(self):
        """Zero encodes to all-zero bytes."""
        assert encode_cam_float(0.0) == b'\x00' * 4
        assert decode_cam_float(b'\x00' * 4) == 0.0

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_round_trip(self, seed):
        """decode(encode(x)) == x for float32 values across a wide range."""
        for value in _random_float32(seed):
            x = float(value)
            assert decode_cam_float(encode_cam_float(x)) == x

    def test_typical_calibration(self):
        """Typical keV/channel coefficients survive exactly once in float32."""
        for coeff in (-1.25, 0.5, 0.3662109375, 1.52587890625e-05):
            x = float(np.float32(coeff))
            assert decode_cam_float(encode_cam_float(x)) == x

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf, 1e38, -1e38])
    def test_unrepresentable(self, value):
        """NaN, infinities and values overflowing float32 once scaled are rejected."""
        with pytest.raises(ValueEncodeError):
            encode_cam_float(value)


# =============================================================================
# Timestamps
# =============================================================================

class TestCamDatetime:
    """Tests for CAM timestamp decode/encode."""

    def test_epoch(self):
        """Zero ticks is the Modified Julian Date epoch."""
        assert decode_cam_datetime(b'\x00' * 8) == datetime(1858, 11, 17)

    def test_known_date(self):
        """MJD 58849 is 2020-01-01."""
        ticks = 58849 * 86400 * 10_000_000
        assert decode_cam_datetime(_pair(ticks)) == datetime(2020, 1, 1)

    def test_matches_word_formula(self):
        """The decoded time follows seconds = J*429.4967296 + I/1e7."""
        low, high = 123456789, 11822
        seconds = high * 429.4967296 + low / 1.0e7
        expected = CAM_EPOCH + timedelta(seconds=seconds)

        decoded = decode_cam_datetime(struct.pack('<II', low, high))

        assert abs((decoded - expected).total_seconds()) < 1e-3

    def test_millisecond_precision(self):
        """Sub-millisecond ticks are truncated."""
        ticks = 58849 * 86400 * 10_000_000 + 1_234_567
        decoded = decode_cam_datetime(_pair(ticks))
        assert decoded == datetime(2020, 1, 1, 0, 0, 0, 123000)

    def test_overflow_returns_unset(self):
        """A tick count past year 9999 gives the unset timestamp, not an error."""
        assert decode_cam_datetime(b'\xff' * 8) is None

    def test_encode_round_trip(self):
        """Millisecond timestamps survive encode/decode exactly."""
        when = datetime(2023, 6, 14, 13, 45, 7, 250000)
        assert decode_cam_datetime(encode_cam_datetime(when)) == when

    def test_encode_epoch(self):
        """The epoch encodes to zero ticks."""
        assert encode_cam_datetime(CAM_EPOCH) == b'\x00' * 8

    def test_encode_before_epoch(self):
        """Dates before 1858-11-17 cannot be represented."""
        with pytest.raises(TimeEncodeError):
            encode_cam_datetime(datetime(1800, 1, 1))


# =============================================================================
# Durations
# =============================================================================

class TestCamDuration:
    """Tests for CAM duration decode/encode."""

    def test_decode_ones_complement(self):
        """Each word is complemented before the tick formula is applied."""
        low, high = 3_000_000_000, 0
        raw = struct.pack('<II', 0xFFFFFFFF - low, 0xFFFFFFFF - high)
        assert decode_cam_duration(raw) == pytest.approx(300.0)

    def test_decode_high_word(self):
        """The high word counts units of 429.4967296 s."""
        raw = struct.pack('<II', 0xFFFFFFFF, 0xFFFFFFFF - 2)
        assert decode_cam_duration(raw) == pytest.approx(2 * 429.4967296, rel=1e-6)

    def test_all_ones_is_zero(self):
        """All bits set is a zero duration."""
        assert decode_cam_duration(b'\xff' * 8) == 0.0

    def test_encode_known_value(self):
        """300 s is 3e9 ticks, stored complemented."""
        low, high = struct.unpack('<II', encode_cam_duration(300.0))
        assert low == 0xFFFFFFFF - 3_000_000_000
        assert high == 0xFFFFFFFF

    @pytest.mark.parametrize("seconds", [0.0, 0.5, 1.0, 299.75, 3600.0, 86400.0 * 30, 1.0e7])
    def test_round_trip(self, seconds):
        """Durations come back as the same float32 value."""
        expected = float(np.float32(seconds))
        assert decode_cam_duration(encode_cam_duration(expected)) == expected

    def test_round_trip_float32_values(self):
        """Any float32 duration read from a file is re-encoded to the same value."""
        rng = np.random.default_rng(7)
        for value in rng.uniform(0, 1e6, 200).astype(np.float32):
            x = float(value)
            assert decode_cam_duration(encode_cam_duration(x)) == x

    def test_extended_years(self):
        """Whole-year durations beyond tick range use the year count form."""
        seconds = JULIAN_YEAR_SECONDS * 20000.0
        raw = encode_cam_duration(seconds)

        assert struct.unpack('<i', raw[:4])[0] == 20000
        assert raw[4] == 0x00
        assert raw[7] == 0x80
        assert decode_cam_duration(raw) == pytest.approx(seconds, rel=1e-6)

    def test_extended_megayears(self):
        """Year counts beyond int32 are stored in millions of years."""
        seconds = JULIAN_YEAR_SECONDS * 3.0e9
        raw = encode_cam_duration(seconds)

        assert struct.unpack('<i', raw[:4])[0] == 3000
        assert raw[4] == 0x01
        assert raw[7] == 0x80
        assert decode_cam_duration(raw) == pytest.approx(seconds, rel=1e-6)

    def test_long_tick_duration_reencodes(self):
        """All-zero bytes decode to a very long duration that survives re-encoding."""
        seconds = decode_cam_duration(b'\x00' * 8)

        assert seconds > 1.8e12
        assert decode_cam_duration(encode_cam_duration(seconds)) == seconds

    @pytest.mark.parametrize("seconds", [JULIAN_YEAR_SECONDS * 20000.0, JULIAN_YEAR_SECONDS * 3.0e9])
    def test_extended_decoded_value_reencodes(self, seconds):
        """A decoded (float32 rounded) extended duration encodes to the same bytes."""
        raw = encode_cam_duration(seconds)
        assert encode_cam_duration(decode_cam_duration(raw)) == raw

    @pytest.mark.parametrize("seconds", [
        JULIAN_YEAR_SECONDS * 20000.0 + 0.5,
        JULIAN_YEAR_SECONDS * 20000.0 + 1.0,
        JULIAN_YEAR_SECONDS * (2**31 + 1.0),
        1e30,
    ])
    def test_extended_inexact_rejected(self, seconds):
        """Long durations that are not exact year counts are rejected, not truncated."""
        with pytest.raises(TimeEncodeError):
            encode_cam_duration(seconds)

    @pytest.mark.parametrize("seconds", [-1.0, math.nan, math.inf])
    def test_invalid_rejected(self, seconds):
        """Negative and non-finite durations are rejected."""
        with pytest.raises(TimeEncodeError):
            encode_cam_duration(seconds)


# =============================================================================
# Text
# =============================================================================

class TestText:
    """Tests for fixed-width text fields."""

    def test_decode_trims_nul_padding(self):
        """NUL padding is removed."""
        assert decode_text(b'I2K\x00\x00\x00\x00\x00') == "I2K"

    def test_decode_trims_whitespace(self):
        """Surrounding spaces are removed."""
        assert decode_text(b'  Sample 12   \x00\x00') == "Sample 12"

    def test_decode_blank(self):
        """An all-NUL field is empty."""
        assert decode_text(b'\x00' * 12) == ""

    def test_encode_pads(self):
        """Text is NUL padded to the field width."""
        assert encode_text("Ge", 8) == b'Ge\x00\x00\x00\x00\x00\x00'

    def test_encode_too_long(self):
        """Text wider than the field is rejected."""
        with pytest.raises(ValueEncodeError):
            encode_text("123456789", 8)
