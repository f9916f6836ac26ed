"""
CNF Container Encoder

Serializes one measurement into the block layout read by
:func:`camspec.io.cnf.codec.parse_cnf`:

    offset 0      header block (0x00), three blocks long
    offset 1536   title block (0x01)
    [offset 2048  deviation-pair block (0x0D), only when enabled]
    next          channel section header block (0x05)
    next + 512    channel data block (0x05)
    next + 1024   uint32 channel counts, padded to a whole block

CNF stores only a three-term polynomial energy calibration, so other
calibration forms are converted or dropped before writing.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from camspec.core.calibration import (
    EnergyCalType,
    POLYNOMIAL_TYPES,
    calibration_is_valid,
    fullrangefraction_coef_to_polynomial,
)
from camspec.core.measurement import DetectorAnalysis, DetectorType, Measurement
from camspec.io.cnf import blocks
from camspec.io.cnf.deviation import pack_deviation_pairs
from camspec.io.cnf.errors import (
    CNFEncodeError,
    InvalidChannelCountError,
    UnsupportedCalibrationError,
    ValueEncodeError,
)
from camspec.io.cnf.header import FALCON_GENERIC_DETECTOR, FALCON_MCA_TYPE, CNFLayout, check_channel_count
from camspec.io.cnf.primitives import (
    encode_cam_datetime,
    encode_cam_duration,
    encode_cam_float,
    encode_text,
)

logger = logging.getLogger(__name__)


HEADER_BLOCKS = 3
DEFAULT_W34 = 48
DEFAULT_W36 = 0
N_CALIBRATION_COEFFS = 3
UINT32_MAX = 0xFFFFFFFF
MCA_REMARK_PREFIX = "MCA Type: "

# Decodes as a date past the supported range, i.e. as an unset start time.
UNSET_TIMESTAMP = b'\xff' * 8


@dataclass
class CNFWriteOptions:
    """
    CNF encoder settings.

    Attributes:
        deviation_pairs_supported: Write energy deviation pairs to an extra
            block. When False, deviation pairs are dropped with a warning.
    """

    deviation_pairs_supported: bool = False


def normalize_calibration(measurement: Measurement) -> List[float]:
    """
    Convert a measurement's energy calibration to three polynomial terms.

    Returns
    -------
    list of float
        Three coefficients, or [] when the calibration cannot be expressed
        as a polynomial (lower channel edge, invalid or all-zero).

    Raises
    ------
    UnsupportedCalibrationError
        If higher-order polynomial terms are non-zero, or the converted
        calibration is not valid.
    """
    model = measurement.energy_calibration_model
    coeffs = [float(c) for c in measurement.calibration_coeffs]
    n_channels = measurement.n_channels

    if model in POLYNOMIAL_TYPES:
        pass
    elif model == EnergyCalType.FULL_RANGE_FRACTION:
        if len(coeffs) > 4 and coeffs[4] != 0.0:
            logger.warning("Dropping low-energy full range fraction term; CNF cannot store it")
        coeffs = fullrangefraction_coef_to_polynomial(coeffs, n_channels) if coeffs else []
    else:
        return []

    if not coeffs or all(c == 0.0 for c in coeffs):
        return []

    if any(c != 0.0 for c in coeffs[N_CALIBRATION_COEFFS:]):
        raise UnsupportedCalibrationError(
            f"CNF stores at most {N_CALIBRATION_COEFFS} polynomial terms, got {coeffs}"
        )
    coeffs = (coeffs + [0.0] * N_CALIBRATION_COEFFS)[:N_CALIBRATION_COEFFS]

    if not calibration_is_valid(EnergyCalType.POLYNOMIAL, coeffs, [], n_channels):
        raise UnsupportedCalibrationError(f"Energy calibration {coeffs} is not valid")
    return coeffs


def _fit_text(text: str, width: int, name: str) -> bytes:
    try:
        return encode_text(text, width)
    except ValueEncodeError as exc:
        raise ValueEncodeError(f"{name} {text!r} does not fit in {width} bytes") from exc


def _mca_type(measurement: Measurement) -> str:
    for remark in measurement.remarks:
        if remark.startswith(MCA_REMARK_PREFIX):
            return remark[len(MCA_REMARK_PREFIX):].strip()
    if measurement.detector_type == DetectorType.FALCON_5000:
        return FALCON_MCA_TYPE
    return ""


def build_header_block(measurement: Measurement, coeffs: List[float]) -> bytes:
    """Header block with acquisition record, calibration and instrument fields."""
    layout = CNFLayout(header_offset=0, w34=DEFAULT_W34, w36=DEFAULT_W36)
    block = bytearray(HEADER_BLOCKS * blocks.BLOCK_SIZE)

    block[0] = blocks.HEADER_MARKER
    block[1] = blocks.BLOCK_TAG
    struct.pack_into('<HH', block, blocks.W34_OFFSET, layout.w34, layout.w36)

    if measurement.start_time is not None:
        start = encode_cam_datetime(measurement.start_time)
    else:
        start = UNSET_TIMESTAMP
    record = start + encode_cam_duration(measurement.real_time) + encode_cam_duration(measurement.live_time)
    block[layout.record_offset:layout.record_offset + blocks.RECORD_WIDTH] = record

    struct.pack_into('<I', block, layout.num_channel_offset, measurement.n_channels)

    calib = b''.join(encode_cam_float(c) for c in coeffs) if coeffs else bytes(blocks.ENERGY_CALIB_WIDTH)
    block[layout.energy_calib_offset:layout.energy_calib_offset + blocks.ENERGY_CALIB_WIDTH] = calib

    generic_detector = FALCON_GENERIC_DETECTOR if measurement.detector_type == DetectorType.FALCON_5000 else ""
    text_fields = [
        (layout.mca_offset, blocks.MCA_WIDTH, _mca_type(measurement), "MCA type"),
        (layout.instrument_offset, blocks.INSTRUMENT_WIDTH, measurement.detector_name, "detector name"),
        (layout.generic_detector_offset, blocks.GENERIC_DETECTOR_WIDTH, generic_detector, "generic detector"),
        (layout.serial_num_offset, blocks.SERIAL_NUM_WIDTH, measurement.instrument_id, "serial number"),
    ]
    for offset, width, text, name in text_fields:
        block[offset:offset + width] = _fit_text(text, width, name)

    return bytes(block)


def build_title_block(measurement: Measurement) -> bytes:
    """Title block holding the title and sample id."""
    block = bytearray(blocks.BLOCK_SIZE)
    block[0] = blocks.TITLE_MARKER
    block[1] = blocks.BLOCK_TAG

    start = blocks.TITLE_OFFSET
    block[start:start + blocks.TITLE_WIDTH] = _fit_text(measurement.title, blocks.TITLE_WIDTH, "title")
    start += blocks.TITLE_WIDTH
    block[start:start + blocks.SAMPLE_ID_WIDTH] = _fit_text(
        measurement.sample_id, blocks.SAMPLE_ID_WIDTH, "sample id"
    )
    return bytes(block)


def build_channel_section(counts: np.ndarray) -> bytes:
    """Two tagged channel blocks followed by the uint32 counts."""
    values = np.asarray(counts, dtype=np.float64)
    if not np.all(np.isfinite(values)):
        raise ValueEncodeError("Channel counts must be finite")
    values = np.rint(values)
    if np.any(values < 0) or np.any(values > UINT32_MAX + 1):
        raise ValueEncodeError("Channel counts must fit in an unsigned 32-bit integer")

    channel_data = np.clip(values, 0, UINT32_MAX).astype('<u4')
    channel_data[:2] = 0
    payload = channel_data.tobytes()

    n_data_blocks = max(1, -(-len(payload) // blocks.BLOCK_SIZE))
    section = bytearray((2 + n_data_blocks) * blocks.BLOCK_SIZE)
    for block_start in (0, blocks.BLOCK_SIZE):
        section[block_start] = blocks.CHANNEL_MARKER
        section[block_start + 1] = blocks.BLOCK_TAG
    data_start = 2 * blocks.BLOCK_SIZE
    section[data_start:data_start + len(payload)] = payload
    return bytes(section)


def encode_cnf(
    measurement: Measurement,
    analysis: Optional[DetectorAnalysis] = None,
    options: Optional[CNFWriteOptions] = None,
) -> bytes:
    """
    Encode one measurement as a complete CNF container.

    Parameters
    ----------
    measurement : Measurement
        Spectrum to write; multiple detectors or samples must already be summed
    analysis : DetectorAnalysis, optional
        Nuclide identification results
    options : CNFWriteOptions, optional
        Encoder settings

    Returns
    -------
    bytes
        The container image.

    Raises
    ------
    CNFEncodeError
        If the measurement has no channel data or any field cannot be
        represented.
    ValueEncodeError
        If the channel count would be rejected on reading, or a text field
        is longer than its slot. Text is never truncated.
    """
    options = options or CNFWriteOptions()

    if measurement is None or measurement.n_channels == 0:
        raise CNFEncodeError("No gamma channel data to write")
    try:
        check_channel_count(measurement.n_channels)
    except InvalidChannelCountError as exc:
        raise ValueEncodeError(f"{exc}; CNF needs a power of two between 64 and 65536") from exc

    coeffs = normalize_calibration(measurement)
    if not coeffs and any(c != 0.0 for c in measurement.calibration_coeffs):
        logger.info(
            f"{measurement.energy_calibration_model.value} energy calibration has no "
            "CNF representation; writing without calibration"
        )

    parts = [build_header_block(measurement, coeffs), build_title_block(measurement)]

    if measurement.deviation_pairs and coeffs:
        if options.deviation_pairs_supported:
            parts.append(pack_deviation_pairs(measurement.deviation_pairs))
        else:
            logger.warning(
                f"Dropping {len(measurement.deviation_pairs)} deviation pairs; "
                "CNF output is not configured to store them"
            )

    parts.append(build_channel_section(measurement.gamma_counts))

    if analysis is not None and not analysis.is_empty():
        logger.info(f"{len(analysis.results)} analysis results are not stored in CNF output")

    return b''.join(parts)
