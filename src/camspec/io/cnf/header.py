"""
CNF Header Record Parser

Reads the title block and the acquisition header block of a CNF container.
Field positions inside the header block are not fixed: two 16-bit layout
words at offsets 34 and 36 shift the acquisition record and the parameter
area, and every field offset is derived from them.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Dict, List, Optional, Tuple

from camspec.core.calibration import EnergyCalType, calibration_is_valid
from camspec.core.measurement import DetectorType
from camspec.io.cnf import blocks
from camspec.io.cnf.errors import (
    BlockNotFoundError,
    InvalidCalibrationError,
    InvalidChannelCountError,
)
from camspec.io.cnf.primitives import (
    decode_cam_datetime,
    decode_cam_duration,
    decode_cam_float,
    decode_text,
)

logger = logging.getLogger(__name__)


MIN_CHECKED_CHANNELS = 64
MAX_CHECKED_CHANNELS = 65536

FALCON_MCA_TYPE = "I2K"
FALCON_GENERIC_DETECTOR = "Ge"


@dataclass
class CNFLayout:
    """
    Field offsets of one header block.

    Attributes:
        header_offset: Start of the header block
        w34: Layout word at header offset 34 (shifts the parameter area)
        w36: Layout word at header offset 36 (shifts the acquisition record)
    """

    header_offset: int
    w34: int = 0
    w36: int = 0

    @property
    def record_offset(self) -> int:
        return self.header_offset + self.w36 + blocks.RECORD_BASE

    @property
    def num_channel_offset(self) -> int:
        return self.header_offset + blocks.NUM_CHANNELS_BASE

    @property
    def energy_calib_offset(self) -> int:
        return self.header_offset + self.w34 + blocks.ENERGY_CALIB_BASE

    @property
    def mca_offset(self) -> int:
        return self.header_offset + self.w34 + blocks.MCA_BASE

    @property
    def instrument_offset(self) -> int:
        return self.header_offset + self.w34 + blocks.INSTRUMENT_BASE

    @property
    def generic_detector_offset(self) -> int:
        return self.header_offset + self.w34 + blocks.GENERIC_DETECTOR_BASE

    @property
    def specific_detector_offset(self) -> int:
        return self.header_offset + self.w34 + blocks.SPECIFIC_DETECTOR_BASE

    @property
    def serial_num_offset(self) -> int:
        return self.header_offset + self.w34 + blocks.SERIAL_NUM_BASE

    def fields(self) -> Dict[str, Tuple[int, int]]:
        """Map of field name to (offset, width)."""
        return {
            'record': (self.record_offset, blocks.RECORD_WIDTH),
            'energy calibration': (self.energy_calib_offset, blocks.ENERGY_CALIB_WIDTH),
            'channel count': (self.num_channel_offset, blocks.NUM_CHANNELS_WIDTH),
            'MCA type': (self.mca_offset, blocks.MCA_WIDTH),
            'instrument name': (self.instrument_offset, blocks.INSTRUMENT_WIDTH),
            'generic detector': (self.generic_detector_offset, blocks.GENERIC_DETECTOR_WIDTH),
            'specific detector': (self.specific_detector_offset, blocks.SPECIFIC_DETECTOR_WIDTH),
            'serial number': (self.serial_num_offset, blocks.SERIAL_NUM_WIDTH),
        }

    def check_bounds(self, size: int) -> None:
        """Check every field fits in the stream before anything is read."""
        for name, (offset, width) in self.fields().items():
            blocks.check_bounds(offset, width, size, name)


@dataclass
class CNFHeader:
    """
    Values read from the title and header blocks.

    Attributes:
        title: Spectrum title
        sample_id: Sample identification
        start_time: Acquisition start (None if unset or out of range)
        real_time: Real time in seconds
        live_time: Live time in seconds
        n_channels: Number of spectrum channels
        calibration_model: Energy calibration form
        calibration_coeffs: Polynomial energy coefficients (empty if none)
        mca_type: MCA type string
        detector_name: Instrument/detector name
        generic_detector: Generic detector type string (e.g. "Ge")
        specific_detector: Specific detector string (unreliable)
        serial_number: Serial number string (usually blank)
    """

    title: str = ""
    sample_id: str = ""
    start_time: Optional[datetime] = None
    real_time: float = 0.0
    live_time: float = 0.0
    n_channels: int = 0
    calibration_model: EnergyCalType = EnergyCalType.INVALID_EQUATION_TYPE
    calibration_coeffs: List[float] = field(default_factory=list)
    mca_type: str = ""
    detector_name: str = ""
    generic_detector: str = ""
    specific_detector: str = ""
    serial_number: str = ""

    @property
    def remarks(self) -> List[str]:
        """Notes derived from header fields, in file order."""
        notes = []
        if self.sample_id:
            notes.append(f"Sample ID: {self.sample_id}")
        if self.mca_type:
            notes.append(f"MCA Type: {self.mca_type}")
        return notes

    def identify_detector(self) -> Dict[str, object]:
        """
        Guess the instrument model from the MCA and generic detector strings.

        Only Falcon 5000 units are recognised (MCA type "I2K" with a "Ge"
        detector). The rule comes from a small number of real files, so a
        match is a best guess rather than a reliable identification.
        """
        if self.mca_type == FALCON_MCA_TYPE and self.generic_detector == FALCON_GENERIC_DETECTOR:
            return {
                'detector_type': DetectorType.FALCON_5000,
                'instrument_type': "Spectrometer",
                'manufacturer': "Canberra",
                'instrument_model': "Falcon 5000",
            }
        return {}


def read_title_block(stream: BinaryIO, size: int) -> Tuple[str, str]:
    """Return (title, sample_id) from the title block, or empty strings if absent."""
    pos = blocks.find_block(stream, blocks.TITLE_MARKER, 0, size)
    if pos is None:
        return "", ""

    width = blocks.TITLE_WIDTH + blocks.SAMPLE_ID_WIDTH
    raw = blocks.read_at(stream, pos + blocks.TITLE_OFFSET, width, size, "title")
    return decode_text(raw[:blocks.TITLE_WIDTH]), decode_text(raw[blocks.TITLE_WIDTH:])


def read_layout(stream: BinaryIO, size: int) -> CNFLayout:
    """Locate the header block and read its two layout words."""
    pos = blocks.find_block(stream, blocks.HEADER_MARKER, 0, size)
    if pos is None:
        raise BlockNotFoundError("Couldn't find record data")

    raw = blocks.read_at(stream, pos + blocks.W34_OFFSET, 4, size, "layout words")
    w34, w36 = struct.unpack('<HH', raw)
    return CNFLayout(header_offset=pos, w34=w34, w36=w36)


def check_channel_count(n_channels: int) -> None:
    """Channel counts in [64, 65536] must be powers of two."""
    is_power_of_two = n_channels != 0 and not (n_channels & (n_channels - 1))
    if not is_power_of_two and MIN_CHECKED_CHANNELS <= n_channels <= MAX_CHECKED_CHANNELS:
        raise InvalidChannelCountError(f"Invalid number of channels: {n_channels}")


def validate_calibration(
    coefficients: List[float],
    n_channels: int,
) -> Tuple[EnergyCalType, List[float]]:
    """
    Classify three polynomial coefficients read from the header.

    All-zero coefficients mean the file carries no calibration and give
    (INVALID_EQUATION_TYPE, []). Other coefficients must form a valid
    polynomial calibration.
    """
    if calibration_is_valid(EnergyCalType.POLYNOMIAL, coefficients, [], n_channels):
        return EnergyCalType.POLYNOMIAL, list(coefficients)

    if any(c != 0.0 for c in coefficients):
        raise InvalidCalibrationError(f"Calibration parameters were invalid: {coefficients}")

    return EnergyCalType.INVALID_EQUATION_TYPE, []


def parse_header(stream: BinaryIO, size: int) -> CNFHeader:
    """
    Parse the title and header blocks.

    Parameters
    ----------
    stream : BinaryIO
        Seekable CNF stream
    size : int
        Stream length in bytes

    Returns
    -------
    CNFHeader
        Parsed header values.

    Raises
    ------
    BlockNotFoundError
        If there is no header block.
    OffsetOutOfRangeError
        If any header field lies past the end of the stream, or the
        channel count needs more data than the stream holds.
    InvalidChannelCountError, InvalidCalibrationError
        If the channel count or calibration are implausible.
    """
    header = CNFHeader()
    header.title, header.sample_id = read_title_block(stream, size)

    layout = read_layout(stream, size)
    layout.check_bounds(size)

    record = blocks.read_at(stream, layout.record_offset, blocks.RECORD_WIDTH, size, "record")
    header.start_time = decode_cam_datetime(record[0:8])
    if header.start_time is None:
        logger.warning("CNF start time overflows the supported date range; leaving it unset")
    header.real_time = decode_cam_duration(record[8:16])
    header.live_time = decode_cam_duration(record[16:24])

    raw = blocks.read_at(stream, layout.num_channel_offset, blocks.NUM_CHANNELS_WIDTH, size, "channel count")
    header.n_channels = struct.unpack('<I', raw)[0]
    check_channel_count(header.n_channels)
    blocks.check_bounds(0, 4 * header.n_channels, size, "channel data")

    raw = blocks.read_at(stream, layout.energy_calib_offset, blocks.ENERGY_CALIB_WIDTH, size, "energy calibration")
    coeffs = [decode_cam_float(raw[i:i + 4]) for i in range(0, blocks.ENERGY_CALIB_WIDTH, 4)]
    header.calibration_model, header.calibration_coeffs = validate_calibration(coeffs, header.n_channels)

    def text_field(name: str) -> str:
        offset, width = layout.fields()[name]
        return decode_text(blocks.read_at(stream, offset, width, size, name))

    header.mca_type = text_field('MCA type')
    header.detector_name = text_field('instrument name')
    header.generic_detector = text_field('generic detector')
    header.specific_detector = text_field('specific detector')
    header.serial_number = text_field('serial number')

    logger.debug(
        f"CNF header at {layout.header_offset}: w34={layout.w34}, w36={layout.w36}, "
        f"{header.n_channels} channels"
    )
    return header
