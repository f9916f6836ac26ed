"""
CNF block layout and Block Locator.

A CNF container is a sequence of 512-byte blocks. Blocks that start a
section carry a one byte marker followed by ``0x20``. There is no index, so
sections are found by a linear scan over block boundaries.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Optional

from camspec.io.cnf.errors import OffsetOutOfRangeError

logger = logging.getLogger(__name__)


BLOCK_SIZE = 512
BLOCK_TAG = 0x20

# Section markers
HEADER_MARKER = 0x00
TITLE_MARKER = 0x01
CHANNEL_MARKER = 0x05
DEVIATION_PAIR_MARKER = 0x0D

# Header block: layout parameters
W34_OFFSET = 34
W36_OFFSET = 36

# Header block: fields relative to the header block start. Fields marked with
# W34/W36 are additionally shifted by that layout parameter.
RECORD_BASE = 49                 # + W36
NUM_CHANNELS_BASE = 185
ENERGY_CALIB_BASE = 116          # + W34
MCA_BASE = 204                   # + W34
INSTRUMENT_BASE = 49             # + W34
GENERIC_DETECTOR_BASE = 780      # + W34
SPECIFIC_DETECTOR_BASE = 74      # + W34
SERIAL_NUM_BASE = 988            # + W34

RECORD_WIDTH = 24
NUM_CHANNELS_WIDTH = 4
ENERGY_CALIB_WIDTH = 12
MCA_WIDTH = 8
INSTRUMENT_WIDTH = 31
GENERIC_DETECTOR_WIDTH = 8
SPECIFIC_DETECTOR_WIDTH = 16
SERIAL_NUM_WIDTH = 12

# Title block
TITLE_OFFSET = 48
TITLE_WIDTH = 64
SAMPLE_ID_WIDTH = 16


def stream_size(stream: BinaryIO) -> int:
    """Return the total length of a seekable stream without moving its position."""
    pos = stream.tell()
    try:
        return stream.seek(0, 2)
    finally:
        stream.seek(pos)


def find_block(
    stream: BinaryIO,
    marker: int,
    start: int,
    size: int,
) -> Optional[int]:
    """
    Find the first block tagged ``(marker, 0x20)`` at or after ``start``.

    Parameters
    ----------
    stream : BinaryIO
        Seekable binary stream.
    marker : int
        Section marker byte.
    start : int
        Offset of the first candidate block.
    size : int
        Stream length in bytes.

    Returns
    -------
    int or None
        Offset of the matching block, or None if no block matches before
        ``pos + 512`` reaches the end of the stream.
    """
    pos = start
    while pos + BLOCK_SIZE < size:
        stream.seek(pos)
        tag = stream.read(2)
        if len(tag) == 2 and tag[0] == marker and tag[1] == BLOCK_TAG:
            logger.debug(f"Found block 0x{marker:02x} at offset {pos}")
            return pos
        pos += BLOCK_SIZE
    return None


def check_bounds(offset: int, width: int, size: int, name: str = "field") -> None:
    """Raise OffsetOutOfRangeError if ``offset + width`` runs past ``size``."""
    if offset < 0 or offset + width > size:
        raise OffsetOutOfRangeError(
            f"{name} at offset {offset} (+{width} bytes) exceeds stream length {size}"
        )


def read_at(stream: BinaryIO, offset: int, width: int, size: int, name: str = "field") -> bytes:
    """Read exactly ``width`` bytes at ``offset`` after checking stream bounds."""
    check_bounds(offset, width, size, name)
    stream.seek(offset)
    raw = stream.read(width)
    if len(raw) != width:
        raise OffsetOutOfRangeError(f"Short read of {name}: got {len(raw)} of {width} bytes")
    return raw
