"""
Deviation-pair block.

Stock CNF containers have no place for energy deviation pairs. When the
writer is allowed to keep them, they go in an extra block that other CNF
readers skip:

    offset 0   marker 0x0D, 0x20
    offset 2   signature b"DEVPAIRS"
    offset 10  uint32 pair count (little-endian)
    offset 14  count * (energy, offset) float32 little-endian
"""

from __future__ import annotations

import struct
from typing import BinaryIO, List, Sequence, Tuple

from camspec.io.cnf import blocks
from camspec.io.cnf.errors import UnsupportedCalibrationError


SIGNATURE = b"DEVPAIRS"
COUNT_OFFSET = 2 + len(SIGNATURE)
PAIRS_OFFSET = COUNT_OFFSET + 4
MAX_PAIRS = (blocks.BLOCK_SIZE - PAIRS_OFFSET) // 8


def pack_deviation_pairs(pairs: Sequence[Tuple[float, float]]) -> bytes:
    """Build a complete deviation-pair block."""
    if len(pairs) > MAX_PAIRS:
        raise UnsupportedCalibrationError(
            f"{len(pairs)} deviation pairs exceed the {MAX_PAIRS} that fit in a block"
        )

    block = bytearray(blocks.BLOCK_SIZE)
    block[0] = blocks.DEVIATION_PAIR_MARKER
    block[1] = blocks.BLOCK_TAG
    block[2:COUNT_OFFSET] = SIGNATURE
    struct.pack_into('<I', block, COUNT_OFFSET, len(pairs))
    for i, (energy, offset) in enumerate(pairs):
        try:
            struct.pack_into('<ff', block, PAIRS_OFFSET + 8 * i, energy, offset)
        except (OverflowError, struct.error) as exc:
            raise UnsupportedCalibrationError(
                f"Deviation pair ({energy}, {offset}) does not fit in float32"
            ) from exc
    return bytes(block)


def read_deviation_pairs(stream: BinaryIO, size: int) -> List[Tuple[float, float]]:
    """Deviation pairs from the first signed deviation-pair block, or [] if there is none."""
    pos = blocks.find_block(stream, blocks.DEVIATION_PAIR_MARKER, 0, size)
    if pos is None:
        return []

    block = blocks.read_at(stream, pos, blocks.BLOCK_SIZE, size, "deviation pairs")
    if block[2:COUNT_OFFSET] != SIGNATURE:
        return []
    count = struct.unpack_from('<I', block, COUNT_OFFSET)[0]
    if count > MAX_PAIRS:
        return []
    return [struct.unpack_from('<ff', block, PAIRS_OFFSET + 8 * i) for i in range(count)]
