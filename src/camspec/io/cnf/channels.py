"""CNF channel data reader."""

from __future__ import annotations

import logging
from typing import BinaryIO, Tuple

import numpy as np

from camspec.io.cnf import blocks
from camspec.io.cnf.errors import BlockNotFoundError

logger = logging.getLogger(__name__)


# The first two channel slots hold live/real time bookkeeping, not counts.
BOOKKEEPING_CHANNELS = 2


def locate_channel_data(stream: BinaryIO, size: int) -> int:
    """
    Offset of the first channel count.

    When the channel section spans two tagged blocks, the counts start one
    block after the second; otherwise they start at the single block.
    """
    first = blocks.find_block(stream, blocks.CHANNEL_MARKER, 0, size)
    if first is None:
        raise BlockNotFoundError("Couldn't locate channel data portion of file")

    second = blocks.find_block(stream, blocks.CHANNEL_MARKER, first + blocks.BLOCK_SIZE, size)
    if second is not None:
        return second + blocks.BLOCK_SIZE
    return first


def read_channel_data(stream: BinaryIO, size: int, n_channels: int) -> Tuple[np.ndarray, float]:
    """
    Read the channel histogram.

    Parameters
    ----------
    stream : BinaryIO
        Seekable CNF stream
    size : int
        Stream length in bytes
    n_channels : int
        Number of channels from the header

    Returns
    -------
    counts : np.ndarray
        float32 channel counts with the bookkeeping channels zeroed
    total : float
        Sum of counts, accumulated in float64
    """
    start = locate_channel_data(stream, size)
    raw = blocks.read_at(stream, start, 4 * n_channels, size, "channel data")

    channel_data = np.frombuffer(raw, dtype='<u4').copy()
    channel_data[:BOOKKEEPING_CHANNELS] = 0

    counts = channel_data.astype(np.float32)
    total = float(np.sum(counts, dtype=np.float64))

    logger.debug(f"Read {n_channels} channels starting at offset {start}")
    return counts, total
