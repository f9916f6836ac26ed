"""
CNF File Reader/Writer

Reads and writes Canberra CNF (CAM) binary spectrum files.

CNF is the proprietary block-structured format used by Canberra/Mirion
gamma spectroscopy systems (Genie 2000, Falcon 5000, ...). There is no
public description of the layout; only the fields below are understood:

- Title and sample id (title block)
- Acquisition start, real time and live time
- Three-term polynomial energy calibration
- MCA type, detector name and generic detector type
- Channel histogram

References:
- Based on reverse-engineering and community documentation
- Compatible with Genie 2000 and similar systems
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Optional, Union

from camspec.core.measurement import DetectorAnalysis, Measurement
from camspec.io.cnf import blocks
from camspec.io.cnf.channels import read_channel_data
from camspec.io.cnf.deviation import read_deviation_pairs
from camspec.io.cnf.errors import NotOpenError
from camspec.io.cnf.header import parse_header
from camspec.io.cnf.writer import CNFWriteOptions, encode_cnf

logger = logging.getLogger(__name__)


def parse_cnf(stream: BinaryIO) -> Measurement:
    """
    Parse a CNF container from a seekable binary stream.

    Parameters
    ----------
    stream : BinaryIO
        Seekable stream positioned anywhere; block offsets are absolute.

    Returns
    -------
    Measurement
        Fully populated measurement.

    Raises
    ------
    CNFError
        Subclass describing why the stream is not a readable CNF container.
    """
    size = blocks.stream_size(stream)
    header = parse_header(stream, size)
    counts, total = read_channel_data(stream, size, header.n_channels)

    measurement = Measurement(
        gamma_counts=counts,
        gamma_count_sum=total,
        title=header.title,
        sample_id=header.sample_id,
        start_time=header.start_time,
        real_time=header.real_time,
        live_time=header.live_time,
        energy_calibration_model=header.calibration_model,
        calibration_coeffs=header.calibration_coeffs,
        detector_name=header.detector_name,
        instrument_id=header.serial_number,
        remarks=header.remarks,
    )
    for name, value in header.identify_detector().items():
        setattr(measurement, name, value)

    if measurement.calibration_coeffs:
        measurement.deviation_pairs = read_deviation_pairs(stream, size)

    return measurement


def read_cnf_file(filepath: Union[str, Path]) -> Measurement:
    """
    Read a Canberra CNF file.

    Parameters
    ----------
    filepath : str or Path
        Path to .cnf file.

    Returns
    -------
    Measurement
        Parsed spectrum with counts, calibration, and metadata.

    Raises
    ------
    FileNotFoundError
        If file doesn't exist.
    NotOpenError
        If the file exists but cannot be opened.
    CNFError
        If the file is not a readable CNF container.

    Examples
    --------
    >>> meas = read_cnf_file("sample.cnf")
    >>> print(f"Channels: {meas.n_channels}")
    >>> print(f"Live time: {meas.live_time} s")
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        f = open(filepath, 'rb')
    except OSError as exc:
        raise NotOpenError(f"Could not open {filepath}: {exc}") from exc

    with f:
        measurement = parse_cnf(f)
    measurement.metadata['source_file'] = str(filepath)
    return measurement


def can_read_cnf(filepath: Union[str, Path]) -> bool:
    """
    Check if a file appears to be a CNF file.

    Only the presence of a header block and a channel block is checked;
    CNF has no magic number.
    """
    try:
        path = Path(filepath)
        if not path.is_file():
            return False

        with open(path, 'rb') as f:
            size = blocks.stream_size(f)
            return (
                blocks.find_block(f, blocks.HEADER_MARKER, 0, size) is not None
                and blocks.find_block(f, blocks.CHANNEL_MARKER, 0, size) is not None
            )
    except OSError:
        return False


def write_cnf_file(
    filepath: Union[str, Path],
    measurement: Measurement,
    analysis: Optional[DetectorAnalysis] = None,
    options: Optional[CNFWriteOptions] = None,
) -> None:
    """
    Write one measurement as a CNF file.

    The file is only created once the whole container has been encoded.

    Raises
    ------
    CNFEncodeError
        If the measurement cannot be represented in CNF.
    """
    payload = encode_cnf(measurement, analysis, options)
    Path(filepath).write_bytes(payload)
    logger.debug(f"Wrote {len(payload)} byte CNF file {filepath}")


__all__ = [
    "parse_cnf",
    "read_cnf_file",
    "can_read_cnf",
    "write_cnf_file",
]
