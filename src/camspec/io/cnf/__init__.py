"""Canberra CNF (CAM) container codec."""

from camspec.io.cnf.errors import (
    BlockNotFoundError,
    CNFEncodeError,
    CNFError,
    InvalidCalibrationError,
    InvalidChannelCountError,
    NotOpenError,
    OffsetOutOfRangeError,
    TimeEncodeError,
    TimestampOverflowError,
    UnsupportedCalibrationError,
    ValueEncodeError,
)
from camspec.io.cnf.writer import CNFWriteOptions, encode_cnf
from camspec.io.cnf.codec import (
    can_read_cnf,
    parse_cnf,
    read_cnf_file,
    write_cnf_file,
)

__all__ = [
    "BlockNotFoundError",
    "CNFEncodeError",
    "CNFError",
    "InvalidCalibrationError",
    "InvalidChannelCountError",
    "NotOpenError",
    "OffsetOutOfRangeError",
    "TimeEncodeError",
    "TimestampOverflowError",
    "UnsupportedCalibrationError",
    "ValueEncodeError",
    "CNFWriteOptions",
    "encode_cnf",
    "can_read_cnf",
    "parse_cnf",
    "read_cnf_file",
    "write_cnf_file",
]
