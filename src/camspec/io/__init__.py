"""camspec I/O module for spectrum file parsing."""

from camspec.io.cnf import (
    CNFWriteOptions,
    can_read_cnf,
    encode_cnf,
    parse_cnf,
    read_cnf_file,
    write_cnf_file,
)

__all__ = [
    # CNF I/O
    "CNFWriteOptions",
    "can_read_cnf",
    "encode_cnf",
    "parse_cnf",
    "read_cnf_file",
    "write_cnf_file",
]
