"""
camspec: Canberra CNF (CAM) gamma spectrum files.

>>> from camspec import SpecFile
>>> spec = SpecFile()
>>> spec.load_cnf_file("sample.cnf")
"""

from importlib.metadata import PackageNotFoundError, version

from camspec.core import EnergyCalType, Measurement, SpecFile
from camspec.io.cnf import CNFError, CNFWriteOptions, can_read_cnf, read_cnf_file, write_cnf_file

__all__ = [
    "__version__",
    "CNFError",
    "CNFWriteOptions",
    "EnergyCalType",
    "Measurement",
    "SpecFile",
    "can_read_cnf",
    "read_cnf_file",
    "write_cnf_file",
]

try:
    __version__ = version("camspec")
except PackageNotFoundError:
    __version__ = "0.1.0"
