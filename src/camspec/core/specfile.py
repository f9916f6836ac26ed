"""
Spectrum File Object Model

A ``SpecFile`` holds the measurements read from a spectrum file and is the
object that file codecs load into and write from. All loading and writing
is serialized by a per-object re-entrant lock, so a writer may call back
into accessors such as :meth:`SpecFile.sum_measurements` while holding it.
"""

from __future__ import annotations

import io
import logging
import threading
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Union

from camspec.core.measurement import DetectorAnalysis, Measurement

logger = logging.getLogger(__name__)


class SpecFile:
    """
    Collection of measurements from one spectrum file.

    Examples
    --------
    >>> spec = SpecFile()
    >>> if spec.load_cnf_file("sample.cnf"):
    ...     meas = spec.measurements[0]
    ...     print(meas.title, meas.live_time)
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.measurements: List[Measurement] = []
        self.remarks: List[str] = []
        self.filename: str = ""
        self.detectors_analysis: Optional[DetectorAnalysis] = None

    @property
    def lock(self) -> threading.RLock:
        """Re-entrant lock guarding this object."""
        return self._lock

    def reset(self) -> None:
        """Discard all measurements and file-level information."""
        with self._lock:
            self.measurements = []
            self.remarks = []
            self.filename = ""
            self.detectors_analysis = None

    @property
    def sample_numbers(self) -> List[int]:
        """Sorted, unique sample numbers of all measurements."""
        with self._lock:
            return sorted({m.sample_number for m in self.measurements})

    @property
    def detector_numbers(self) -> List[int]:
        """Sorted, unique detector numbers of all measurements."""
        with self._lock:
            return sorted({m.detector_number for m in self.measurements})

    def add_measurement(self, measurement: Measurement) -> None:
        """Append a measurement."""
        with self._lock:
            self.measurements.append(measurement)

    def sum_measurements(
        self,
        sample_numbers: Optional[Iterable[int]] = None,
        detector_numbers: Optional[Iterable[int]] = None,
    ) -> Optional[Measurement]:
        """
        Sum the selected samples and detectors into one measurement.

        Parameters
        ----------
        sample_numbers : iterable of int, optional
            Samples to include; all samples if None or empty
        detector_numbers : iterable of int, optional
            Detectors to include; all detectors if None or empty

        Returns
        -------
        Measurement or None
            Summed measurement, or None if nothing matched the selection.

        Raises
        ------
        ValueError
            If the selected spectra have different numbers of channels.
        """
        with self._lock:
            samples = set(sample_numbers or self.sample_numbers)
            detectors = set(detector_numbers or self.detector_numbers)

            selected = [
                m for m in self.measurements
                if m.sample_number in samples and m.detector_number in detectors
            ]
            if not selected:
                return None

            summed = selected[0].copy()
            for meas in selected[1:]:
                summed = summed + meas
            return summed

    def load_cnf_file(self, filepath: Union[str, Path]) -> bool:
        """
        Load a CNF file from disk.

        Returns False, leaving this object as it was, if the file cannot be
        opened or is not a readable CNF container.
        """
        with self._lock:
            try:
                f = open(filepath, 'rb')
            except OSError as exc:
                logger.warning(f"Could not open {filepath}: {exc}")
                return False

            with f:
                loaded = self.load_from_cnf(f)
            if loaded:
                self.filename = str(filepath)
            return loaded

    def load_from_cnf(self, stream: BinaryIO) -> bool:
        """
        Load a CNF container from a seekable binary stream.

        The container is parsed into a complete measurement before this
        object is touched. On success it replaces the current contents; on
        failure the stream is returned to its position at entry and this
        object is left exactly as it was.
        """
        from camspec.io.cnf.codec import parse_cnf
        from camspec.io.cnf.errors import CNFError

        with self._lock:
            try:
                orig_pos = stream.tell()
            except (OSError, ValueError) as exc:
                logger.warning(f"CNF input stream is not usable: {exc}")
                return False

            try:
                measurement = parse_cnf(stream)
            except (CNFError, OSError) as exc:
                logger.warning(f"Failed to read CNF data: {exc}")
                stream.seek(orig_pos)
                return False
            except Exception as exc:
                logger.exception(f"Unexpected error reading CNF data: {exc}")
                stream.seek(orig_pos)
                return False

            self.reset()
            self.measurements = [measurement]
            return True

    def write_cnf(
        self,
        stream: BinaryIO,
        sample_numbers: Optional[Iterable[int]] = None,
        detector_numbers: Optional[Iterable[int]] = None,
        options=None,
    ) -> bool:
        """
        Write the selected samples and detectors, summed, as a CNF container.

        Parameters
        ----------
        stream : BinaryIO
            Writable binary stream
        sample_numbers : iterable of int, optional
            Samples to include; all samples if None or empty
        detector_numbers : iterable of int, optional
            Detectors to include; all detectors if None or empty
        options : CNFWriteOptions, optional
            Encoder options

        Returns
        -------
        bool
            True if the complete container was written. Nothing is written
            to ``stream`` when False is returned.
        """
        from camspec.io.cnf.errors import CNFEncodeError, CNFError
        from camspec.io.cnf.writer import encode_cnf

        with self._lock:
            try:
                try:
                    summed = self.sum_measurements(sample_numbers, detector_numbers)
                except ValueError as exc:
                    raise CNFEncodeError(str(exc)) from exc
                if summed is None or summed.n_channels == 0:
                    raise CNFEncodeError("No gamma spectrum selected for writing")

                payload = encode_cnf(summed, self.detectors_analysis, options)
                stream.write(payload)
            except (CNFError, OSError) as exc:
                logger.warning(f"Failed to write CNF file: {exc}")
                return False
            return True

    def write_cnf_file(
        self,
        filepath: Union[str, Path],
        sample_numbers: Optional[Iterable[int]] = None,
        detector_numbers: Optional[Iterable[int]] = None,
        options=None,
    ) -> bool:
        """Write a CNF file to disk; the file is only created if encoding succeeds."""
        buffer = io.BytesIO()
        if not self.write_cnf(buffer, sample_numbers, detector_numbers, options):
            return False
        try:
            Path(filepath).write_bytes(buffer.getvalue())
        except OSError as exc:
            logger.warning(f"Could not write {filepath}: {exc}")
            return False
        return True
