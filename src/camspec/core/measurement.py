"""
Measurement Data Model

In-memory representation of a single gamma spectrum measurement, as read
from or written to a spectrum file, plus the optional nuclide
identification results that may accompany it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from camspec.core.calibration import (
    EnergyCalType,
    POLYNOMIAL_TYPES,
    fullrangefraction_energies,
    polynomial_energies,
)


class DetectorType(Enum):
    """Instrument models that can be identified from file contents."""

    UNKNOWN = "unknown"
    FALCON_5000 = "Falcon 5000"


@dataclass(eq=False)
class Measurement:
    """
    A single gamma spectrum.

    Attributes
    ----------
    gamma_counts : np.ndarray
        Channel counts (float32)
    title : str
        Spectrum title
    sample_id : str
        Sample identification
    start_time : Optional[datetime]
        Acquisition start; None when unknown
    live_time : float
        Live time in seconds
    real_time : float
        Real time in seconds
    energy_calibration_model : EnergyCalType
        Form of the energy calibration
    calibration_coeffs : List[float]
        Energy calibration coefficients (empty when there is no calibration)
    deviation_pairs : List[Tuple[float, float]]
        (energy, offset) non-linearity corrections
    gamma_count_sum : float
        Sum of ``gamma_counts``, accumulated in double precision
    detector_name : str
        Detector or instrument name
    detector_type : DetectorType
        Identified instrument model
    remarks : List[str]
        Free-form notes collected while reading the file
    """

    gamma_counts: np.ndarray = field(default_factory=lambda: np.array([], dtype=np.float32))
    title: str = ""
    sample_id: str = ""
    start_time: Optional[datetime] = None
    live_time: float = 0.0
    real_time: float = 0.0
    energy_calibration_model: EnergyCalType = EnergyCalType.INVALID_EQUATION_TYPE
    calibration_coeffs: List[float] = field(default_factory=list)
    deviation_pairs: List[Tuple[float, float]] = field(default_factory=list)
    gamma_count_sum: Optional[float] = None
    detector_name: str = ""
    detector_type: DetectorType = DetectorType.UNKNOWN
    instrument_type: str = ""
    manufacturer: str = ""
    instrument_model: str = ""
    instrument_id: str = ""
    sample_number: int = 1
    detector_number: int = 0
    remarks: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.gamma_counts = np.asarray(self.gamma_counts, dtype=np.float32)
        if self.gamma_count_sum is None:
            self.gamma_count_sum = float(np.sum(self.gamma_counts, dtype=np.float64))

    @property
    def n_channels(self) -> int:
        """Number of channels."""
        return len(self.gamma_counts)

    def channel_energies(self) -> Optional[np.ndarray]:
        """
        Lower energy edge of every channel, plus the upper edge of the last.

        Returns None when the measurement has no usable calibration.
        """
        model = self.energy_calibration_model
        if model in POLYNOMIAL_TYPES and self.calibration_coeffs:
            return polynomial_energies(self.calibration_coeffs, self.n_channels, self.deviation_pairs)
        if model == EnergyCalType.FULL_RANGE_FRACTION and self.calibration_coeffs:
            return fullrangefraction_energies(self.calibration_coeffs, self.n_channels, self.deviation_pairs)
        if model == EnergyCalType.LOWER_CHANNEL_EDGE and len(self.calibration_coeffs) >= self.n_channels:
            return np.asarray(self.calibration_coeffs, dtype=float)
        return None

    def energy_to_channel(self, energy: float) -> float:
        """
        Fractional channel number corresponding to an energy.

        Raises
        ------
        ValueError
            If there is no calibration or the energy is outside the spectrum.
        """
        edges = self.channel_energies()
        if edges is None:
            raise ValueError("Measurement has no usable energy calibration")
        if not edges[0] <= energy <= edges[-1]:
            raise ValueError(f"Energy {energy} keV is outside [{edges[0]}, {edges[-1]}] keV")

        if self.energy_calibration_model in POLYNOMIAL_TYPES and not self.deviation_pairs:
            from scipy import optimize

            coeffs = np.asarray(self.calibration_coeffs, dtype=float)

            def energy_diff(ch):
                return np.polyval(coeffs[::-1], ch) - energy

            return float(optimize.brentq(energy_diff, 0.0, float(self.n_channels)))

        return float(np.interp(energy, edges, np.arange(len(edges), dtype=float)))

    def copy(self) -> 'Measurement':
        """Create deep copy."""
        return Measurement(
            gamma_counts=self.gamma_counts.copy(),
            title=self.title,
            sample_id=self.sample_id,
            start_time=self.start_time,
            live_time=self.live_time,
            real_time=self.real_time,
            energy_calibration_model=self.energy_calibration_model,
            calibration_coeffs=list(self.calibration_coeffs),
            deviation_pairs=list(self.deviation_pairs),
            gamma_count_sum=self.gamma_count_sum,
            detector_name=self.detector_name,
            detector_type=self.detector_type,
            instrument_type=self.instrument_type,
            manufacturer=self.manufacturer,
            instrument_model=self.instrument_model,
            instrument_id=self.instrument_id,
            sample_number=self.sample_number,
            detector_number=self.detector_number,
            remarks=list(self.remarks),
            metadata=dict(self.metadata),
        )

    def __add__(self, other: 'Measurement') -> 'Measurement':
        """Sum two spectra (counts add, live and real times add)."""
        if not isinstance(other, Measurement):
            raise TypeError("Can only add Measurement to Measurement")

        if self.n_channels != other.n_channels:
            raise ValueError("Spectra must have same number of channels")

        result = self.copy()
        counts = self.gamma_counts.astype(np.float64) + other.gamma_counts.astype(np.float64)
        result.gamma_counts = counts.astype(np.float32)
        result.gamma_count_sum = self.gamma_count_sum + other.gamma_count_sum
        result.live_time = self.live_time + other.live_time
        result.real_time = self.real_time + other.real_time

        starts = [t for t in (self.start_time, other.start_time) if t is not None]
        result.start_time = min(starts) if starts else None

        for remark in other.remarks:
            if remark not in result.remarks:
                result.remarks.append(remark)
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'gamma_counts': self.gamma_counts.tolist(),
            'title': self.title,
            'sample_id': self.sample_id,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'live_time': self.live_time,
            'real_time': self.real_time,
            'energy_calibration_model': self.energy_calibration_model.value,
            'calibration_coeffs': list(self.calibration_coeffs),
            'deviation_pairs': [list(p) for p in self.deviation_pairs],
            'gamma_count_sum': self.gamma_count_sum,
            'detector_name': self.detector_name,
            'detector_type': self.detector_type.value,
            'instrument_type': self.instrument_type,
            'manufacturer': self.manufacturer,
            'instrument_model': self.instrument_model,
            'instrument_id': self.instrument_id,
            'sample_number': self.sample_number,
            'detector_number': self.detector_number,
            'remarks': list(self.remarks),
            'metadata': self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Measurement':
        """Create Measurement from dictionary."""
        return cls(
            gamma_counts=np.array(data.get('gamma_counts', []), dtype=np.float32),
            title=data.get('title', ''),
            sample_id=data.get('sample_id', ''),
            start_time=datetime.fromisoformat(data['start_time']) if data.get('start_time') else None,
            live_time=data.get('live_time', 0.0),
            real_time=data.get('real_time', 0.0),
            energy_calibration_model=EnergyCalType(
                data.get('energy_calibration_model', EnergyCalType.INVALID_EQUATION_TYPE.value)
            ),
            calibration_coeffs=list(data.get('calibration_coeffs', [])),
            deviation_pairs=[tuple(p) for p in data.get('deviation_pairs', [])],
            gamma_count_sum=data.get('gamma_count_sum'),
            detector_name=data.get('detector_name', ''),
            detector_type=DetectorType(data.get('detector_type', DetectorType.UNKNOWN.value)),
            instrument_type=data.get('instrument_type', ''),
            manufacturer=data.get('manufacturer', ''),
            instrument_model=data.get('instrument_model', ''),
            instrument_id=data.get('instrument_id', ''),
            sample_number=data.get('sample_number', 1),
            detector_number=data.get('detector_number', 0),
            remarks=list(data.get('remarks', [])),
            metadata=data.get('metadata', {}),
        )


@dataclass
class AnalysisResult:
    """One nuclide identification result."""

    nuclide: str = ""
    remark: str = ""
    activity: float = 0.0
    id_confidence: str = ""
    detector: str = ""


@dataclass
class DetectorAnalysis:
    """Nuclide identification results that accompany a spectrum file."""

    algorithm_name: str = ""
    algorithm_result_description: str = ""
    remarks: List[str] = field(default_factory=list)
    results: List[AnalysisResult] = field(default_factory=list)

    def is_empty(self) -> bool:
        """True if there is nothing worth writing."""
        return not (
            self.algorithm_name
            or self.algorithm_result_description
            or self.remarks
            or self.results
        )


