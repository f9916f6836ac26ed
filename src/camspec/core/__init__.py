"""Spectrum object model and energy calibration."""

from camspec.core.calibration import (
    EnergyCalType,
    calibration_is_valid,
    fullrangefraction_coef_to_polynomial,
    fullrangefraction_energies,
    polynomial_energies,
)
from camspec.core.measurement import (
    AnalysisResult,
    DetectorAnalysis,
    DetectorType,
    Measurement,
)
from camspec.core.specfile import SpecFile

__all__ = [
    "EnergyCalType",
    "calibration_is_valid",
    "fullrangefraction_coef_to_polynomial",
    "fullrangefraction_energies",
    "polynomial_energies",
    "AnalysisResult",
    "DetectorAnalysis",
    "DetectorType",
    "Measurement",
    "SpecFile",
]
