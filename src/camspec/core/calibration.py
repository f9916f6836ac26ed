"""
Energy Calibration Models

Channel-to-energy calibration forms used by gamma spectrum files:

- Polynomial:         E(x) = a0 + a1*x + a2*x^2 + ...
- Full range fraction: E(x) = a + b*(x/n) + c*(x/n)^2 + d*(x/n)^3 + e/(1 + 60*(x/n))
- Lower channel edge:  one energy per channel edge, given explicitly

where x is the channel number and n the number of channels. Deviation
pairs (energy, offset) add a non-linear correction on top of the
functional form.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray


class EnergyCalType(Enum):
    """Functional form of an energy calibration."""

    POLYNOMIAL = "polynomial"
    FULL_RANGE_FRACTION = "full_range_fraction"
    LOWER_CHANNEL_EDGE = "lower_channel_edge"
    UNSPECIFIED_USING_DEFAULT_POLYNOMIAL = "unspecified_default_polynomial"  # File gave no calibration
    INVALID_EQUATION_TYPE = "invalid"


POLYNOMIAL_TYPES = (
    EnergyCalType.POLYNOMIAL,
    EnergyCalType.UNSPECIFIED_USING_DEFAULT_POLYNOMIAL,
)


def polynomial_energies(
    coefficients: Sequence[float],
    n_channels: int,
    deviation_pairs: Sequence[Tuple[float, float]] = (),
) -> NDArray:
    """
    Lower energy edge of each channel for a polynomial calibration.

    Returns ``n_channels + 1`` values so the upper edge of the last channel
    is included.
    """
    channels = np.arange(n_channels + 1, dtype=float)
    energies = np.polyval(np.asarray(coefficients, dtype=float)[::-1], channels)
    return apply_deviation_pairs(energies, deviation_pairs)


def fullrangefraction_energies(
    coefficients: Sequence[float],
    n_channels: int,
    deviation_pairs: Sequence[Tuple[float, float]] = (),
) -> NDArray:
    """Lower energy edge of each channel for a full range fraction calibration."""
    coeffs = list(coefficients) + [0.0] * max(0, 5 - len(coefficients))
    a, b, c, d, e = coeffs[:5]
    x = np.arange(n_channels + 1, dtype=float) / max(n_channels, 1)
    energies = a + b * x + c * x**2 + d * x**3 + e / (1.0 + 60.0 * x)
    return apply_deviation_pairs(energies, deviation_pairs)


def apply_deviation_pairs(
    energies: NDArray,
    deviation_pairs: Sequence[Tuple[float, float]],
) -> NDArray:
    """Add the deviation-pair offset, linearly interpolated, to each energy."""
    if len(deviation_pairs) == 0:
        return energies
    pairs = sorted(deviation_pairs)
    dev_energy = np.array([p[0] for p in pairs], dtype=float)
    dev_offset = np.array([p[1] for p in pairs], dtype=float)
    return energies + np.interp(energies, dev_energy, dev_offset)


def calibration_is_valid(
    model: EnergyCalType,
    coefficients: Sequence[float],
    deviation_pairs: Sequence[Tuple[float, float]],
    n_channels: int,
) -> bool:
    """
    Check that a calibration gives finite, strictly increasing channel edges.

    Parameters
    ----------
    model : EnergyCalType
        Calibration form
    coefficients : sequence of float
        Calibration coefficients (or channel edges for LOWER_CHANNEL_EDGE)
    deviation_pairs : sequence of (energy, offset)
        Non-linear correction
    n_channels : int
        Number of channels in the spectrum

    Returns
    -------
    bool
        True if the calibration can be used to assign energies.
    """
    if model == EnergyCalType.INVALID_EQUATION_TYPE:
        return False

    if model == EnergyCalType.LOWER_CHANNEL_EDGE:
        if len(coefficients) < n_channels:
            return False
        energies = np.asarray(coefficients, dtype=float)
    else:
        if len(coefficients) < 2:
            return False
        if model == EnergyCalType.FULL_RANGE_FRACTION:
            energies = fullrangefraction_energies(coefficients, n_channels, deviation_pairs)
        else:
            energies = polynomial_energies(coefficients, n_channels, deviation_pairs)

    if not np.all(np.isfinite(energies)):
        return False
    return bool(np.all(np.diff(energies) > 0))


def fullrangefraction_coef_to_polynomial(
    coefficients: Sequence[float],
    n_channels: int,
) -> List[float]:
    """
    Convert full range fraction coefficients to polynomial coefficients.

    Only the first four terms have a polynomial equivalent; the low energy
    term ``e/(1 + 60*x/n)`` is dropped.
    """
    if n_channels <= 0:
        raise ValueError("Number of channels must be positive")

    n = float(n_channels)
    poly = []
    for power, coeff in enumerate(list(coefficients)[:4]):
        poly.append(coeff / n**power)
    return poly
