"""
Tests for energy calibration models and the Measurement helpers built on them.
"""

from datetime import datetime

import numpy as np
import pytest

from camspec.core.calibration import (
    EnergyCalType,
    apply_deviation_pairs,
    calibration_is_valid,
    fullrangefraction_coef_to_polynomial,
    fullrangefraction_energies,
    polynomial_energies,
)
from camspec.core.measurement import Measurement


class TestEnergies:
    """Channel edge energies."""

    def test_polynomial(self):
        """E = a0 + a1*x + a2*x^2 at each channel edge."""
        energies = polynomial_energies([1.0, 0.5, 0.01], 4)
        expected = [1.0 + 0.5 * x + 0.01 * x**2 for x in range(5)]
        np.testing.assert_allclose(energies, expected)

    def test_full_range_fraction(self):
        """Full range fraction uses x/n and the low energy term."""
        energies = fullrangefraction_energies([10.0, 3000.0, 0.0, 0.0, 2.0], 100)

        x = np.arange(101) / 100
        expected = 10.0 + 3000.0 * x + 2.0 / (1 + 60 * x)
        np.testing.assert_allclose(energies, expected)

    def test_frf_matches_converted_polynomial(self):
        """Converting FRF to polynomial gives the same energies without the low energy term."""
        frf = [5.0, 2000.0, 150.0, -20.0]
        n = 512

        poly = fullrangefraction_coef_to_polynomial(frf, n)

        np.testing.assert_allclose(
            polynomial_energies(poly, n),
            fullrangefraction_energies(frf, n),
            rtol=1e-12,
        )

    def test_conversion_needs_channels(self):
        """A channel count is required for the conversion."""
        with pytest.raises(ValueError):
            fullrangefraction_coef_to_polynomial([0.0, 1.0], 0)

    def test_deviation_pairs(self):
        """Deviation offsets are interpolated between pairs."""
        energies = np.array([0.0, 100.0, 200.0, 300.0])
        pairs = [(300.0, 3.0), (100.0, 1.0)]

        corrected = apply_deviation_pairs(energies, pairs)

        np.testing.assert_allclose(corrected, [1.0, 101.0, 202.0, 303.0])

    def test_no_deviation_pairs(self):
        """Without pairs the energies are unchanged."""
        energies = np.array([0.0, 1.0, 2.0])
        assert apply_deviation_pairs(energies, []) is energies


class TestCalibrationIsValid:
    """Tests for calibration_is_valid."""

    def test_linear(self):
        """A positive gain is valid."""
        assert calibration_is_valid(EnergyCalType.POLYNOMIAL, [0.0, 0.5, 0.0], [], 1024)

    @pytest.mark.parametrize("coeffs", [
        [0.0, 0.0, 0.0],
        [5.0, 0.0, 0.0],
        [0.0, -0.5, 0.0],
        [0.0, 1.0, -0.01],
        [0.0, np.nan, 0.0],
        [1.0],
        [],
    ])
    def test_invalid_polynomials(self, coeffs):
        """Flat, decreasing, non-finite and too-short polynomials are invalid."""
        assert not calibration_is_valid(EnergyCalType.POLYNOMIAL, coeffs, [], 1024)

    def test_invalid_model(self):
        """The invalid model is never valid."""
        assert not calibration_is_valid(EnergyCalType.INVALID_EQUATION_TYPE, [0.0, 1.0], [], 64)

    def test_lower_channel_edge(self):
        """Lower channel edges need one increasing energy per channel."""
        edges = list(np.linspace(0.0, 100.0, 65))

        assert calibration_is_valid(EnergyCalType.LOWER_CHANNEL_EDGE, edges, [], 64)
        assert not calibration_is_valid(EnergyCalType.LOWER_CHANNEL_EDGE, edges[:10], [], 64)
        assert not calibration_is_valid(EnergyCalType.LOWER_CHANNEL_EDGE, edges[::-1], [], 64)

    def test_deviation_pairs_can_invalidate(self):
        """Large negative offsets can make energies decrease."""
        pairs = [(0.0, 0.0), (10.0, -50.0)]
        assert not calibration_is_valid(EnergyCalType.POLYNOMIAL, [0.0, 1.0], pairs, 64)


class TestMeasurement:
    """Measurement arithmetic and energy lookup."""

    def make(self, value=1.0, **kwargs):
        return Measurement(gamma_counts=np.full(64, value, dtype=np.float32), **kwargs)

    def test_count_sum_computed(self):
        """The count sum is computed when not given."""
        assert self.make(2.0).gamma_count_sum == 128.0

    def test_add(self):
        """Counts and times add; the earliest start is kept."""
        a = self.make(1.0, live_time=10.0, real_time=11.0,
                      start_time=datetime(2020, 1, 2), remarks=["a"])
        b = self.make(2.0, live_time=5.0, real_time=6.0,
                      start_time=datetime(2020, 1, 1), remarks=["a", "b"])

        total = a + b

        np.testing.assert_array_equal(total.gamma_counts, np.full(64, 3.0))
        assert total.gamma_count_sum == 192.0
        assert total.live_time == 15.0
        assert total.real_time == 17.0
        assert total.start_time == datetime(2020, 1, 1)
        assert total.remarks == ["a", "b"]
        assert a.gamma_count_sum == 64.0

    def test_add_channel_mismatch(self):
        """Spectra with different channel counts cannot be added."""
        with pytest.raises(ValueError):
            self.make() + Measurement(gamma_counts=np.zeros(128))

    def test_energy_to_channel_polynomial(self):
        """Energies map back to fractional channels."""
        meas = self.make(energy_calibration_model=EnergyCalType.POLYNOMIAL,
                         calibration_coeffs=[10.0, 2.0, 0.0])

        assert meas.energy_to_channel(60.0) == pytest.approx(25.0)

    def test_energy_to_channel_out_of_range(self):
        """Energies outside the spectrum are rejected."""
        meas = self.make(energy_calibration_model=EnergyCalType.POLYNOMIAL,
                         calibration_coeffs=[10.0, 2.0, 0.0])

        with pytest.raises(ValueError):
            meas.energy_to_channel(5.0)

    def test_no_calibration(self):
        """Without a calibration there are no energies."""
        meas = self.make()

        assert meas.channel_energies() is None
        with pytest.raises(ValueError):
            meas.energy_to_channel(100.0)

    def test_dict_round_trip(self):
        """to_dict/from_dict preserve the measurement."""
        meas = self.make(3.0, title="t", start_time=datetime(2022, 5, 6, 7, 8, 9),
                         energy_calibration_model=EnergyCalType.POLYNOMIAL,
                         calibration_coeffs=[0.0, 1.0], deviation_pairs=[(10.0, 0.5)])

        back = Measurement.from_dict(meas.to_dict())

        assert back.to_dict() == meas.to_dict()
