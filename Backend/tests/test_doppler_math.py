import numpy as np
import pytest

from core.doppler_math import calculate_speed, simulate_doppler_pass, speed_of_sound
from core.models import ErrorKind


@pytest.mark.parametrize("fa,fr", [(1100.0, 950.0), (500.0, 480.0), (2000.0, 1500.0), (101.0, 99.5)])
def test_speed_matches_doppler_formula(fa, fr):
    result = calculate_speed(fa, fr)

    expected_kmh = 343.0 * (fa - fr) / (fa + fr) * 3.6
    assert result.valid
    assert result.speed_kmh == pytest.approx(expected_kmh, rel=1e-12)
    assert result.speed_mph == pytest.approx(expected_kmh * 0.621371, rel=1e-12)
    assert result.frequency_shift == pytest.approx(fa - fr)


def test_equal_frequencies_are_invalid():
    result = calculate_speed(440.0, 440.0)

    assert not result.valid
    assert result.error_kind is ErrorKind.INVALID_FREQUENCY_PAIR
    assert result.speed_kmh is None


def test_sub_hertz_shift_is_invalid():
    result = calculate_speed(440.5, 440.0)

    assert not result.valid
    assert result.error == "Frequency difference too small"


def test_reversed_order_is_rejected():
    result = calculate_speed(950.0, 1100.0)

    assert not result.valid
    assert result.error_kind is ErrorKind.INVALID_FREQUENCY_PAIR
    assert result.speed_mph is None


@pytest.mark.parametrize("fa,fr", [(0.0, 100.0), (-5.0, -10.0), (100.0, 0.0)])
def test_non_positive_frequencies_are_invalid(fa, fr):
    result = calculate_speed(fa, fr)

    assert not result.valid
    assert result.error == "Invalid frequency values"


def test_speed_out_of_bounds():
    # 343 * 400 / 1600 * 3.6 = 308.7 km/h
    result = calculate_speed(1000.0, 600.0, bounds=(0.0, 300.0))

    assert not result.valid
    assert result.error_kind is ErrorKind.SPEED_OUT_OF_BOUNDS


def test_upper_bound_is_exclusive():
    fa, fr = 1100.0, 950.0
    kmh = 343.0 * (fa - fr) / (fa + fr) * 3.6

    assert not calculate_speed(fa, fr, bounds=(0.0, kmh)).valid
    assert calculate_speed(fa, fr, bounds=(kmh, kmh + 1)).valid


def test_custom_sound_speed_scales_result():
    slow = calculate_speed(1100.0, 950.0, sound_speed_ms=330.0)
    fast = calculate_speed(1100.0, 950.0, sound_speed_ms=350.0)

    assert fast.speed_kmh / slow.speed_kmh == pytest.approx(350.0 / 330.0)


def test_speed_of_sound_at_twenty_degrees():
    assert speed_of_sound(20.0) == pytest.approx(343.2, abs=0.1)
    assert speed_of_sound(0.0) == pytest.approx(331.3)


def test_simulated_pass_shape_and_expected_shift():
    result = simulate_doppler_pass(440.0, 80.0, sr=8000, duration=2.0)

    assert isinstance(result["signal"], np.ndarray)
    assert len(result["signal"]) == 16000
    assert np.max(np.abs(result["signal"])) == pytest.approx(1.0, abs=1e-6)
    params = result["params"]
    assert params["expected_approach_hz"] > 440.0 > params["expected_recede_hz"]
    # Observed frequency falls monotonically through the pass
    assert result["freq_over_time"][0] > result["freq_over_time"][-1]


def test_simulated_noise_is_reproducible():
    a = simulate_doppler_pass(440.0, 50.0, sr=4000, duration=1.0, noise_level=0.1, seed=7)
    b = simulate_doppler_pass(440.0, 50.0, sr=4000, duration=1.0, noise_level=0.1, seed=7)

    np.testing.assert_array_equal(a["signal"], b["signal"])
