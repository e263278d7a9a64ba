import numpy as np
import pytest

from core.approach_detector import (
    analyze_energy_distribution,
    detect_approach,
    energy_profile,
    find_energy_peaks,
    find_peak_rms_index,
    smooth_profile,
    validate_detection,
)
from core.config import ApproachOptions
from core.models import ErrorKind, InvalidSamplesError
from signal_builders import gaussian_burst, tone

SR = 8000
# 8-sample RMS window, 4-sample smoothing
SHORT_WINDOWS = ApproachOptions(window_size_s=0.001, smoothing_s=0.0005)


def test_energy_profile_matches_direct_rms():
    rng = np.random.default_rng(0)
    samples = rng.uniform(-1, 1, 200)

    indices, times, energies = energy_profile(samples, 10)

    assert indices[0] == 5 and indices[-1] == 194
    i = 50
    direct = np.sqrt(np.mean(samples[i - 5:i + 5] ** 2))
    assert energies[i - 5] == pytest.approx(direct)
    assert times[0] == pytest.approx(5 / 200)


def test_energy_profile_shorter_than_window_is_empty():
    indices, times, energies = energy_profile(np.ones(10), 20)

    assert len(indices) == len(times) == len(energies) == 0


def test_smoothing_averages_available_neighbours_at_edges():
    smoothed = smooth_profile(np.array([3.0, 0.0, 0.0, 0.0, 6.0]), 2)

    # half-width 1: the first entry averages two values, the middle ones three
    np.testing.assert_allclose(smoothed, [1.5, 1.0, 0.0, 2.0, 3.0])


def test_peaks_sorted_by_prominence_with_confidence():
    energies = np.zeros(100)
    energies[30] = 1.0
    energies[70] = 0.4
    indices = np.arange(100)

    peaks = find_energy_peaks(indices, indices / 100, energies, prominence=0.1)

    assert [p.index for p in peaks] == [30, 70]
    assert peaks[0].confidence == pytest.approx(1.0)
    assert peaks[1].confidence == pytest.approx(0.8)
    assert peaks[1].normalized_prominence == pytest.approx(0.4)


def test_small_bumps_below_prominence_are_dropped():
    energies = np.zeros(100)
    energies[30] = 1.0
    energies[70] = 0.05
    indices = np.arange(100)

    peaks = find_energy_peaks(indices, indices / 100, energies, prominence=0.1)

    assert [p.index for p in peaks] == [30]


def test_single_sharp_peak_is_found():
    k = 2000
    samples = gaussian_burst(4000, k + 0.5)

    detection = detect_approach(samples, SR, SHORT_WINDOWS)

    assert detection.found
    assert abs(detection.index - k) <= 4
    assert detection.confidence > 0.5
    assert detection.warning is None
    assert detection.reason.startswith("High confidence")


def test_low_confidence_peak_is_returned_with_warning():
    k = 2000
    samples = gaussian_burst(4000, k + 0.5)
    options = ApproachOptions(window_size_s=0.001, smoothing_s=0.0005, min_confidence=1.5)

    detection = detect_approach(samples, SR, options)

    assert detection.found
    assert detection.warning is not None
    assert detection.reason.startswith("Low confidence")


def test_silence_has_no_peaks_and_defaults_to_midpoint():
    detection = detect_approach(np.zeros(8000), SR)

    assert not detection.found
    assert detection.reason == "No energy peaks detected"
    assert detection.error_kind is ErrorKind.NO_ENERGY_PEAKS_DETECTED
    # window 800 -> profile covers samples 400..7599
    assert detection.index == 4000


def test_steady_tone_has_no_qualifying_peak():
    detection = detect_approach(tone(500.0, SR, 2.0), SR)

    assert not detection.found


def test_peak_rms_method():
    samples = np.concatenate([np.zeros(8192), np.ones(2048), np.zeros(8192)])

    index, rms = find_peak_rms_index(samples)
    detection = detect_approach(samples, SR, ApproachOptions(method="peak_rms"))

    assert index == 8192 + 1024
    assert rms == pytest.approx(1.0)
    assert detection.found and detection.index == index


@pytest.mark.parametrize("bad", [[], [[0.1, 0.2]], [0.1, float("nan")], ["loud"]])
def test_malformed_samples_raise(bad):
    with pytest.raises(InvalidSamplesError):
        detect_approach(bad, SR)


def test_energy_distribution_of_burst():
    samples = np.concatenate([0.01 * tone(300.0, SR, 1.0), tone(300.0, SR, 0.5), 0.01 * tone(300.0, SR, 1.0)])

    stats = analyze_energy_distribution(samples, SR)

    assert stats["max_energy"] > stats["mean_energy"] > stats["min_energy"] > 0
    assert stats["dynamic_range_db"] > 30


def test_validate_detection_flags_edge_and_missing():
    samples = gaussian_burst(4000, 200.5)
    detection = detect_approach(samples, SR, SHORT_WINDOWS)

    check = validate_detection(detection, samples, SR)
    missing = validate_detection(detect_approach(np.zeros(4000), SR), np.zeros(4000), SR)

    assert "Closest approach too close to beginning" in check["issues"]
    assert not check["is_valid"]
    assert missing["quality"] == "poor" and not missing["is_valid"]
