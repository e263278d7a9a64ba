import numpy as np
import pytest

from core.signal_processor import SignalProcessor
from signal_builders import tone, two_tone_pass


def test_normalize_peak():
    out = SignalProcessor.normalize(np.array([0.1, -0.4, 0.2]))

    assert np.max(np.abs(out)) == pytest.approx(0.95)
    assert out[1] == pytest.approx(-0.95)


def test_normalize_silence_unchanged():
    out = SignalProcessor.normalize(np.zeros(16))

    assert np.array_equal(out, np.zeros(16))


def test_fft_amplitude():
    sr = 1000
    freqs, mags = SignalProcessor.compute_fft(tone(100.0, sr, 1.0, amplitude=0.5), sr)

    assert freqs[np.argmax(mags)] == pytest.approx(100.0)
    assert np.max(mags) == pytest.approx(0.5, rel=1e-6)


def test_spectrogram_shapes():
    sr = 8000
    times, freqs, power = SignalProcessor.compute_spectrogram(tone(500.0, sr, 1.0), sr)

    assert power.shape == (len(freqs), len(times))
    assert freqs[np.argmax(power.mean(axis=1))] == pytest.approx(500.0, abs=sr / 1024)


def test_parabolic_offset_edges_and_symmetry():
    assert SignalProcessor.parabolic_peak_offset(np.array([3.0, 1.0, 0.0]), 0) == 0.0
    assert SignalProcessor.parabolic_peak_offset(np.array([1.0, 2.0, 1.0]), 1) == pytest.approx(0.0)
    assert SignalProcessor.parabolic_peak_offset(np.array([1.0, 2.0, 1.5]), 1) > 0


def test_dominant_frequency_track_follows_the_shift():
    sr = 16000
    sig = two_tone_pass(1100.0, 950.0, sr=sr, duration=4.0)

    times, track = SignalProcessor.dominant_frequency_track(sig, sr)

    assert len(times) == len(track)
    assert abs(track[2] - 1100.0) < 5.0
    assert abs(track[-3] - 950.0) < 5.0


def test_dominant_frequency_track_narrow_band_is_empty():
    times, track = SignalProcessor.dominant_frequency_track(tone(500.0, 8000, 1.0), 8000, band=(500.0, 501.0))

    assert len(times) == 0 and len(track) == 0
