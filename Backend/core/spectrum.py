import logging

import numpy as np

from core.constants import TOP_FREQUENCY_COUNT, VEHICLE_BAND_HZ
from core.fft_backends import numpy_transform
from core.models import FrequencyCandidate
from core.windowing import apply_window, coherent_gain

logger = logging.getLogger(__name__)


def next_power_of_two(n):
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


class SpectrumAnalyzer:
    """
    Amplitude spectrum of one section of audio.

    Each instance owns its buffers, so the approach and recede sections can be
    analyzed on separate threads.
    """

    def __init__(self, samples, sample_rate, window_type="hamming", transform=None):
        self.samples = np.asarray(samples, dtype=np.float64)
        self.sample_rate = sample_rate
        self.window_type = window_type
        self.transform = transform or numpy_transform
        self.power_spectrum = None
        self.frequencies = None
        self.fft_length = None

    def calculate_power_spectrum(self):
        """
        Pad or truncate to the next power of two, window, transform, and keep
        the positive-frequency magnitudes scaled by the window's coherent gain.
        """
        fft_length = next_power_of_two(len(self.samples))

        processed = np.zeros(fft_length)
        n = min(len(self.samples), fft_length)
        processed[:n] = self.samples[:n]

        windowed = apply_window(processed, self.window_type)
        gain = coherent_gain(self.window_type, fft_length)

        pairs = self.transform(windowed)

        half = fft_length // 2
        real = pairs[0:2 * half:2]
        imag = pairs[1:2 * half:2]
        magnitude = np.sqrt(real * real + imag * imag)

        self.power_spectrum = magnitude / (fft_length * gain)
        self.frequencies = np.arange(half) * self.sample_rate / fft_length
        self.fft_length = fft_length
        return self

    def _require_spectrum(self):
        if self.power_spectrum is None:
            raise RuntimeError("Must call calculate_power_spectrum() first")

    @property
    def bin_width(self):
        self._require_spectrum()
        return self.sample_rate / self.fft_length

    def find_peak_frequency(self):
        """Frequency of the strongest bin, DC excluded."""
        self._require_spectrum()
        if len(self.power_spectrum) < 2:
            return float(self.frequencies[0]) if len(self.frequencies) else 0.0
        peak_index = int(np.argmax(self.power_spectrum[1:])) + 1
        return float(self.frequencies[peak_index])

    def get_strongest_frequencies(self, count=5, band=None):
        """
        Top ``count`` bins by power, descending.

        Equal powers keep ascending-frequency order (stable sort). With
        ``band=(low, high)`` only bins inside the band with power > 0 are
        considered.
        """
        self._require_spectrum()
        freqs = self.frequencies
        power = self.power_spectrum

        if band is not None:
            low, high = band
            mask = (freqs >= low) & (freqs <= high) & (power > 0)
            freqs = freqs[mask]
            power = power[mask]

        order = np.argsort(-power, kind="stable")[:count]
        if len(order) == 0:
            return []

        strongest = power[order[0]]
        return [
            FrequencyCandidate(
                frequency_hz=float(freqs[i]),
                power=float(power[i]),
                rank=rank,
                normalized_power=float(power[i] / strongest) if strongest > 0 else 0.0,
            )
            for rank, i in enumerate(order, start=1)
        ]


def analyze_spectrum(samples, sample_rate, window_type="hamming", count=TOP_FREQUENCY_COUNT,
                     band=VEHICLE_BAND_HZ, transform=None):
    """Ranked in-band frequency candidates for a buffer."""
    analyzer = SpectrumAnalyzer(samples, sample_rate, window_type, transform)
    analyzer.calculate_power_spectrum()
    candidates = analyzer.get_strongest_frequencies(count, band=band)
    logger.debug(
        "Spectrum: %d samples, N=%d, top %s Hz",
        len(analyzer.samples), analyzer.fft_length,
        ", ".join(f"{c.frequency_hz:.0f}" for c in candidates[:3]),
    )
    return candidates
