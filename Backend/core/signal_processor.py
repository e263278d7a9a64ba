import numpy as np
from scipy import signal as scipy_signal

from core.constants import VEHICLE_BAND_HZ

# Target peak after amplitude normalization (leaves headroom below clipping)
NORMALIZE_PEAK = 0.95


class SignalProcessor:
    """Stateless helpers for preparing clips and building plot data."""

    @staticmethod
    def normalize(sig):
        """Scale so that max(|x|) == 0.95. Silent input is returned unchanged."""
        sig = np.asarray(sig, dtype=np.float64)
        max_val = np.max(np.abs(sig)) if len(sig) else 0.0
        if max_val == 0:
            return sig
        return sig * (NORMALIZE_PEAK / max_val)

    @staticmethod
    def compute_fft(sig, sr):
        """
        One-sided amplitude spectrum of the whole clip.
        Returns (frequencies, magnitudes).
        """
        n = len(sig)
        if n == 0:
            return np.zeros(0), np.zeros(0)
        magnitudes = np.abs(np.fft.rfft(sig)) * 2.0 / n
        frequencies = np.fft.rfftfreq(n, d=1.0 / sr)
        return frequencies, magnitudes

    @staticmethod
    def compute_spectrogram(sig, sr, nperseg=1024, noverlap=None):
        """
        Spectrogram in dB.
        Returns (times, frequencies, power_db).
        """
        nperseg = max(16, min(nperseg, len(sig)))
        if noverlap is None:
            noverlap = nperseg // 2

        frequencies, times, sxx = scipy_signal.spectrogram(
            sig, fs=sr, nperseg=nperseg, noverlap=noverlap
        )
        power_db = 10 * np.log10(sxx + 1e-10)
        return times, frequencies, power_db

    @staticmethod
    def parabolic_peak_offset(magnitudes, peak_idx):
        """Fractional bin offset of a spectral peak from a three-point parabola fit."""
        if peak_idx <= 0 or peak_idx >= len(magnitudes) - 1:
            return 0.0
        alpha, beta, gamma = magnitudes[peak_idx - 1:peak_idx + 2]
        denom = alpha - 2.0 * beta + gamma
        if abs(denom) < 1e-10:
            return 0.0
        return 0.5 * (alpha - gamma) / denom

    @classmethod
    def dominant_frequency_track(cls, sig, sr, band=VEHICLE_BAND_HZ, nperseg=4096):
        """
        Dominant in-band frequency per STFT frame with sub-bin interpolation.
        Returns (times, frequencies); both empty if the band holds fewer than 3 bins.
        """
        nperseg = max(16, min(nperseg, len(sig) // 4 or len(sig)))
        frequencies, times, zxx = scipy_signal.stft(sig, fs=sr, nperseg=nperseg)
        power = np.abs(zxx)

        low, high = band
        mask = (frequencies >= low) & (frequencies <= high)
        band_freqs = frequencies[mask]
        band_power = power[mask, :]
        if len(band_freqs) < 3:
            return np.zeros(0), np.zeros(0)

        resolution = band_freqs[1] - band_freqs[0]
        track = np.empty(band_power.shape[1])
        for i in range(band_power.shape[1]):
            frame = band_power[:, i]
            peak_idx = int(np.argmax(frame))
            offset = cls.parabolic_peak_offset(frame, peak_idx)
            track[i] = band_freqs[peak_idx] + offset * resolution
        return times, track
