import logging
import os
import re

import numpy as np

from utils.file_loader import AUDIO_EXTENSIONS, decode_audio, load_audio
from core.config import AnalysisConfig
from core.doppler_math import simulate_doppler_pass
from core.fft_backends import backend_name, select_transform
from core.models import InvalidSamplesError
from core.signal_processor import SignalProcessor
from core.speed_estimator import estimate_speed

logger = logging.getLogger(__name__)

# Dataset paths: datasets/ is at the project root (sibling of Backend/)
BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
DOPPLER_DIR = os.environ.get(
    "DOPPLER_DATASETS_DIR", os.path.join(PROJECT_ROOT, "datasets", "Doppler")
)

processor = SignalProcessor()

# Resolved once; every analysis in this process uses the same backend
transform = select_transform(os.environ.get("DOPPLER_FFT_BACKEND", "auto"))


class AcousticService:
    """Service layer for Doppler simulation and speed estimation."""

    def __init__(self, datasets_dir=None):
        self.datasets_dir = datasets_dir or DOPPLER_DIR

    # =============================================
    # PART 1: Doppler Simulation
    # =============================================
    def generate_doppler(self, frequency, velocity, noise_level=0.0, seed=None):
        """
        Generate a synthetic Doppler pass and run the estimator on it.
        Args:
            frequency: Horn frequency in Hz
            velocity: Car speed in km/h
        Returns dict with waveform + freq curve data + "estimate".
        """
        try:
            result = simulate_doppler_pass(
                f_source=frequency,
                v_car_kmh=velocity,
                sr=44100,
                duration=6.0,
                noise_level=noise_level,
                seed=seed,
            )
            sig = result.pop("signal")
            result["estimate"] = estimate_speed(sig, result["sr"], transform=transform).to_dict()
            return result
        except Exception as e:
            logger.exception("Doppler simulation failed")
            return {"error": str(e)}

    # =============================================
    # PART 2: Real Doppler Analysis
    # =============================================
    def list_doppler_datasets(self):
        """List available Doppler audio files."""
        if not os.path.exists(self.datasets_dir):
            return {"files": [], "error": f"Doppler dataset folder not found: {self.datasets_dir}"}

        files = []
        for f in sorted(os.listdir(self.datasets_dir)):
            if f.lower().endswith(AUDIO_EXTENSIONS):
                # e.g. "KiaSportage_85.wav" -> 85 km/h
                files.append({
                    "filename": f,
                    "actual_speed_kmh": self._parse_speed_from_filename(f),
                    "path": f"Doppler/{f}",
                })
        return {"files": files, "count": len(files)}

    def dataset_path(self, filename):
        """Absolute path of a dataset clip, or None if it is missing or escapes the folder."""
        if os.path.basename(filename) != filename:
            return None
        path = os.path.join(self.datasets_dir, filename)
        return path if os.path.isfile(path) else None

    def analyze_doppler(self, file_path, options=None):
        """Load a clip from disk and estimate the vehicle speed."""
        filename = os.path.basename(file_path)
        try:
            sig, sr = load_audio(file_path)
            logger.info("Loaded %s: %d samples, %d Hz, %.2fs", filename, len(sig), sr, len(sig) / sr)
            return self._analyze(sig, sr, filename, options)
        except Exception as e:
            logger.exception("Doppler analysis failed for %s", filename)
            return {"error": str(e), "filename": filename}

    def analyze_upload(self, data, filename, options=None):
        """Decode uploaded bytes and estimate the vehicle speed."""
        try:
            sig, sr = decode_audio(data, filename)
            logger.info("Decoded upload %s: %d samples, %d Hz", filename, len(sig), sr)
            return self._analyze(sig, sr, filename, options)
        except Exception as e:
            logger.exception("Doppler analysis failed for upload %s", filename)
            return {"error": str(e), "filename": filename}

    def estimate_from_samples(self, samples, sample_rate, options=None):
        """Estimate speed from raw samples; returns only the estimate dict."""
        try:
            config = AnalysisConfig.from_mapping(options)
            sig = processor.normalize(np.asarray(samples, dtype=np.float64))
            return estimate_speed(sig, sample_rate, config, transform).to_dict()
        except (InvalidSamplesError, ValueError, TypeError) as e:
            logger.warning("Rejected estimate request: %s", e)
            return {"valid": False, "error": str(e)}

    def _analyze(self, sig, sr, filename, options):
        config = AnalysisConfig.from_mapping(options)
        sig = processor.normalize(sig)

        # 1. Waveform (downsampled for frontend)
        ds = max(1, len(sig) // 3000)
        time_axis = np.arange(len(sig)) / sr

        # 2. Spectrogram
        spec_times, spec_freqs, spec_power = processor.compute_spectrogram(sig, sr)
        freq_ds = max(1, len(spec_freqs) // 200)
        time_ds = max(1, len(spec_times) // 300)

        # 3. FFT
        fft_freqs, fft_mags = processor.compute_fft(sig, sr)
        fft_ds = max(1, len(fft_freqs) // 1000)

        # 4. Dominant frequency over time
        track_times, track_freqs = processor.dominant_frequency_track(sig, sr, config.frequency_band)

        # 5. Speed estimate
        estimate = estimate_speed(sig, sr, config, transform)

        return {
            "waveform": {
                "time": time_axis[::ds].tolist(),
                "amplitude": sig[::ds].tolist(),
            },
            "spectrogram": {
                "times": spec_times[::time_ds].tolist(),
                "frequencies": spec_freqs[::freq_ds].tolist(),
                "power": spec_power[::freq_ds, ::time_ds].tolist(),
            },
            "fft": {
                "frequencies": fft_freqs[::fft_ds].tolist(),
                "magnitudes": fft_mags[::fft_ds].tolist(),
            },
            "frequency_track": {
                "times": track_times.tolist(),
                "frequencies": track_freqs.tolist(),
            },
            "doppler": estimate.to_dict(),
            "fft_backend": backend_name(transform),
            "actual_speed_kmh": self._parse_speed_from_filename(filename),
            "filename": filename,
        }

    # =============================================
    # Helpers
    # =============================================
    @staticmethod
    def _parse_speed_from_filename(filename):
        """
        Try to parse actual speed from filename.
        Examples: 'KiaSportage_85.wav' -> 85, 'car_320Hz_155kmh.wav' -> 155
        """
        name = os.path.splitext(filename)[0]

        match = re.search(r'_(\d+)kmh', name, re.IGNORECASE)
        if match:
            return int(match.group(1))

        # CarName_{number}: trailing number is the speed
        match = re.search(r'_(\d+)$', name)
        if match:
            speed = int(match.group(1))
            if speed < 500:
                return speed

        return None
