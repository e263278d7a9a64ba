"""
Closest-approach detection.

The vehicle is loudest when it passes the microphone, so the closest approach
is taken as the most prominent peak of a smoothed RMS energy profile.
"""

import logging

import numpy as np
from scipy.ndimage import minimum_filter1d

from core import constants as C
from core.config import ApproachOptions
from core.models import ApproachDetection, ErrorKind, Peak, coerce_samples

logger = logging.getLogger(__name__)


def energy_profile(samples, window_samples):
    """
    RMS energy over a window centered at every sample position.

    Returns (sample_indices, normalized_times, energies); positions closer than
    half a window to either edge are skipped.
    """
    samples = np.asarray(samples, dtype=np.float64)
    n = len(samples)
    half = max(int(window_samples) // 2, 1)
    if n <= 2 * half:
        return np.zeros(0, dtype=np.int64), np.zeros(0), np.zeros(0)

    cumulative = np.concatenate(([0.0], np.cumsum(samples * samples)))
    indices = np.arange(half, n - half)
    sums = cumulative[indices + half] - cumulative[indices - half]
    # Running sums can go a few ulps negative in silent stretches
    energies = np.sqrt(np.maximum(sums, 0.0) / (2 * half))
    return indices, indices / n, energies


def smooth_profile(energies, smoothing_samples):
    """Centered moving average; edge positions average over the neighbours that exist."""
    energies = np.asarray(energies, dtype=np.float64)
    n = len(energies)
    if smoothing_samples <= 1 or n == 0:
        return energies

    half = int(smoothing_samples) // 2
    cumulative = np.concatenate(([0.0], np.cumsum(energies)))
    positions = np.arange(n)
    lo = np.maximum(positions - half, 0)
    hi = np.minimum(positions + half, n - 1)
    return (cumulative[hi + 1] - cumulative[lo]) / (hi - lo + 1)


def find_energy_peaks(indices, times, energies, prominence=C.APPROACH_PEAK_PROMINENCE):
    """
    Strict local maxima whose prominence is at least ``prominence`` times the
    global maximum, sorted by prominence (descending).
    """
    energies = np.asarray(energies, dtype=np.float64)
    n = len(energies)
    if n < 3:
        return []

    max_energy = float(np.max(energies))
    if max_energy <= 0:
        return []
    min_prominence = max_energy * prominence

    centre = energies[1:-1]
    local_max = np.where((centre > energies[:-2]) & (centre > energies[2:]))[0] + 1
    if len(local_max) == 0:
        return []

    radius = min(C.PROMINENCE_SEARCH_RADIUS, n // 10)
    surrounding_min = minimum_filter1d(energies, size=2 * radius + 1, mode="nearest")
    prominences = energies[local_max] - surrounding_min[local_max]

    keep = prominences >= min_prominence
    local_max = local_max[keep]
    prominences = prominences[keep]

    order = np.argsort(-prominences, kind="stable")
    return [
        Peak(
            index=int(indices[local_max[i]]),
            energy=float(energies[local_max[i]]),
            prominence=float(prominences[i]),
            normalized_prominence=float(prominences[i] / max_energy),
            time=float(times[local_max[i]]),
            confidence=float(min(1.0, prominences[i] / (max_energy * 0.5))),
        )
        for i in order
    ]


def _select_peak(peaks, indices, n_samples, min_confidence, metadata):
    if not peaks:
        mid = int(indices[len(indices) // 2]) if len(indices) else n_samples // 2
        return ApproachDetection(
            found=False,
            index=mid,
            confidence=0.0,
            reason="No energy peaks detected",
            error_kind=ErrorKind.NO_ENERGY_PEAKS_DETECTED,
            metadata=metadata,
        )

    for peak in peaks:
        if peak.confidence >= min_confidence:
            return ApproachDetection(
                found=True,
                index=peak.index,
                confidence=peak.confidence,
                reason=f"High confidence peak detected ({peak.confidence:.3f})",
                peaks=tuple(peaks),
                metadata=metadata,
            )

    best = peaks[0]
    return ApproachDetection(
        found=True,
        index=best.index,
        confidence=best.confidence,
        reason=f"Low confidence peak selected ({best.confidence:.3f})",
        peaks=tuple(peaks),
        warning="Low confidence detection - results may be unreliable",
        metadata=metadata,
    )


def find_peak_rms_index(samples, window_size=C.PEAK_RMS_WINDOW):
    """Center of the loudest window, scanning with a hop of a quarter window."""
    samples = np.asarray(samples, dtype=np.float64)
    window_size = int(window_size)
    hop = max(window_size // 4, 1)

    best_rms = 0.0
    best_index = 0
    for start in range(0, len(samples) - window_size + 1, hop):
        chunk = samples[start:start + window_size]
        rms = float(np.sqrt(np.sum(chunk * chunk) / window_size))
        if rms > best_rms:
            best_rms = rms
            best_index = start + window_size // 2
    return best_index, best_rms


def _detect_peak_rms(samples, sample_rate):
    index, best_rms = find_peak_rms_index(samples)
    metadata = {
        "total_samples": len(samples),
        "duration_s": len(samples) / sample_rate,
        "method": "peak_rms",
    }
    if best_rms <= 0:
        return ApproachDetection(
            found=False,
            index=len(samples) // 2,
            confidence=0.0,
            reason="No energy peaks detected",
            error_kind=ErrorKind.NO_ENERGY_PEAKS_DETECTED,
            metadata=metadata,
        )
    mean_rms = float(np.sqrt(np.mean(samples * samples)))
    confidence = min(1.0, max(0.0, (best_rms - mean_rms) / (best_rms * 0.5)))
    return ApproachDetection(
        found=True,
        index=index,
        confidence=confidence,
        reason=f"Peak RMS window selected ({confidence:.3f})",
        metadata=metadata,
    )


def detect_approach(samples, sample_rate, options=None):
    """
    Locate the sample index of the vehicle's closest approach.

    Args:
        samples: Mono samples in [-1, 1]
        sample_rate: Sample rate in Hz
        options: ApproachOptions (window/smoothing seconds, thresholds, method)

    Returns:
        ApproachDetection. ``found`` is False only when the profile has no
        qualifying peak; the index then points at the middle of the profile.
    """
    samples = coerce_samples(samples, sample_rate)
    options = options or ApproachOptions()

    if options.method == "peak_rms":
        return _detect_peak_rms(samples, sample_rate)

    window_samples = int(options.window_size_s * sample_rate)
    smoothing_samples = int(options.smoothing_s * sample_rate)

    indices, times, energies = energy_profile(samples, window_samples)
    smoothed = smooth_profile(energies, smoothing_samples)
    peaks = find_energy_peaks(indices, times, smoothed, options.peak_prominence)

    metadata = {
        "total_samples": len(samples),
        "duration_s": len(samples) / sample_rate,
        "window_samples": window_samples,
        "smoothing_samples": smoothing_samples,
        "peaks_found": len(peaks),
        "method": "energy_peaks",
    }
    detection = _select_peak(peaks, indices, len(samples), options.min_confidence, metadata)

    if not detection.found:
        logger.debug("Approach detection: %s", detection.reason)
    elif detection.warning:
        logger.warning("Approach detection: %s at sample %d", detection.reason, detection.index)
    else:
        logger.debug("Approach detection: %s at sample %d", detection.reason, detection.index)
    return detection


def analyze_energy_distribution(samples, sample_rate):
    """Summary statistics of the 100 ms RMS energy profile."""
    samples = np.asarray(samples, dtype=np.float64)
    indices, times, energies = energy_profile(samples, int(0.1 * sample_rate))

    if len(energies) == 0:
        return {
            "mean_energy": 0.0,
            "max_energy": 0.0,
            "min_energy": 0.0,
            "energy_variance": 0.0,
            "energy_std": 0.0,
            "dynamic_range_db": 0.0,
            "peak_count": 0,
            "coefficient_of_variation": 0.0,
        }

    mean_energy = float(np.mean(energies))
    max_energy = float(np.max(energies))
    min_energy = float(np.min(energies))
    variance = float(np.var(energies))
    std = float(np.sqrt(variance))

    if max_energy > 0:
        dynamic_range = 20 * np.log10(max_energy / max(min_energy, max_energy * 0.001))
    else:
        dynamic_range = 0.0

    return {
        "mean_energy": mean_energy,
        "max_energy": max_energy,
        "min_energy": min_energy,
        "energy_variance": variance,
        "energy_std": std,
        "dynamic_range_db": float(dynamic_range),
        "peak_count": len(find_energy_peaks(indices, times, energies, 0.1)),
        "coefficient_of_variation": std / (mean_energy or 1.0),
    }


def validate_detection(detection, samples, sample_rate):
    """
    Grade a detection as poor/fair/good and list what looks wrong with it.

    Returns dict with: is_valid, quality, issues, recommendations.
    """
    issues = []
    recommendations = []

    if not detection.found:
        return {
            "is_valid": False,
            "quality": "poor",
            "issues": ["No closest approach detected"],
            "recommendations": ["Try adjusting detection sensitivity or using manual sectioning"],
        }

    if detection.confidence < 0.3:
        issues.append(f"Low confidence: {detection.confidence:.3f}")
        quality = "poor"
    elif detection.confidence < 0.6:
        issues.append(f"Medium confidence: {detection.confidence:.3f}")
        quality = "fair"
    else:
        quality = "good"

    edge_margin = len(samples) * 0.1
    near_edge = False
    if detection.index < edge_margin:
        near_edge = True
        issues.append("Closest approach too close to beginning")
        recommendations.append("Audio may not contain complete approach phase")
    elif detection.index > len(samples) - edge_margin:
        near_edge = True
        issues.append("Closest approach too close to end")
        recommendations.append("Audio may not contain complete recede phase")

    distribution = analyze_energy_distribution(samples, sample_rate)
    if distribution["dynamic_range_db"] < 10:
        issues.append(f"Low dynamic range: {distribution['dynamic_range_db']:.1f} dB")
        recommendations.append("Audio may lack sufficient signal variation for reliable detection")

    is_valid = not issues or (quality != "poor" and not near_edge)
    return {
        "is_valid": is_valid,
        "quality": quality,
        "issues": issues,
        "recommendations": recommendations,
    }
