import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from core import constants as C
from core.config import AnalysisConfig
from core.models import ErrorKind, SectionAnalysis, SectionQuality
from core.single_frequency import (
    analysis_confidence,
    assess_signal,
    describe_frequencies,
    rank_frequencies,
)
from core.spectrum import SpectrumAnalyzer

logger = logging.getLogger(__name__)


def section_quality(candidates):
    """
    Quality of one section's candidate list.

    signal strength: strongest power against a 0.001 reference
    peak clarity: how far the top peak stands above the runner-up
    frequency distribution: spread of the candidates relative to the lowest one
    noise level: variance of the powers relative to their squared mean
    """
    if not candidates:
        return SectionQuality(
            overall_confidence=0.0,
            signal_strength=0.0,
            peak_clarity=0.0,
            frequency_distribution=0.0,
            noise_level=1.0,
            recommendations=("No significant frequencies detected",),
        )

    powers = np.array([c.power for c in candidates], dtype=np.float64)
    freqs = np.array([c.frequency_hz for c in candidates], dtype=np.float64)

    max_power = float(np.max(powers))
    avg_power = float(np.mean(powers))
    signal_strength = min(1.0, max_power / C.SIGNAL_STRENGTH_REFERENCE)

    if len(candidates) > 1 and powers[0] > 0:
        peak_clarity = float((powers[0] - powers[1]) / powers[0])
    else:
        peak_clarity = 1.0

    if len(candidates) > 1:
        low = float(np.min(freqs))
        spread = (float(np.max(freqs)) - low) / max(low, 100.0)
        frequency_distribution = min(1.0, spread)
    else:
        frequency_distribution = 0.5

    noise_level = min(1.0, float(np.var(powers)) / (avg_power * avg_power + 1e-10))

    w = C.SECTION_QUALITY_WEIGHTS
    overall = (
        w["signal_strength"] * signal_strength
        + w["peak_clarity"] * peak_clarity
        + w["frequency_distribution"] * frequency_distribution
        + w["inverse_noise"] * (1.0 - noise_level)
    )

    recommendations = []
    if signal_strength < 0.3:
        recommendations.append("Low signal strength - check audio levels")
    if peak_clarity < 0.2:
        recommendations.append("Multiple similar peaks - may indicate noise or harmonics")
    if frequency_distribution < 0.1:
        recommendations.append("Limited frequency content - check audio source")
    if noise_level > 0.7:
        recommendations.append("High noise level detected - consider audio filtering")

    return SectionQuality(
        overall_confidence=max(0.0, min(1.0, overall)),
        signal_strength=signal_strength,
        peak_clarity=peak_clarity,
        frequency_distribution=frequency_distribution,
        noise_level=noise_level,
        max_power=max_power,
        avg_power=avg_power,
        recommendations=tuple(recommendations) or ("Good signal quality",),
    )


def analyze_section(samples, sample_rate, section_type, config=None, transform=None):
    """Top in-band candidates, peak frequency and quality for one section."""
    config = config or AnalysisConfig()
    samples = np.asarray(samples, dtype=np.float64)
    n = len(samples)

    if n < C.MIN_ANALYSIS_SAMPLES:
        return SectionAnalysis(
            section_type=section_type,
            valid=False,
            sample_count=n,
            duration_s=n / sample_rate,
            error=f"Section too short: {n} samples",
            error_kind=ErrorKind.INSUFFICIENT_SAMPLES,
        )

    analyzer = SpectrumAnalyzer(samples, sample_rate, config.window_type, transform)
    analyzer.calculate_power_spectrum()
    context = analyzer.get_strongest_frequencies(
        max(C.FREQUENCY_CONTEXT_COUNT, config.top_frequency_count), band=config.frequency_band
    )
    candidates = context[:config.top_frequency_count]
    quality = section_quality(candidates)

    if not candidates:
        return SectionAnalysis(
            section_type=section_type,
            valid=False,
            quality=quality,
            sample_count=n,
            duration_s=n / sample_rate,
            error=f"No frequencies found between {config.frequency_band[0]:g} and "
                  f"{config.frequency_band[1]:g} Hz",
            error_kind=ErrorKind.NO_FREQUENCIES_FOUND,
        )

    logger.debug(
        "%s section: peak %.1f Hz, quality %.3f",
        section_type, candidates[0].frequency_hz, quality.overall_confidence,
    )
    details = describe_frequencies(candidates, context)
    return SectionAnalysis(
        section_type=section_type,
        valid=True,
        candidates=tuple(candidates),
        peak_frequency=analyzer.find_peak_frequency(),
        quality=quality,
        sample_count=n,
        duration_s=n / sample_rate,
        details=details,
        ranking=rank_frequencies(candidates),
        assessment=assess_signal(details, context),
        detail_confidence=analysis_confidence(details, n),
    )


def analyze_dual_sections(approaching, receding, sample_rate, config=None, transform=None):
    """
    Analyze both sections concurrently.

    Each worker builds its own SpectrumAnalyzer, so nothing is shared between
    the two threads. Returns (approach_analysis, recede_analysis).
    """
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="section") as pool:
        approach_future = pool.submit(
            analyze_section, approaching, sample_rate, "approach", config, transform
        )
        recede_future = pool.submit(
            analyze_section, receding, sample_rate, "recede", config, transform
        )
        return approach_future.result(), recede_future.result()
