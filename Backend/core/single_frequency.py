"""
Per-frequency detail for one section.

Every candidate is scored against a wider context list (the strongest
in-band bins of the same spectrum):

    prominence: power against the strongest neighbour within 50 Hz
    stability: 1 - coefficient of variation of the bins within 10 Hz
    harmonics: context bins at 2-5x and 1/2-1/4 of the frequency (5 %)

These scores are reported alongside the section quality; matching still
consumes candidates in power order.
"""

import logging
import math

import numpy as np

from core import constants as C
from core.models import (
    ErrorKind,
    FrequencyDetail,
    HarmonicInfo,
    HarmonicMatch,
    RankedFrequency,
    SignalAssessment,
    SingleSectionAnalysis,
)
from core.spectrum import SpectrumAnalyzer

logger = logging.getLogger(__name__)


def frequency_prominence(target, context, position=0):
    """Share of power against the loudest neighbour, plus a bonus for the top ten."""
    nearby = [
        c.power for c in context
        if abs(c.frequency_hz - target.frequency_hz) <= C.PROMINENCE_BANDWIDTH_HZ
        and c.frequency_hz != target.frequency_hz
    ]
    if not nearby:
        return 1.0
    total = target.power + max(nearby)
    prominence = target.power / total if total > 0 else 0.0
    rank_bonus = max(0.0, (10 - position) / 10 * 0.1)
    return min(1.0, prominence + rank_bonus)


def frequency_stability(target, context):
    similar = [
        c.power for c in context
        if abs(c.frequency_hz - target.frequency_hz) <= C.STABILITY_TOLERANCE_HZ
    ]
    if len(similar) <= 1:
        return 0.5
    powers = np.array(similar, dtype=np.float64)
    cv = float(np.std(powers)) / (float(np.mean(powers)) + 1e-10)
    return min(1.0, max(0.0, 1.0 - cv))


def _first_within(expected, target, context, order):
    tolerance = expected * C.HARMONIC_TOLERANCE
    for c in context:
        if abs(c.frequency_hz - expected) <= tolerance:
            return HarmonicMatch(
                order=order,
                frequency_hz=c.frequency_hz,
                power=c.power,
                power_ratio=c.power / target.power if target.power > 0 else 0.0,
                deviation_hz=abs(c.frequency_hz - expected),
            )
    return None


def harmonic_relations(target, context):
    """
    Harmonics (2f..5f) and subharmonics (f/2..f/4) present in the context.

    The strongest context bin within 5 % of each expected frequency is taken,
    so ``context`` must be in descending power order.
    """
    f = target.frequency_hz
    harmonics = (_first_within(f * k, target, context, k) for k in C.HARMONIC_ORDERS)
    subharmonics = (_first_within(f / d, target, context, d) for d in C.SUBHARMONIC_DIVISORS)
    return HarmonicInfo(
        harmonics=tuple(h for h in harmonics if h is not None),
        subharmonics=tuple(s for s in subharmonics if s is not None),
    )


def frequency_quality(normalized_power, prominence, stability, harmonics):
    w = C.FREQUENCY_QUALITY_WEIGHTS
    quality = (
        w["normalized_power"] * normalized_power
        + w["prominence"] * prominence
        + w["stability"] * stability
    )
    if harmonics.is_likely_fundamental:
        quality += 0.1
    elif harmonics.harmonics:
        quality += 0.05
    if harmonics.is_likely_harmonic:
        quality -= 0.1
    return max(0.0, min(1.0, quality))


def describe_frequencies(candidates, context):
    """FrequencyDetail for each candidate, scored against ``context``."""
    if not candidates or not context:
        return ()
    max_power = max(c.power for c in context)
    total_power = sum(c.power for c in context)

    details = []
    for position, cand in enumerate(candidates):
        normalized = cand.power / max_power if max_power > 0 else 0.0
        prominence = frequency_prominence(cand, context, position)
        stability = frequency_stability(cand, context)
        harmonics = harmonic_relations(cand, context)
        details.append(FrequencyDetail(
            frequency_hz=cand.frequency_hz,
            power=cand.power,
            rank=position + 1,
            normalized_power=normalized,
            power_pct=100.0 * cand.power / total_power if total_power > 0 else 0.0,
            prominence=prominence,
            stability=stability,
            harmonics=harmonics,
            quality=frequency_quality(normalized, prominence, stability, harmonics),
        ))
    return tuple(details)


def analysis_confidence(details, sample_count):
    """
    How far the detail list can be trusted, 0-1.

    Mean per-frequency quality, strength of the top bin, its clarity over the
    runner-up, spread of the list and sample count against 4096.
    """
    if not details:
        return 0.0
    avg_quality = sum(d.quality for d in details) / len(details)
    strength = details[0].normalized_power

    if len(details) > 1:
        spread = (details[-1].frequency_hz - details[0].frequency_hz) / details[0].frequency_hz
        diversity = max(0.0, min(1.0, spread * 2))
        clarity = (details[0].power - details[1].power) / details[0].power
    else:
        diversity = 0.0
        clarity = 1.0
    adequacy = min(1.0, sample_count / C.SAMPLE_ADEQUACY_REFERENCE)

    w = C.ANALYSIS_CONFIDENCE_WEIGHTS
    confidence = (
        w["average_quality"] * avg_quality
        + w["signal_strength"] * strength
        + w["peak_clarity"] * clarity
        + w["diversity"] * diversity
        + w["sample_adequacy"] * adequacy
    )
    return max(0.0, min(1.0, confidence))


def assess_signal(details, context):
    if not details:
        return SignalAssessment(
            overall="poor",
            snr_db=0.0,
            dynamic_range_db=0.0,
            content="limited",
            recommendations=("No significant frequencies detected - check audio levels",),
        )

    powers = [c.power for c in context]
    avg_power = sum(powers) / len(powers)
    snr_db = 20 * math.log10(details[0].power / (avg_power + 1e-10))
    dynamic_range_db = 20 * math.log10(max(powers) / (min(powers) + 1e-10))

    if len(details) >= 5:
        content = "rich"
    elif len(details) >= 3:
        content = "moderate"
    else:
        content = "limited"

    avg_quality = sum(d.quality for d in details) / len(details)
    overall = "poor"
    for rating, min_quality, min_snr in C.SIGNAL_RATINGS:
        if avg_quality >= min_quality and snr_db >= min_snr:
            overall = rating
            break

    recommendations = []
    if snr_db < 6:
        recommendations.append("Low signal-to-noise ratio - reduce background noise")
    if dynamic_range_db < 20:
        recommendations.append("Limited dynamic range - check audio levels")
    if len(details) < 3:
        recommendations.append("Limited frequency content - verify audio source")
    if details[0].quality < 0.5:
        recommendations.append("Primary frequency has low quality score")

    return SignalAssessment(
        overall=overall,
        snr_db=snr_db,
        dynamic_range_db=dynamic_range_db,
        content=content,
        recommendations=tuple(recommendations) or ("Signal quality is good for analysis",),
    )


def _band_bonus(frequency_hz):
    low, high = C.RANKING_CORE_BAND_HZ
    if low <= frequency_hz <= high:
        return 0.1
    low, high = C.RANKING_WIDE_BAND_HZ
    if low <= frequency_hz <= high:
        return 0.05
    return 0.0


def rank_frequencies(candidates):
    """
    Re-rank candidates for Doppler use: relative power, a bonus for list
    position and a bonus for sitting in the vehicle band.

    ``rank`` on each entry is the input position; the result is sorted by
    score, ties keeping input order.
    """
    if not candidates:
        return ()
    max_power = max(c.power for c in candidates)
    n = len(candidates)
    ranked = [
        RankedFrequency(
            frequency_hz=c.frequency_hz,
            power=c.power,
            rank=i + 1,
            power_score=c.power / max_power if max_power > 0 else 0.0,
            position_bonus=max(0.0, (n - i) / n * C.RANKING_POSITION_WEIGHT),
            band_bonus=_band_bonus(c.frequency_hz),
        )
        for i, c in enumerate(candidates)
    ]
    return tuple(sorted(ranked, key=lambda r: -r.score))


def analyze_single_section(samples, sample_rate, top_count=C.TOP_FREQUENCY_COUNT,
                           band=C.SINGLE_SECTION_BAND_HZ,
                           power_threshold=C.SINGLE_SECTION_POWER_THRESHOLD,
                           window_type="hamming", transform=None):
    """
    Frequency content of one buffer with per-frequency scoring.

    Args:
        samples: Mono samples
        sample_rate: Sample rate in Hz
        top_count: Number of frequencies to score in detail
        band: (low, high) Hz; bins outside are ignored
        power_threshold: Bins below this power are ignored

    Returns:
        SingleSectionAnalysis. Fewer than 512 samples gives valid=False; a
        silent buffer is valid with no details and confidence 0.
    """
    samples = np.asarray(samples, dtype=np.float64)
    n = len(samples)
    if n < C.SINGLE_SECTION_MIN_SAMPLES:
        return SingleSectionAnalysis(
            valid=False,
            sample_count=n,
            sample_rate=sample_rate,
            error=f"Sample count too low: {n} (minimum: {C.SINGLE_SECTION_MIN_SAMPLES})",
            error_kind=ErrorKind.INSUFFICIENT_SAMPLES,
        )

    analyzer = SpectrumAnalyzer(samples, sample_rate, window_type, transform)
    analyzer.calculate_power_spectrum()
    context = tuple(
        c for c in analyzer.get_strongest_frequencies(C.FREQUENCY_CONTEXT_COUNT, band=band)
        if c.power >= power_threshold
    )
    details = describe_frequencies(context[:top_count], context)
    confidence = analysis_confidence(details, n)
    assessment = assess_signal(details, context)

    logger.debug("Single section: %d frequencies, confidence %.3f, %s",
                 len(details), confidence, assessment.overall)
    return SingleSectionAnalysis(
        valid=True,
        details=details,
        context=context,
        peak_frequency=analyzer.find_peak_frequency(),
        confidence=confidence,
        assessment=assessment,
        sample_count=n,
        sample_rate=sample_rate,
    )
