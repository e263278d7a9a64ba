"""
End-to-end speed estimation.

    samples -> closest approach -> approach/recede sections -> ranked
    frequencies per section -> matching tiers -> final selection

The tiers (Primary, Secondary, Tertiary) run the same matching with wider
speed bounds and a different anchor; they share no state and are evaluated
in a fixed order so the final pick is deterministic.
"""

import logging
from dataclasses import replace

from core import constants as C
from core.approach_detector import detect_approach, validate_detection
from core.audio_sectioner import section_audio
from core.config import AnalysisConfig
from core.doppler_math import calculate_speed
from core.frequency_analysis import analyze_dual_sections, section_quality
from core.frequency_matcher import FrequencyMatcher, as_candidates
from core.models import (
    AnalysisResult,
    Diagnostics,
    ErrorKind,
    SpeedCandidate,
    SpeedEstimate,
    coerce_samples,
)

logger = logging.getLogger(__name__)

RECOMMENDATIONS = {
    ErrorKind.INSUFFICIENT_SAMPLES: (
        "Use a longer recording that covers both the approach and the recede",
    ),
    ErrorKind.NO_FREQUENCIES_FOUND: (
        "Check that the recording contains vehicle noise between 50 and 2000 Hz",
        "Check input levels; the clip may be silent or heavily clipped",
    ),
    ErrorKind.NO_VALID_MATCHES_FOUND: (
        "Record closer to the road or with less background noise",
        "Supply expected_speed_mph or manual time_ranges to guide the analysis",
    ),
}


def _run_exhaustive(tier, approach, recede, matcher, section_score):
    """Both orderings of every pair in the top candidates; closest to the anchor wins."""
    limit = tier.candidate_limit or max(len(approach), len(recede))
    anchor = tier.anchor_speed_mph
    best = None
    best_key = None

    for a in approach[:limit]:
        for r in recede[:limit]:
            for high, low in ((a, r), (r, a)):
                doppler = calculate_speed(high.frequency_hz, low.frequency_hz,
                                          matcher.sound_speed_ms, tier.bounds_kmh)
                if not doppler.valid or doppler.speed_kmh <= 0:
                    continue
                key = abs(doppler.speed_mph - anchor) if anchor is not None else doppler.speed_mph
                if best is None or key < best_key:
                    score = matcher.score_pair(high, low, doppler.speed_mph, section_score)
                    best = SpeedCandidate(
                        approach_freq=high.frequency_hz,
                        recede_freq=low.frequency_hz,
                        speed_mph=doppler.speed_mph,
                        speed_kmh=doppler.speed_kmh,
                        confidence=C.TERTIARY_CONFIDENCE_SCALE * score,
                        strategy=tier.name,
                    )
                    best_key = key
    return best


def run_tier(tier, approach, recede, matcher, approach_quality=None, recede_quality=None):
    """
    Run one matching tier over two candidate lists.

    Returns a SpeedCandidate tagged with the tier name, or None when the tier
    finds nothing.
    """
    approach = as_candidates(approach)
    recede = as_candidates(recede)
    if not approach or not recede:
        return None
    approach_quality = approach_quality or section_quality(approach)
    recede_quality = recede_quality or section_quality(recede)

    if tier.exhaustive:
        section_score = (approach_quality.overall_confidence + recede_quality.overall_confidence) / 2
        return _run_exhaustive(tier, approach, recede, matcher, section_score)

    result = matcher.match(
        approach, recede,
        bounds=tier.bounds_kmh,
        anchor_speed_mph=tier.anchor_speed_mph,
        approach_quality=approach_quality,
        recede_quality=recede_quality,
    )
    if not result.valid:
        return None
    best = result.best
    return SpeedCandidate(
        approach_freq=best.approach_freq,
        recede_freq=best.recede_freq,
        speed_mph=best.speed_mph,
        speed_kmh=best.speed_kmh,
        confidence=best.confidence,
        strategy=tier.name,
    )


def select_final(results):
    """
    Lowest speed inside the 10-100 mph band, else the lowest overall.

    ``results`` must be in tier order; min() keeps the first of equal speeds.
    """
    if not results:
        return None
    low, high = C.FINAL_SELECTION_BAND_MPH
    in_band = [r for r in results if low <= r.speed_mph <= high]
    return min(in_band or results, key=lambda r: r.speed_mph)


def match_and_calculate_speed(approach_freqs, recede_freqs, bounds=C.DEFAULT_SPEED_BOUNDS_KMH,
                              anchor_speed=None, sound_speed_ms=C.V_SOUND,
                              confidence_threshold=C.MATCH_CONFIDENCE_THRESHOLD):
    """
    Single matcher pass over two frequency lists.

    Frequencies may be FrequencyCandidate objects, dicts, (frequency, power)
    pairs or bare numbers.
    """
    matcher = FrequencyMatcher(confidence_threshold, sound_speed_ms)
    result = matcher.match(approach_freqs, recede_freqs, bounds=bounds,
                           anchor_speed_mph=anchor_speed)
    if not result.valid:
        return SpeedEstimate(valid=False, error=result.error, error_kind=result.error_kind)
    best = result.best
    return SpeedEstimate(
        valid=True,
        speed_mph=best.speed_mph,
        speed_kmh=best.speed_kmh,
        confidence=best.confidence,
        approach_freq=best.approach_freq,
        recede_freq=best.recede_freq,
    )


def _failure(stage, error, error_kind, issues, metadata, extra_recommendations=()):
    recommendations = list(extra_recommendations) + list(RECOMMENDATIONS.get(error_kind, ()))
    logger.info("Speed estimation failed at %s: %s", stage, error)
    return AnalysisResult(
        valid=False,
        error=error,
        error_kind=error_kind,
        diagnostics=Diagnostics(
            stage=stage,
            issues=tuple(issues) + (error,),
            recommendations=tuple(dict.fromkeys(recommendations)),
        ),
        metadata=metadata,
    )


def estimate_speed(samples, sample_rate, config=None, transform=None):
    """
    Estimate the speed of a passing vehicle from a mono clip.

    Args:
        samples: Mono samples, ideally normalized to [-1, 1]
        sample_rate: Sample rate in Hz
        config: AnalysisConfig (defaults when None)
        transform: FFT backend from ``select_transform`` (numpy when None)

    Returns:
        AnalysisResult. Recoverable failures come back with valid=False and
        diagnostics naming the failing stage.

    Raises:
        InvalidSamplesError: samples are not a finite, non-empty 1-D numeric
            buffer, or the sample rate is not positive.
    """
    samples = coerce_samples(samples, sample_rate)
    config = config or AnalysisConfig()
    issues = []
    recommendations = []
    metadata = {
        "sample_rate": float(sample_rate),
        "duration_s": len(samples) / sample_rate,
        "sound_speed_ms": float(config.effective_sound_speed()),
    }

    # Closest approach
    approach_index = None
    if config.approach_detection and config.sectioning_strategy in ("auto", "closest_approach"):
        detection = detect_approach(samples, sample_rate, config.approach)
        metadata["approach_detection"] = detection.to_dict()
        if detection.found:
            approach_index = detection.index
            check = validate_detection(detection, samples, sample_rate)
            issues.extend(check["issues"])
            recommendations.extend(check["recommendations"])
        else:
            issues.append(detection.reason)
            recommendations.append("Use manual time_ranges if the pass is not centred in the clip")

    # Sectioning
    sectioning = section_audio(samples, sample_rate, approach_index, config)
    metadata["sectioning"] = sectioning.to_dict()
    issues.extend(sectioning.validation.warnings)
    if not sectioning.is_valid:
        return _failure(
            "sectioning",
            "Invalid audio sectioning: " + ", ".join(sectioning.validation.errors or (sectioning.reason,)),
            ErrorKind.INSUFFICIENT_SAMPLES,
            issues, metadata, recommendations,
        )

    # Per-section spectra
    approach, recede = analyze_dual_sections(
        sectioning.approaching.samples, sectioning.receding.samples,
        sample_rate, config, transform,
    )
    metadata["sections"] = {"approach": approach.to_dict(), "recede": recede.to_dict()}
    for analysis in (approach, recede):
        if not analysis.valid:
            return _failure(
                "frequency_analysis",
                f"{analysis.section_type.capitalize()} section: {analysis.error}",
                analysis.error_kind,
                issues, metadata, recommendations,
            )
        recommendations.extend(
            r for r in analysis.quality.recommendations if r != "Good signal quality"
        )

    # Matching tiers
    matcher = FrequencyMatcher(config.confidence_threshold, config.effective_sound_speed())
    results = []
    tier_summaries = []
    for tier in config.tiers:
        if config.expected_speed_mph is not None:
            tier = replace(tier, anchor_speed_mph=config.expected_speed_mph)
        candidate = run_tier(tier, approach.candidates, recede.candidates, matcher,
                             approach.quality, recede.quality)
        tier_summaries.append(
            candidate.to_dict() if candidate else {"strategy": tier.name, "valid": False}
        )
        if candidate is not None:
            logger.debug("%s tier: %.1f mph (confidence %.3f)",
                         tier.name, candidate.speed_mph, candidate.confidence)
            results.append(candidate)
    metadata["tiers"] = tier_summaries

    final = select_final(results)
    if final is None:
        return _failure(
            "matching",
            "No valid frequency matches found",
            ErrorKind.NO_VALID_MATCHES_FOUND,
            issues, metadata, recommendations,
        )

    low, high = C.FINAL_SELECTION_BAND_MPH
    if not low <= final.speed_mph <= high:
        issues.append(f"Selected speed {final.speed_mph:.1f} mph is outside {low:g}-{high:g} mph")

    logger.info(
        "Estimated %.1f mph (%.1f km/h) via %s tier, %.1f -> %.1f Hz",
        final.speed_mph, final.speed_kmh, final.strategy, final.approach_freq, final.recede_freq,
    )
    return AnalysisResult(
        valid=True,
        speed_mph=final.speed_mph,
        speed_kmh=final.speed_kmh,
        confidence=final.confidence,
        strategy=final.strategy,
        approach_freq=final.approach_freq,
        recede_freq=final.recede_freq,
        alternatives=tuple(r for r in results if r is not final),
        diagnostics=Diagnostics(
            stage="complete",
            issues=tuple(issues),
            recommendations=tuple(dict.fromkeys(recommendations)),
        ),
        metadata=metadata,
    )
