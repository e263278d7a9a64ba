"""
Approach/recede sectioning.

Each strategy cuts the clip into an approaching and a receding section and is
validated on its own minimum length. ``section_best`` picks the most confident
strategy that validates; ``section_audio`` is the configurable entry point.
"""

import logging
from dataclasses import replace

import numpy as np

from core import constants as C
from core.config import AnalysisConfig
from core.models import SectioningResult, Section, SectionValidation, StrategyOutcome, coerce_samples

logger = logging.getLogger(__name__)


def _section(samples, sample_rate, start, end, strategy):
    start = int(max(0, start))
    end = int(min(len(samples), max(start, end)))
    return Section(
        samples=samples[start:end],
        sample_rate=sample_rate,
        start_sample=start,
        end_sample=end,
        strategy=strategy,
    )


def extract_closest_approach_sections(samples, sample_rate, approach_index,
                                      min_samples=C.MIN_SECTION_SAMPLES):
    """Everything before / after the closest approach, minus a margin around it."""
    n = len(samples)
    duration = n / sample_rate
    margin_s = min(C.APPROACH_MARGIN_MAX_S, duration * C.APPROACH_MARGIN_FRACTION)
    margin = int(margin_s * sample_rate)

    approach_end = max(approach_index - margin, min_samples)
    recede_start = max(0, min(approach_index + margin, n - min_samples))

    return (
        _section(samples, sample_rate, 0, approach_end, "closest_approach"),
        _section(samples, sample_rate, recede_start, n, "closest_approach"),
    )


def extract_quarter_sections(samples, sample_rate, strategy="short_file_quarters"):
    """First quarter approaching, last quarter receding."""
    n = len(samples)
    quarter = n // 4
    return (
        _section(samples, sample_rate, 0, quarter, strategy),
        _section(samples, sample_rate, n - quarter, n, strategy),
    )


def extract_time_sections(samples, sample_rate, time_ranges):
    """
    Sections from caller-supplied ``{"approaching": (start_s, end_s),
    "receding": (start_s, end_s)}``, clamped to the buffer.
    """
    sections = {}
    for name in ("approaching", "receding"):
        start_s, end_s = time_ranges[name]
        start = int(np.floor(start_s * sample_rate))
        end = int(np.floor(end_s * sample_rate))
        sections[name] = _section(samples, sample_rate, start, end, "time_based")
    return sections["approaching"], sections["receding"]


def validate_sections(approaching, receding, min_samples=C.MIN_SECTION_SAMPLES):
    """Both sections must hold ``min_samples``; a lopsided pair only warns."""
    errors = []
    warnings = []

    if len(approaching) < min_samples:
        errors.append(
            f"Approaching section too short: {len(approaching)} samples (minimum: {min_samples})"
        )
    if len(receding) < min_samples:
        errors.append(
            f"Receding section too short: {len(receding)} samples (minimum: {min_samples})"
        )

    if len(approaching) and len(receding):
        ratio = len(approaching) / len(receding)
        if ratio > C.MAX_SECTION_RATIO or ratio < 1 / C.MAX_SECTION_RATIO:
            warnings.append(f"Section length imbalance: approach/recede ratio = {ratio:.2f}")

    return SectionValidation(
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        strategy=approaching.strategy,
    )


def _evaluate(name, sections, min_samples, confidences, reasons):
    approaching, receding = sections
    validation = validate_sections(approaching, receding, min_samples)
    ok = validation.is_valid
    outcome = StrategyOutcome(
        name=name,
        confidence=confidences[0] if ok else confidences[1],
        reason=reasons[0] if ok else reasons[1],
        validation=validation,
    )
    return outcome, sections


def section_best(samples, sample_rate, approach_index=None, config=None):
    """
    Try closest_approach (when an index inside the clip is given),
    short_file_quarters (short clips) and simple_quarters, in that order.

    The most confident strategy that validates wins; equal confidences keep
    the earlier strategy. When none validates, the most confident one is
    returned with ``is_valid=False``.
    """
    config = config or AnalysisConfig()
    n = len(samples)
    duration = n / sample_rate
    candidates = []

    if approach_index is not None and 0 < approach_index < n:
        candidates.append(_evaluate(
            "closest_approach",
            extract_closest_approach_sections(samples, sample_rate, approach_index,
                                              config.min_section_samples),
            config.min_section_samples,
            C.CLOSEST_APPROACH_CONFIDENCE,
            ("Closest approach detected with valid sections",
             "Closest approach sections too small"),
        ))

    if duration < config.short_file_threshold_s:
        candidates.append(_evaluate(
            "short_file_quarters",
            extract_quarter_sections(samples, sample_rate, "short_file_quarters"),
            C.SHORT_FILE_MIN_SAMPLES,
            C.SHORT_FILE_CONFIDENCE,
            ("Short file strategy with valid sections", "Short file sections too small"),
        ))

    candidates.append(_evaluate(
        "simple_quarters",
        extract_quarter_sections(samples, sample_rate, "simple_quarters"),
        C.FALLBACK_MIN_SAMPLES,
        C.SIMPLE_QUARTERS_CONFIDENCE,
        ("Fallback quarters strategy", "All strategies failed"),
    ))

    valid = [c for c in candidates if c[0].validation.is_valid]
    pool = valid or candidates
    # sorted() is stable, so priority order breaks confidence ties
    best, (approaching, receding) = sorted(pool, key=lambda c: -c[0].confidence)[0]

    return SectioningResult(
        approaching=replace(approaching, is_valid=best.validation.is_valid),
        receding=replace(receding, is_valid=best.validation.is_valid),
        strategy=best.name,
        confidence=best.confidence,
        is_valid=bool(valid),
        reason=best.reason,
        validation=best.validation,
        alternatives=tuple(c[0] for c in candidates if c[0].name != best.name),
    )


def _fixed_sections(sections, strategy, confidences, reasons, min_samples):
    approaching, receding = sections
    validation = validate_sections(approaching, receding, min_samples)
    ok = validation.is_valid
    return SectioningResult(
        approaching=approaching,
        receding=receding,
        strategy=strategy,
        confidence=confidences[0 if ok else 1],
        is_valid=ok,
        reason=reasons[0 if ok else 1],
        validation=validation,
    )


def _quarter_fallback(samples, sample_rate, reason, min_samples):
    logger.info("%s, using first/last quarters", reason)
    return _fixed_sections(
        extract_quarter_sections(samples, sample_rate, "short_file_quarters"),
        "short_file_quarters",
        C.SHORT_FILE_CONFIDENCE,
        (f"{reason}; quarter sections", f"{reason}; quarter sections too small"),
        min_samples,
    )


def section_audio(samples, sample_rate, approach_index=None, config=None):
    """
    Split a clip into approaching/receding sections.

    Args:
        samples: Mono sample buffer
        sample_rate: Sample rate in Hz
        approach_index: Closest-approach sample index (from ``detect_approach``)
        config: AnalysisConfig; ``sectioning_strategy`` selects auto,
            closest_approach, quarters or time_based

    ``closest_approach`` without an index and ``time_based`` without both
    time ranges fall back to the first and last quarters.

    Returns:
        SectioningResult. ``is_valid`` is False whenever either section is
        shorter than ``config.min_section_samples``.
    """
    samples = coerce_samples(samples, sample_rate)
    config = config or AnalysisConfig()
    strategy = config.sectioning_strategy
    min_len = config.min_section_samples
    ranges = config.time_ranges or {}

    if strategy == "time_based":
        if "approaching" in ranges and "receding" in ranges:
            result = _fixed_sections(
                extract_time_sections(samples, sample_rate, ranges),
                "time_based",
                C.TIME_BASED_CONFIDENCE,
                ("Caller-supplied time ranges", "Caller-supplied time ranges too short"),
                min_len,
            )
        else:
            result = _quarter_fallback(samples, sample_rate, "No time ranges given", min_len)
    elif strategy == "closest_approach":
        if approach_index is not None and 0 < approach_index < len(samples):
            result = _fixed_sections(
                extract_closest_approach_sections(samples, sample_rate, approach_index, min_len),
                "closest_approach",
                C.CLOSEST_APPROACH_CONFIDENCE,
                ("Closest approach detected with valid sections",
                 "Closest approach sections too small"),
                min_len,
            )
        else:
            result = _quarter_fallback(samples, sample_rate, "No closest approach detected", min_len)
    elif strategy == "quarters":
        result = section_best(samples, sample_rate, None, config)
    else:
        result = section_best(samples, sample_rate, approach_index, config)

    final = validate_sections(result.approaching, result.receding, min_len)
    is_valid = result.is_valid and final.is_valid
    result = replace(
        result,
        approaching=replace(result.approaching, is_valid=len(result.approaching) >= min_len),
        receding=replace(result.receding, is_valid=len(result.receding) >= min_len),
        is_valid=is_valid,
        validation=replace(
            result.validation,
            errors=tuple(dict.fromkeys(result.validation.errors + final.errors)),
            warnings=tuple(dict.fromkeys(result.validation.warnings + final.warnings)),
        ),
    )

    for warning in result.validation.warnings:
        logger.warning("Sectioning (%s): %s", result.strategy, warning)
    if not is_valid:
        logger.warning("Sectioning (%s) invalid: %s", result.strategy,
                       "; ".join(result.validation.errors) or result.reason)
    else:
        logger.debug(
            "Sectioning: %s, approach %d samples, recede %d samples",
            result.strategy, len(result.approaching), len(result.receding),
        )
    return result


def extract_overlapping_sections(samples, sample_rate, section_duration=1.0, overlap_percent=25):
    """
    Overlapping fixed-length windows from the first half (approaching) and the
    second half (receding) of the clip.

    Returns dict with ``approaching`` and ``receding`` lists of Section plus
    a ``metadata`` dict.
    """
    samples = np.asarray(samples, dtype=np.float64)
    section_samples = int(section_duration * sample_rate)
    overlap_samples = int(section_samples * overlap_percent / 100)
    step = section_samples - overlap_samples
    if section_samples <= 0 or step <= 0:
        raise ValueError("section_duration must be positive and overlap_percent below 100")

    half = len(samples) // 2
    approaching = [
        _section(samples, sample_rate, start, start + section_samples, "overlapping_sections")
        for start in range(0, half - section_samples + 1, step)
    ]
    receding = [
        _section(samples, sample_rate, start, start + section_samples, "overlapping_sections")
        for start in range(half, len(samples) - section_samples + 1, step)
    ]
    return {
        "approaching": approaching,
        "receding": receding,
        "metadata": {
            "section_duration": section_duration,
            "overlap_percent": overlap_percent,
            "section_samples": section_samples,
            "overlap_samples": overlap_samples,
            "step_samples": step,
        },
    }
