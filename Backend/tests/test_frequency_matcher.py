import numpy as np
import pytest

from core.frequency_analysis import analyze_dual_sections, analyze_section, section_quality
from core.frequency_matcher import (
    FrequencyMatcher,
    as_candidates,
    filter_reasonable_frequencies,
    is_reasonable_frequency_shift,
    speed_reasonableness,
)
from core.models import ErrorKind, FrequencyCandidate
from signal_builders import tone


def doppler_mph(fa, fr, c=343.0):
    return c * (fa - fr) / (fa + fr) * 3.6 * 0.621371


# ===== Section quality =====

def test_quality_of_empty_list():
    quality = section_quality([])

    assert quality.overall_confidence == 0.0
    assert quality.noise_level == 1.0
    assert quality.recommendations == ("No significant frequencies detected",)


def test_quality_components():
    candidates = as_candidates([(1100.0, 1.0), (1050.0, 0.4)])

    quality = section_quality(candidates)

    assert quality.signal_strength == 1.0
    assert quality.peak_clarity == pytest.approx(0.6)
    assert quality.frequency_distribution == pytest.approx(50.0 / 1050.0)
    assert quality.noise_level == pytest.approx(0.09 / 0.49)
    assert quality.overall_confidence == pytest.approx(0.6711564626, abs=1e-9)


def test_quality_single_peak():
    quality = section_quality([FrequencyCandidate(500.0, 0.0005)])

    assert quality.peak_clarity == 1.0
    assert quality.frequency_distribution == 0.5
    assert quality.signal_strength == pytest.approx(0.5)


# ===== Section analysis =====

def test_short_section_is_invalid():
    result = analyze_section(np.zeros(1000), 8000, "approach")

    assert not result.valid
    assert result.error_kind is ErrorKind.INSUFFICIENT_SAMPLES
    assert result.error == "Section too short: 1000 samples"


def test_silent_section_has_no_frequencies():
    result = analyze_section(np.zeros(4096), 8000, "recede")

    assert not result.valid
    assert result.error_kind is ErrorKind.NO_FREQUENCIES_FOUND


def test_dual_sections_run_independently():
    sr = 16000
    approach, recede = analyze_dual_sections(tone(880.0, sr, 1.0), tone(800.0, sr, 1.0), sr)

    assert approach.section_type == "approach" and recede.section_type == "recede"
    assert abs(approach.candidates[0].frequency_hz - 880.0) < 1.0
    assert abs(recede.candidates[0].frequency_hz - 800.0) < 1.0
    assert len(approach.candidates) == 10
    assert 0.0 < approach.confidence <= 1.0


# ===== Helpers =====

def test_speed_reasonableness_bands():
    assert speed_reasonableness(2.5) == pytest.approx(0.5)
    assert speed_reasonableness(50.0) == 1.0
    assert speed_reasonableness(150.0) == pytest.approx(0.5)
    assert speed_reasonableness(400.0) == pytest.approx(0.2)


def test_reasonable_frequency_shift():
    assert is_reasonable_frequency_shift(1100.0, 950.0)
    assert not is_reasonable_frequency_shift(1000.0, 999.0)
    assert not is_reasonable_frequency_shift(2000.0, 1000.0)


def test_filter_reasonable_frequencies():
    candidates = as_candidates([(30.0, 1.0), (500.0, 0.5), (2500.0, 0.5), (900.0, 0.0)])

    kept = filter_reasonable_frequencies(candidates)

    assert [c.frequency_hz for c in kept] == [500.0]


def test_as_candidates_accepts_mixed_inputs():
    parsed = as_candidates([
        FrequencyCandidate(1000.0, 0.2, rank=3),
        {"frequency": 900.0, "power": 0.4},
        (800.0, 0.1),
        700,
    ])

    assert [c.frequency_hz for c in parsed] == [1000.0, 900.0, 800.0, 700.0]
    assert [c.rank for c in parsed] == [3, 2, 3, 4]
    assert parsed[3].normalized_power == pytest.approx(1.0)
    assert parsed[0].normalized_power == pytest.approx(0.2)


# ===== Matching =====

def test_best_match_is_strongest_pair():
    matcher = FrequencyMatcher()

    result = matcher.match([(1100.0, 1.0), (1050.0, 0.4)], [(950.0, 1.0), (990.0, 0.3)])

    assert result.valid
    assert (result.best.approach_freq, result.best.recede_freq) == (1100.0, 950.0)
    assert result.best.speed_mph == pytest.approx(doppler_mph(1100.0, 950.0))
    assert result.pairs_considered == 4
    confidences = [m.confidence for m in result.matches]
    assert confidences == sorted(confidences, reverse=True)


def test_pairs_with_approach_not_above_recede_are_skipped():
    result = FrequencyMatcher().match([(900.0, 1.0)], [(950.0, 1.0), (900.0, 0.5)])

    assert not result.valid
    assert result.pairs_considered == 0
    assert result.error_kind is ErrorKind.NO_VALID_MATCHES_FOUND


def test_matches_below_threshold_are_discarded():
    strict = FrequencyMatcher(confidence_threshold=0.99)

    result = strict.match([(1100.0, 1.0), (1050.0, 0.4)], [(950.0, 1.0)])

    assert not result.valid


def test_out_of_bounds_pairs_are_discarded():
    result = FrequencyMatcher().match([(2000.0, 1.0)], [(1000.0, 1.0)], bounds=(0.0, 300.0))

    assert not result.valid


def test_equal_confidence_broken_by_anchor_then_order():
    # Same power, rank and capped separation: identical confidence
    approach = [FrequencyCandidate(1100.0, 1.0, rank=1)]
    recede = [FrequencyCandidate(950.0, 1.0, rank=1), FrequencyCandidate(900.0, 1.0, rank=1)]
    matcher = FrequencyMatcher()

    no_anchor = matcher.match(approach, recede)
    near_fast = matcher.match(approach, recede, anchor_speed_mph=80.0)
    near_slow = matcher.match(approach, recede, anchor_speed_mph=30.0)

    assert no_anchor.matches[0].confidence == no_anchor.matches[1].confidence
    assert no_anchor.best.recede_freq == 950.0
    assert near_fast.best.recede_freq == 900.0
    assert near_slow.best.recede_freq == 950.0


def test_empty_lists():
    result = FrequencyMatcher().match([], [(950.0, 1.0)])

    assert not result.valid
    assert result.error_kind is ErrorKind.NO_FREQUENCIES_FOUND
