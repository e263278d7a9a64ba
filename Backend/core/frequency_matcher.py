"""
Pairing of approach/recede frequency candidates.

Every approach candidate is paired with every lower recede candidate, the
Doppler speed is computed for the pair, and the pair is scored on power,
section quality, speed plausibility, frequency separation and rank.
"""

import logging
from numbers import Number

from core import constants as C
from core.doppler_math import calculate_speed
from core.frequency_analysis import section_quality
from core.models import ErrorKind, FrequencyCandidate, FrequencyMatch, MatchResult

logger = logging.getLogger(__name__)


def as_candidates(values):
    """
    Coerce a frequency list into ranked FrequencyCandidate objects.

    Accepts FrequencyCandidate objects, ``{"frequency_hz"|"frequency", "power"}``
    dicts, ``(frequency, power)`` pairs or bare frequencies (power 1.0).
    Normalized power is recomputed against the strongest entry of the list.
    """
    parsed = []
    for rank, value in enumerate(values, start=1):
        if isinstance(value, FrequencyCandidate):
            parsed.append((value.frequency_hz, value.power, value.rank))
        elif isinstance(value, dict):
            freq = value.get("frequency_hz", value.get("frequency"))
            parsed.append((float(freq), float(value.get("power", 1.0)), int(value.get("rank", rank))))
        elif isinstance(value, Number):
            parsed.append((float(value), 1.0, rank))
        else:
            freq, power = value
            parsed.append((float(freq), float(power), rank))

    if not parsed:
        return []
    strongest = max(p for _, p, _ in parsed)
    return [
        FrequencyCandidate(
            frequency_hz=freq,
            power=power,
            rank=rank,
            normalized_power=power / strongest if strongest > 0 else 0.0,
        )
        for freq, power, rank in parsed
    ]


def speed_reasonableness(speed_mph):
    low, high = C.REASONABLE_SPEED_MPH
    if speed_mph < low:
        return speed_mph / low
    if speed_mph > high:
        return max(C.HIGH_SPEED_PENALTY_FLOOR, 1.0 - (speed_mph - high) / high)
    return 1.0


def is_reasonable_frequency_shift(approach_freq, recede_freq):
    """True when the shift is 1-15% of the mean frequency (typical road speeds)."""
    average = (approach_freq + recede_freq) / 2
    if average <= 0:
        return False
    shift_pct = abs(approach_freq - recede_freq) / average * 100
    low, high = C.REASONABLE_SHIFT_PCT
    return low <= shift_pct <= high


def filter_reasonable_frequencies(candidates, min_freq=C.VEHICLE_BAND_HZ[0],
                                  max_freq=C.VEHICLE_BAND_HZ[1]):
    return [
        c for c in candidates
        if min_freq <= c.frequency_hz <= max_freq and c.power > 0
    ]


class FrequencyMatcher:
    """Scores approach/recede frequency pairs and keeps the confident ones."""

    def __init__(self, confidence_threshold=C.MATCH_CONFIDENCE_THRESHOLD,
                 sound_speed_ms=C.V_SOUND):
        self.confidence_threshold = confidence_threshold
        self.sound_speed_ms = sound_speed_ms

    def score_pair(self, approach, recede, speed_mph, section_score):
        """Composite confidence in [0, 1] for one pair."""
        w = C.MATCH_CONFIDENCE_WEIGHTS
        power_score = min(approach.normalized_power, recede.normalized_power)
        separation = (approach.frequency_hz - recede.frequency_hz) / recede.frequency_hz
        separation_score = min(1.0, separation * C.SEPARATION_SCALE)
        rank_bonus = max(
            0.0,
            1.0 - C.RANK_PENALTY * (approach.rank - 1) - C.RANK_PENALTY * (recede.rank - 1),
        )
        confidence = (
            w["power"] * power_score
            + w["section_quality"] * section_score
            + w["speed_reasonableness"] * speed_reasonableness(speed_mph)
            + w["separation"] * separation_score
            + w["rank"] * rank_bonus
        )
        return max(0.0, min(1.0, confidence))

    def match(self, approach, recede, bounds=C.DEFAULT_SPEED_BOUNDS_KMH,
              anchor_speed_mph=None, approach_quality=None, recede_quality=None):
        """
        Pair every approach candidate with every lower recede candidate.

        Args:
            approach: Approach-section candidates (see ``as_candidates``)
            recede: Recede-section candidates
            bounds: (min_kmh, max_kmh) speed window
            anchor_speed_mph: Breaks confidence ties by closeness to this speed
            approach_quality, recede_quality: SectionQuality, computed from the
                candidate lists when omitted

        Returns:
            MatchResult with surviving matches sorted by confidence (desc),
            then distance to the anchor, then encounter order.
        """
        approach = as_candidates(approach)
        recede = as_candidates(recede)
        if not approach or not recede:
            return MatchResult(
                valid=False,
                error="No frequencies to match",
                error_kind=ErrorKind.NO_FREQUENCIES_FOUND,
            )

        approach_quality = approach_quality or section_quality(approach)
        recede_quality = recede_quality or section_quality(recede)
        section_score = (approach_quality.overall_confidence + recede_quality.overall_confidence) / 2

        scored = []
        considered = 0
        for a in approach:
            for r in recede:
                if a.frequency_hz <= r.frequency_hz:
                    continue
                considered += 1
                doppler = calculate_speed(a.frequency_hz, r.frequency_hz,
                                          self.sound_speed_ms, bounds)
                if not doppler.valid:
                    continue

                confidence = self.score_pair(a, r, doppler.speed_mph, section_score)
                if confidence < self.confidence_threshold:
                    continue

                anchor_error = (abs(doppler.speed_mph - anchor_speed_mph)
                                if anchor_speed_mph is not None else None)
                scored.append(FrequencyMatch(
                    approach_freq=a.frequency_hz,
                    recede_freq=r.frequency_hz,
                    approach_power=a.power,
                    recede_power=r.power,
                    approach_rank=a.rank,
                    recede_rank=r.rank,
                    speed_kmh=doppler.speed_kmh,
                    speed_mph=doppler.speed_mph,
                    confidence=confidence,
                    frequency_separation=a.frequency_hz - r.frequency_hz,
                    relative_shift=(a.frequency_hz - r.frequency_hz) / r.frequency_hz,
                    anchor_error=anchor_error,
                ))

        # sorted() is stable, so encounter order is the last tie-break
        matches = sorted(
            scored,
            key=lambda m: (-m.confidence, m.anchor_error if m.anchor_error is not None else 0.0),
        )

        if not matches:
            logger.debug("No valid matches among %d ordered pairs", considered)
            return MatchResult(
                valid=False,
                pairs_considered=considered,
                error="No valid frequency matches found",
                error_kind=ErrorKind.NO_VALID_MATCHES_FOUND,
            )

        best = matches[0]
        logger.debug(
            "Best match %.1f/%.1f Hz -> %.1f mph (confidence %.3f, %d matches)",
            best.approach_freq, best.recede_freq, best.speed_mph, best.confidence, len(matches),
        )
        return MatchResult(
            valid=True,
            best=best,
            matches=tuple(matches),
            pairs_considered=considered,
        )
