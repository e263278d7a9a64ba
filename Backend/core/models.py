"""Result types shared by the Doppler speed pipeline.

Every stage returns one of these frozen records instead of raising, so a
failed stage is visible as ``valid``/``found``/``is_valid`` = False plus a
reason string and an :class:`ErrorKind`.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class ErrorKind(str, Enum):
    INSUFFICIENT_SAMPLES = "insufficient_samples"
    NO_ENERGY_PEAKS_DETECTED = "no_energy_peaks_detected"
    NO_FREQUENCIES_FOUND = "no_frequencies_found"
    INVALID_FREQUENCY_PAIR = "invalid_frequency_pair"
    SPEED_OUT_OF_BOUNDS = "speed_out_of_bounds"
    NO_VALID_MATCHES_FOUND = "no_valid_matches_found"


class InvalidSamplesError(ValueError):
    """Raised at the pipeline boundary for malformed sample buffers."""


def coerce_samples(samples, sample_rate):
    """Validate a sample buffer at the pipeline boundary and return it as float64."""
    try:
        buffer = np.asarray(samples, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidSamplesError(f"Samples must be numeric: {e}") from e
    if buffer.ndim != 1:
        raise InvalidSamplesError(f"Samples must be one-dimensional, got shape {buffer.shape}")
    if len(buffer) == 0:
        raise InvalidSamplesError("Sample buffer is empty")
    if not np.all(np.isfinite(buffer)):
        raise InvalidSamplesError("Samples contain NaN or infinite values")
    try:
        rate = float(sample_rate)
    except (TypeError, ValueError) as e:
        raise InvalidSamplesError(f"Sample rate must be numeric: {e}") from e
    if not np.isfinite(rate) or rate <= 0:
        raise InvalidSamplesError(f"Sample rate must be positive, got {sample_rate}")
    return buffer


def _kind(value):
    return value.value if value is not None else None


@dataclass(frozen=True)
class FrequencyCandidate:
    frequency_hz: float
    power: float
    rank: int = 1
    normalized_power: float = 1.0

    def to_dict(self):
        return {
            "frequency_hz": round(float(self.frequency_hz), 2),
            "power": float(self.power),
            "rank": int(self.rank),
            "normalized_power": round(float(self.normalized_power), 4),
        }


@dataclass(frozen=True)
class DopplerResult:
    valid: bool
    speed_kmh: Optional[float] = None
    speed_mph: Optional[float] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    frequency_shift: float = 0.0
    relative_factor: float = 0.0


@dataclass(frozen=True)
class Peak:
    index: int
    energy: float
    prominence: float
    normalized_prominence: float
    time: float
    confidence: float


@dataclass(frozen=True)
class ApproachDetection:
    found: bool
    index: int
    confidence: float
    reason: str
    peaks: tuple = ()
    warning: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            "found": self.found,
            "index": int(self.index),
            "confidence": round(float(self.confidence), 4),
            "reason": self.reason,
            "warning": self.warning,
            "peaks_found": len(self.peaks),
        }


@dataclass(frozen=True, eq=False)
class Section:
    """A contiguous slice of the recording."""

    samples: np.ndarray = field(repr=False)
    sample_rate: int
    start_sample: int
    end_sample: int
    strategy: str
    is_valid: bool = True

    def __len__(self):
        return len(self.samples)

    @property
    def duration_s(self):
        return len(self.samples) / self.sample_rate if self.sample_rate else 0.0


@dataclass(frozen=True)
class SectionValidation:
    is_valid: bool
    errors: tuple = ()
    warnings: tuple = ()
    strategy: str = "unknown"


@dataclass(frozen=True)
class StrategyOutcome:
    name: str
    confidence: float
    reason: str
    validation: SectionValidation


@dataclass(frozen=True, eq=False)
class SectioningResult:
    approaching: Section
    receding: Section
    strategy: str
    confidence: float
    is_valid: bool
    reason: str
    validation: SectionValidation
    alternatives: tuple = ()

    def to_dict(self):
        return {
            "strategy": self.strategy,
            "confidence": self.confidence,
            "is_valid": self.is_valid,
            "reason": self.reason,
            "approach_duration_s": round(self.approaching.duration_s, 3),
            "recede_duration_s": round(self.receding.duration_s, 3),
            "errors": list(self.validation.errors),
            "warnings": list(self.validation.warnings),
        }


@dataclass(frozen=True)
class SectionQuality:
    overall_confidence: float
    signal_strength: float
    peak_clarity: float
    frequency_distribution: float
    noise_level: float
    max_power: float = 0.0
    avg_power: float = 0.0
    recommendations: tuple = ()


@dataclass(frozen=True)
class HarmonicMatch:
    """A context bin within tolerance of ``order`` x (or 1/``order`` of) a frequency."""

    order: int
    frequency_hz: float
    power: float
    power_ratio: float
    deviation_hz: float

    def to_dict(self):
        return {
            "order": self.order,
            "frequency_hz": round(float(self.frequency_hz), 2),
            "power_ratio": round(float(self.power_ratio), 4),
            "deviation_hz": round(float(self.deviation_hz), 2),
        }


@dataclass(frozen=True)
class HarmonicInfo:
    harmonics: tuple = ()
    subharmonics: tuple = ()

    @property
    def is_likely_fundamental(self):
        return not self.subharmonics and bool(self.harmonics)

    @property
    def is_likely_harmonic(self):
        return bool(self.subharmonics)

    def to_dict(self):
        return {
            "harmonics": [h.to_dict() for h in self.harmonics],
            "subharmonics": [h.to_dict() for h in self.subharmonics],
            "is_likely_fundamental": self.is_likely_fundamental,
            "is_likely_harmonic": self.is_likely_harmonic,
        }


@dataclass(frozen=True)
class FrequencyDetail:
    frequency_hz: float
    power: float
    rank: int
    normalized_power: float
    power_pct: float
    prominence: float
    stability: float
    harmonics: HarmonicInfo
    quality: float

    def to_dict(self):
        return {
            "frequency_hz": round(float(self.frequency_hz), 2),
            "rank": self.rank,
            "normalized_power": round(float(self.normalized_power), 4),
            "power_pct": round(float(self.power_pct), 2),
            "prominence": round(float(self.prominence), 4),
            "stability": round(float(self.stability), 4),
            "quality": round(float(self.quality), 4),
            "harmonics": self.harmonics.to_dict(),
        }


@dataclass(frozen=True)
class SignalAssessment:
    overall: str
    snr_db: float
    dynamic_range_db: float
    content: str
    recommendations: tuple = ()

    def to_dict(self):
        return {
            "overall": self.overall,
            "snr_db": round(float(self.snr_db), 2),
            "dynamic_range_db": round(float(self.dynamic_range_db), 2),
            "content": self.content,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class RankedFrequency:
    frequency_hz: float
    power: float
    rank: int
    power_score: float
    position_bonus: float
    band_bonus: float

    @property
    def score(self):
        return self.power_score + self.position_bonus + self.band_bonus

    def to_dict(self):
        return {
            "frequency_hz": round(float(self.frequency_hz), 2),
            "rank": self.rank,
            "score": round(float(self.score), 4),
        }


@dataclass(frozen=True)
class SingleSectionAnalysis:
    """Standalone analysis of one buffer; see ``analyze_single_section``."""

    valid: bool
    details: tuple = ()
    context: tuple = ()
    peak_frequency: Optional[float] = None
    confidence: float = 0.0
    assessment: Optional[SignalAssessment] = None
    sample_count: int = 0
    sample_rate: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def duration_s(self):
        return self.sample_count / self.sample_rate if self.sample_rate else 0.0

    def top(self, count=5):
        return self.details[:count] if self.valid else ()

    def in_range(self, low_hz, high_hz):
        return tuple(d for d in self.details if low_hz <= d.frequency_hz <= high_hz)

    def summary(self):
        if not self.valid:
            return {"status": "failed", "error": self.error}
        return {
            "status": "success",
            "peak_frequency_hz": self.peak_frequency,
            "confidence": round(self.confidence, 4),
            "frequency_count": len(self.details),
            "quality_rating": self.assessment.overall,
            "snr_db": round(self.assessment.snr_db, 1),
            "duration_s": round(self.duration_s, 3),
        }


@dataclass(frozen=True)
class SectionAnalysis:
    section_type: str
    valid: bool
    candidates: tuple = ()
    peak_frequency: Optional[float] = None
    quality: Optional[SectionQuality] = None
    sample_count: int = 0
    duration_s: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    details: tuple = ()
    ranking: tuple = ()
    assessment: Optional[SignalAssessment] = None
    detail_confidence: float = 0.0

    @property
    def confidence(self):
        return self.quality.overall_confidence if self.quality else 0.0

    def to_dict(self):
        return {
            "section_type": self.section_type,
            "valid": self.valid,
            "confidence": round(self.confidence, 4),
            "peak_frequency_hz": self.peak_frequency,
            "frequency_count": len(self.candidates),
            "top_frequencies": [c.to_dict() for c in self.candidates[:5]],
            "frequency_details": [d.to_dict() for d in self.details[:5]],
            "ranking": [r.to_dict() for r in self.ranking[:5]],
            "signal_assessment": self.assessment.to_dict() if self.assessment else None,
            "detail_confidence": round(self.detail_confidence, 4),
            "error": self.error,
        }


@dataclass(frozen=True)
class FrequencyMatch:
    approach_freq: float
    recede_freq: float
    approach_power: float
    recede_power: float
    approach_rank: int
    recede_rank: int
    speed_kmh: float
    speed_mph: float
    confidence: float
    frequency_separation: float
    relative_shift: float
    anchor_error: Optional[float] = None


@dataclass(frozen=True)
class MatchResult:
    valid: bool
    best: Optional[FrequencyMatch] = None
    matches: tuple = ()
    pairs_considered: int = 0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


@dataclass(frozen=True)
class SpeedCandidate:
    approach_freq: float
    recede_freq: float
    speed_mph: float
    speed_kmh: float
    confidence: float
    strategy: str

    def to_dict(self):
        return {
            "strategy": self.strategy,
            "speed_mph": round(self.speed_mph, 2),
            "speed_kmh": round(self.speed_kmh, 2),
            "confidence": round(self.confidence, 4),
            "approach_freq_hz": round(self.approach_freq, 2),
            "recede_freq_hz": round(self.recede_freq, 2),
        }


@dataclass(frozen=True)
class SpeedEstimate:
    valid: bool
    speed_mph: Optional[float] = None
    speed_kmh: Optional[float] = None
    confidence: float = 0.0
    approach_freq: Optional[float] = None
    recede_freq: Optional[float] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


@dataclass(frozen=True)
class Diagnostics:
    stage: str
    issues: tuple = ()
    recommendations: tuple = ()

    def to_dict(self):
        return {
            "stage": self.stage,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class AnalysisResult:
    valid: bool
    speed_mph: Optional[float] = None
    speed_kmh: Optional[float] = None
    confidence: float = 0.0
    strategy: Optional[str] = None
    approach_freq: Optional[float] = None
    recede_freq: Optional[float] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    alternatives: tuple = ()
    diagnostics: Optional[Diagnostics] = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            "valid": self.valid,
            "speed_mph": None if self.speed_mph is None else round(self.speed_mph, 2),
            "speed_kmh": None if self.speed_kmh is None else round(self.speed_kmh, 2),
            "confidence": round(float(self.confidence), 4),
            "strategy": self.strategy,
            "approach_freq_hz": self.approach_freq,
            "recede_freq_hz": self.recede_freq,
            "error": self.error,
            "error_kind": _kind(self.error_kind),
            "alternatives": [alt.to_dict() for alt in self.alternatives],
            "diagnostics": self.diagnostics.to_dict() if self.diagnostics else None,
            "metadata": self.metadata,
        }
