import logging
from dataclasses import dataclass, field, fields, replace
from typing import Optional

from core import constants as C
from core.doppler_math import speed_of_sound

logger = logging.getLogger(__name__)

SECTIONING_STRATEGIES = ("auto", "closest_approach", "quarters", "time_based")
APPROACH_METHODS = ("energy_peaks", "peak_rms")


@dataclass(frozen=True)
class ApproachOptions:
    window_size_s: float = C.APPROACH_WINDOW_S
    smoothing_s: float = C.APPROACH_SMOOTHING_S
    min_confidence: float = C.APPROACH_MIN_CONFIDENCE
    peak_prominence: float = C.APPROACH_PEAK_PROMINENCE
    method: str = "energy_peaks"


@dataclass(frozen=True)
class TierConfig:
    """One parameterization of the matching pipeline."""

    name: str
    bounds_kmh: tuple
    anchor_speed_mph: Optional[float]
    exhaustive: bool = False
    candidate_limit: Optional[int] = None


DEFAULT_TIERS = (
    TierConfig("Primary", C.PRIMARY_BOUNDS_KMH, C.PRIMARY_ANCHOR_MPH),
    TierConfig("Secondary", C.SECONDARY_BOUNDS_KMH, C.SECONDARY_ANCHOR_MPH),
    TierConfig(
        "Tertiary",
        C.TERTIARY_BOUNDS_KMH,
        None,
        exhaustive=True,
        candidate_limit=C.TERTIARY_CANDIDATE_LIMIT,
    ),
)


def _approach_from_mapping(value):
    if isinstance(value, ApproachOptions):
        return value
    if not isinstance(value, dict):
        raise ValueError(f"approach must be a mapping of detector options, got {value!r}")
    known = {f.name for f in fields(ApproachOptions)}
    return ApproachOptions(**{k: v for k, v in value.items() if k in known and v is not None})


def _tier_from_mapping(value):
    if isinstance(value, TierConfig):
        return value
    if not isinstance(value, dict):
        raise ValueError(f"Tier definition must be a mapping, got {value!r}")
    if "name" not in value or "bounds_kmh" not in value:
        raise ValueError("Tier definition needs name and bounds_kmh")
    try:
        low, high = (float(b) for b in value["bounds_kmh"])
        anchor = value.get("anchor_speed_mph")
        limit = value.get("candidate_limit")
        return TierConfig(
            name=str(value["name"]),
            bounds_kmh=(low, high),
            anchor_speed_mph=None if anchor is None else float(anchor),
            exhaustive=bool(value.get("exhaustive", False)),
            candidate_limit=None if limit is None else int(limit),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid tier definition {value!r}: {e}") from e


@dataclass(frozen=True)
class AnalysisConfig:
    """Knobs for one ``estimate_speed`` run.

    ``expected_speed_mph`` replaces every tier's anchor when given (the
    Tertiary tier then minimizes the distance to it instead of picking the
    lowest speed). ``time_ranges`` is only read by the ``time_based``
    sectioning strategy and maps ``approaching``/``receding`` to
    ``(start_s, end_s)``; without both ranges that strategy falls back to
    quarter sections.
    """

    window_type: str = "hamming"
    top_frequency_count: int = C.TOP_FREQUENCY_COUNT
    frequency_band: tuple = C.VEHICLE_BAND_HZ
    confidence_threshold: float = C.MATCH_CONFIDENCE_THRESHOLD
    min_section_samples: int = C.MIN_SECTION_SAMPLES
    short_file_threshold_s: float = C.SHORT_FILE_THRESHOLD_S
    sectioning_strategy: str = "auto"
    time_ranges: Optional[dict] = None
    approach_detection: bool = True
    approach: ApproachOptions = field(default_factory=ApproachOptions)
    expected_speed_mph: Optional[float] = None
    sound_speed_ms: float = C.V_SOUND
    temperature_c: Optional[float] = None
    tiers: tuple = DEFAULT_TIERS

    def __post_init__(self):
        if self.sectioning_strategy not in SECTIONING_STRATEGIES:
            raise ValueError(f"Unknown sectioning strategy: {self.sectioning_strategy}")
        if not isinstance(self.approach, ApproachOptions):
            raise ValueError(f"approach must be ApproachOptions, got {self.approach!r}")
        if self.approach.method not in APPROACH_METHODS:
            raise ValueError(f"Unknown approach method: {self.approach.method}")
        if self.top_frequency_count < 1:
            raise ValueError("top_frequency_count must be at least 1")
        low, high = self.frequency_band
        if not 0 <= low < high:
            raise ValueError(f"Invalid frequency band: {self.frequency_band}")

    @classmethod
    def from_mapping(cls, payload):
        """Build a config from a plain dict (request body, CLI options).

        Unknown keys are dropped with a debug log; ``approach`` may itself be
        a dict of :class:`ApproachOptions` fields and ``tiers`` a list of
        :class:`TierConfig` dicts. Malformed values raise ValueError.
        """
        if not payload:
            return cls()
        if not isinstance(payload, dict):
            raise ValueError(f"Analysis options must be a mapping, got {type(payload).__name__}")
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in payload.items():
            if key not in known:
                logger.debug("Ignoring unknown analysis option %s=%r", key, value)
                continue
            if value is None:
                continue
            kwargs[key] = value

        if "approach" in kwargs:
            kwargs["approach"] = _approach_from_mapping(kwargs["approach"])
        if "tiers" in kwargs:
            tiers = kwargs["tiers"]
            if not isinstance(tiers, (list, tuple)):
                raise ValueError("tiers must be a list of tier definitions")
            kwargs["tiers"] = tuple(_tier_from_mapping(tier) for tier in tiers)
            if not kwargs["tiers"]:
                raise ValueError("tiers must not be empty")
        if "frequency_band" in kwargs:
            kwargs["frequency_band"] = tuple(kwargs["frequency_band"])
        if "time_ranges" in kwargs:
            if not isinstance(kwargs["time_ranges"], dict):
                raise ValueError("time_ranges must map approaching/receding to (start_s, end_s)")
            kwargs["time_ranges"] = {
                name: tuple(bounds) for name, bounds in kwargs["time_ranges"].items()
            }
        return cls(**kwargs)

    def effective_sound_speed(self):
        if self.temperature_c is None:
            return self.sound_speed_ms
        return speed_of_sound(self.temperature_c)

    def with_overrides(self, **changes):
        return replace(self, **changes)
