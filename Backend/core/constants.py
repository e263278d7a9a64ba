# Speed of sound in air at 20 C (m/s)
V_SOUND = 343.0

# Unit conversions
MS_TO_KMH = 3.6
KMH_TO_MPH = 0.621371

# ===== Doppler validity =====
MIN_FREQUENCY_SHIFT_HZ = 1.0
DEFAULT_SPEED_BOUNDS_KMH = (0.0, 1000.0)

# Vehicle-plausible frequency band (Hz)
VEHICLE_BAND_HZ = (50.0, 2000.0)

# ===== Approach detection =====
APPROACH_WINDOW_S = 0.1
APPROACH_SMOOTHING_S = 0.05
APPROACH_MIN_CONFIDENCE = 0.3
APPROACH_PEAK_PROMINENCE = 0.1
PROMINENCE_SEARCH_RADIUS = 20
PEAK_RMS_WINDOW = 2048

# ===== Sectioning =====
MIN_SECTION_SAMPLES = 2048
SHORT_FILE_MIN_SAMPLES = 1024
FALLBACK_MIN_SAMPLES = 512
SHORT_FILE_THRESHOLD_S = 5.0
APPROACH_MARGIN_MAX_S = 0.3
APPROACH_MARGIN_FRACTION = 0.2
MAX_SECTION_RATIO = 5.0

CLOSEST_APPROACH_CONFIDENCE = (0.9, 0.1)
SHORT_FILE_CONFIDENCE = (0.7, 0.2)
SIMPLE_QUARTERS_CONFIDENCE = (0.5, 0.1)
TIME_BASED_CONFIDENCE = (0.8, 0.1)

# ===== Section analysis =====
MIN_ANALYSIS_SAMPLES = 1024
TOP_FREQUENCY_COUNT = 10
SIGNAL_STRENGTH_REFERENCE = 0.001

SECTION_QUALITY_WEIGHTS = {
    "signal_strength": 0.4,
    "peak_clarity": 0.3,
    "frequency_distribution": 0.2,
    "inverse_noise": 0.1,
}

# ===== Pair confidence =====
MATCH_CONFIDENCE_THRESHOLD = 0.3

MATCH_CONFIDENCE_WEIGHTS = {
    "power": 0.3,
    "section_quality": 0.25,
    "speed_reasonableness": 0.2,
    "separation": 0.15,
    "rank": 0.1,
}

REASONABLE_SPEED_MPH = (5.0, 100.0)
HIGH_SPEED_PENALTY_FLOOR = 0.2
SEPARATION_SCALE = 10.0
RANK_PENALTY = 0.1

# Expected Doppler shift for road traffic (% of mean frequency)
REASONABLE_SHIFT_PCT = (1.0, 15.0)

# ===== Strategy tiers =====
# Primary narrows DEFAULT_SPEED_BOUNDS_KMH to road-vehicle speeds
PRIMARY_BOUNDS_KMH = (0.0, 300.0)
PRIMARY_ANCHOR_MPH = 30.0
SECONDARY_BOUNDS_KMH = (0.0, 500.0)
SECONDARY_ANCHOR_MPH = 50.0
TERTIARY_BOUNDS_KMH = (0.0, 1000.0)
TERTIARY_CANDIDATE_LIMIT = 10
TERTIARY_CONFIDENCE_SCALE = 0.5

# Final selection prefers the lowest speed inside this band
FINAL_SELECTION_BAND_MPH = (10.0, 100.0)

# ===== Per-frequency detail =====
FREQUENCY_CONTEXT_COUNT = 50
SINGLE_SECTION_MIN_SAMPLES = 512
SINGLE_SECTION_BAND_HZ = (50.0, 5000.0)
SINGLE_SECTION_POWER_THRESHOLD = 1e-6
PROMINENCE_BANDWIDTH_HZ = 50.0
STABILITY_TOLERANCE_HZ = 10.0
HARMONIC_TOLERANCE = 0.05
HARMONIC_ORDERS = (2, 3, 4, 5)
SUBHARMONIC_DIVISORS = (2, 3, 4)
SAMPLE_ADEQUACY_REFERENCE = 4096

FREQUENCY_QUALITY_WEIGHTS = {
    "normalized_power": 0.4,
    "prominence": 0.4,
    "stability": 0.2,
}

ANALYSIS_CONFIDENCE_WEIGHTS = {
    "average_quality": 0.3,
    "signal_strength": 0.25,
    "peak_clarity": 0.2,
    "diversity": 0.15,
    "sample_adequacy": 0.1,
}

# (minimum mean quality, minimum SNR dB) per rating, best first
SIGNAL_RATINGS = (
    ("excellent", 0.7, 10.0),
    ("good", 0.5, 6.0),
    ("fair", 0.3, 3.0),
)

# Ranking bonuses: core vehicle band, then the wider acceptable band
RANKING_CORE_BAND_HZ = (200.0, 2000.0)
RANKING_WIDE_BAND_HZ = (100.0, 5000.0)
RANKING_POSITION_WEIGHT = 0.2
