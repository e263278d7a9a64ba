import logging

import numpy as np

from core.constants import (
    DEFAULT_SPEED_BOUNDS_KMH,
    KMH_TO_MPH,
    MIN_FREQUENCY_SHIFT_HZ,
    MS_TO_KMH,
    V_SOUND,
)
from core.models import DopplerResult, ErrorKind

logger = logging.getLogger(__name__)


def speed_of_sound(temperature_c):
    """Speed of sound in dry air (m/s) at the given temperature in Celsius."""
    return 331.3 * np.sqrt(1.0 + temperature_c / 273.15)


def calculate_speed(f_approach, f_recede, sound_speed_ms=V_SOUND, bounds=DEFAULT_SPEED_BOUNDS_KMH):
    """
    Convert an approach/recede frequency pair into a vehicle speed.

    Uses v = c * (f1 - f2) / (f1 + f2), where f1 is heard while the vehicle
    approaches and f2 while it recedes.

    Args:
        f_approach: Frequency heard during approach (Hz)
        f_recede: Frequency heard while receding (Hz)
        sound_speed_ms: Speed of sound (m/s)
        bounds: (min_kmh, max_kmh); results >= max or < min are rejected

    Returns:
        DopplerResult. Invalid pairs are reported with valid=False and an
        error string, never as a 0 km/h reading.
    """
    f_approach = float(f_approach)
    f_recede = float(f_recede)

    if f_approach <= 0 or f_recede <= 0:
        return DopplerResult(
            valid=False,
            error="Invalid frequency values",
            error_kind=ErrorKind.INVALID_FREQUENCY_PAIR,
        )

    shift = abs(f_approach - f_recede)
    relative = shift / max(f_approach, f_recede)

    if shift < MIN_FREQUENCY_SHIFT_HZ:
        return DopplerResult(
            valid=False,
            error="Frequency difference too small",
            error_kind=ErrorKind.INVALID_FREQUENCY_PAIR,
            frequency_shift=shift,
            relative_factor=relative,
        )

    if f_approach < f_recede:
        return DopplerResult(
            valid=False,
            error="Approach frequency must be higher than recede frequency",
            error_kind=ErrorKind.INVALID_FREQUENCY_PAIR,
            frequency_shift=shift,
            relative_factor=relative,
        )

    speed_ms = sound_speed_ms * (f_approach - f_recede) / (f_approach + f_recede)
    speed_kmh = speed_ms * MS_TO_KMH

    min_kmh, max_kmh = bounds
    if speed_kmh >= max_kmh or speed_kmh < min_kmh:
        logger.debug(
            "Speed out of bounds: %.0fHz -> %.0fHz = %.1f km/h (bounds %s-%s)",
            f_approach, f_recede, speed_kmh, min_kmh, max_kmh,
        )
        return DopplerResult(
            valid=False,
            error="Speed outside reasonable range",
            error_kind=ErrorKind.SPEED_OUT_OF_BOUNDS,
            frequency_shift=shift,
            relative_factor=relative,
        )

    return DopplerResult(
        valid=True,
        speed_kmh=speed_kmh,
        speed_mph=speed_kmh * KMH_TO_MPH,
        frequency_shift=shift,
        relative_factor=relative,
    )


def simulate_doppler_pass(f_source, v_car_kmh, sr=44100, duration=6.0, distance_m=10.0,
                          noise_level=0.0, seed=None):
    """
    Simulate the sound of a car passing a stationary listener.

    The car travels along a straight road. The listener stands at a
    perpendicular distance d from the road. As the car approaches then
    recedes, the observed frequency shifts due to the Doppler effect.

    Args:
        f_source: Horn frequency in Hz (e.g. 440)
        v_car_kmh: Car speed in km/h
        sr: Sample rate
        duration: Total duration in seconds
        distance_m: Perpendicular distance from the road (meters)
        noise_level: Std of additive white noise, relative to peak amplitude
        seed: Seed for the noise generator

    Returns:
        dict with: signal (numpy array), sr, downsampled plot series, params
    """
    v_car = v_car_kmh / MS_TO_KMH

    # Car position over time: centered so it passes at t = duration/2
    t = np.linspace(0, duration, int(sr * duration), endpoint=False)
    t_mid = duration / 2.0
    x_car = v_car * (t - t_mid)

    distance = np.sqrt(x_car ** 2 + distance_m ** 2)

    # Radial velocity component (negative while approaching)
    v_radial = v_car * x_car / distance
    f_observed = f_source * V_SOUND / (V_SOUND + v_radial)

    phase = 2 * np.pi * np.cumsum(f_observed) / sr
    signal = np.sin(phase) * (distance_m / distance)

    if noise_level > 0:
        rng = np.random.default_rng(seed)
        signal = signal + rng.normal(0.0, noise_level, size=signal.shape)

    signal = signal / (np.max(np.abs(signal)) + 1e-10)

    # Keep ~2000 points for plotting
    ds_factor = max(1, len(t) // 2000)

    return {
        "signal": signal,
        "sr": sr,
        "time": t[::ds_factor].tolist(),
        "waveform": signal[::ds_factor].tolist(),
        "freq_over_time": f_observed[::ds_factor].tolist(),
        "params": {
            "f_source": f_source,
            "v_car_kmh": v_car_kmh,
            "v_car_ms": round(v_car, 2),
            "duration": duration,
            "distance_m": distance_m,
            "sr": sr,
            "expected_approach_hz": round(f_source * V_SOUND / (V_SOUND - v_car), 2),
            "expected_recede_hz": round(f_source * V_SOUND / (V_SOUND + v_car), 2),
        },
    }
