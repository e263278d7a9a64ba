"""Window functions used before the forward transform.

All windows are the symmetric forms (denominator N - 1), matching
``np.hamming``/``np.hanning``/``np.blackman``.
"""

import numpy as np

_WINDOWS = {
    "hamming": np.hamming,
    "hann": np.hanning,
    "hanning": np.hanning,
    "blackman": np.blackman,
    "none": np.ones,
    "rectangular": np.ones,
}

WINDOW_TYPES = tuple(_WINDOWS)


def get_window(window_type, length):
    """Return window coefficients for ``window_type`` of the given length."""
    try:
        factory = _WINDOWS[window_type.lower()]
    except KeyError:
        raise ValueError(f"Unknown window type: {window_type}") from None
    return factory(length).astype(np.float64)


def apply_window(samples, window_type="hamming"):
    samples = np.asarray(samples, dtype=np.float64)
    return samples * get_window(window_type, len(samples))


def coherent_gain(window_type, length):
    """Mean window value; dividing a windowed spectrum by it restores amplitude scale."""
    if length == 0:
        return 1.0
    return float(np.mean(get_window(window_type, length)))
