"""
Forward-transform capability.

A transform takes a real signal of length N (a power of two) and returns the
full complex spectrum as interleaved floats ``[re0, im0, re1, im1, ...]`` of
length 2N. The spectrum engine only depends on that contract, so any backend
below can be swapped in. The backend is picked once by ``select_transform``.
"""

import logging

import numpy as np
import scipy.fft

logger = logging.getLogger(__name__)


def _check_length(signal):
    signal = np.asarray(signal, dtype=np.float64)
    n = len(signal)
    if n == 0 or n & (n - 1):
        raise ValueError(f"FFT length must be power of 2, got {n}")
    return signal


def _interleave(spectrum):
    out = np.empty(2 * len(spectrum), dtype=np.float64)
    out[0::2] = spectrum.real
    out[1::2] = spectrum.imag
    return out


def numpy_transform(signal):
    signal = _check_length(signal)
    return _interleave(np.fft.fft(signal))


def scipy_transform(signal):
    signal = _check_length(signal)
    return _interleave(scipy.fft.fft(signal))


def radix2_transform(signal):
    """Iterative Cooley-Tukey (decimation in time), vectorized per stage."""
    signal = _check_length(signal)
    n = len(signal)
    bits = n.bit_length() - 1

    # Bit-reversal permutation
    indices = np.arange(n)
    reversed_idx = np.zeros(n, dtype=np.int64)
    for b in range(bits):
        reversed_idx |= ((indices >> b) & 1) << (bits - 1 - b)
    x = signal[reversed_idx].astype(np.complex128)

    size = 2
    while size <= n:
        half = size // 2
        twiddle = np.exp(-2j * np.pi * np.arange(half) / size)
        x = x.reshape(-1, size)
        even = x[:, :half].copy()
        odd = x[:, half:] * twiddle
        x[:, :half] = even + odd
        x[:, half:] = even - odd
        x = x.reshape(-1)
        size *= 2

    return _interleave(x)


BACKENDS = {
    "scipy": scipy_transform,
    "numpy": numpy_transform,
    "radix2": radix2_transform,
}

# Probe order for "auto"
_AUTO_ORDER = ("scipy", "numpy", "radix2")


def _probe(transform):
    impulse = np.zeros(8)
    impulse[0] = 1.0
    out = transform(impulse)
    # The spectrum of a unit impulse is all ones
    return np.allclose(out[0::2], 1.0) and np.allclose(out[1::2], 0.0)


def select_transform(name="auto"):
    """
    Resolve a transform backend by name.

    "auto" returns the first backend in scipy -> numpy -> radix2 order that
    passes an impulse probe.
    """
    name = (name or "auto").lower()
    if name != "auto":
        try:
            return BACKENDS[name]
        except KeyError:
            raise ValueError(f"Unknown FFT backend: {name}") from None

    for candidate in _AUTO_ORDER:
        transform = BACKENDS[candidate]
        try:
            if _probe(transform):
                logger.info("Using %s FFT backend", candidate)
                return transform
        except Exception:
            logger.warning("FFT backend %s failed its probe", candidate, exc_info=True)
    raise RuntimeError("No working FFT backend available")


def backend_name(transform):
    for name, fn in BACKENDS.items():
        if fn is transform:
            return name
    return getattr(transform, "__name__", "custom")
