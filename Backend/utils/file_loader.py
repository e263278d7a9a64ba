import logging
import os
import subprocess
import tempfile

import imageio_ffmpeg
import numpy as np
from scipy.io import wavfile

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = ('.wav', '.mp3', '.mp4', '.m4a', '.ogg', '.flac')

# Rate ffmpeg resamples compressed audio to
DECODE_SAMPLE_RATE = 44100


def load_audio(file_path):
    """
    Load an audio file (WAV, MP3, OGG, FLAC, ...).
    Returns (signal_mono, sample_rate) as numpy float64 array in [-1, 1] + int.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"File not found: {file_path}")

    ext = os.path.splitext(file_path)[1].lower()
    if ext == '.wav':
        return _load_wav(file_path)
    elif ext in AUDIO_EXTENSIONS:
        return _load_with_ffmpeg(file_path)
    else:
        raise ValueError(f"Unsupported audio format: {ext}")


def decode_audio(data, filename):
    """Decode in-memory audio bytes; the format is taken from ``filename``."""
    ext = os.path.splitext(filename or '')[1].lower()
    if ext not in AUDIO_EXTENSIONS:
        raise ValueError(f"Unsupported audio format: {ext or filename}")

    fd, tmp_path = tempfile.mkstemp(suffix=ext)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        return load_audio(tmp_path)
    finally:
        _remove_quietly(tmp_path)


def _to_float(data):
    """Convert PCM of any width to float64 in [-1, 1] and downmix to mono."""
    if data.dtype == np.int16:
        data = data.astype(np.float64) / 32768.0
    elif data.dtype == np.int32:
        data = data.astype(np.float64) / 2147483648.0
    elif data.dtype == np.uint8:
        data = (data.astype(np.float64) - 128) / 128.0
    else:
        data = data.astype(np.float64)

    if data.ndim == 2:
        data = np.mean(data, axis=1)
    return data


def _load_wav(file_path):
    sr, data = wavfile.read(file_path)
    signal = _to_float(data)
    logger.debug("Loaded %s: %d samples at %d Hz", os.path.basename(file_path), len(signal), sr)
    return signal, int(sr)


def _load_with_ffmpeg(file_path):
    """
    Decode compressed audio with the ffmpeg binary shipped by imageio-ffmpeg.
    Converts to a temporary mono 16-bit WAV, then loads that with scipy.
    """
    ffmpeg_exe = imageio_ffmpeg.get_ffmpeg_exe()

    fd, tmp_wav = tempfile.mkstemp(suffix='.wav')
    os.close(fd)
    try:
        cmd = [
            ffmpeg_exe,
            '-y',               # overwrite
            '-i', file_path,    # input
            '-ac', '1',         # mono
            '-ar', str(DECODE_SAMPLE_RATE),
            '-sample_fmt', 's16',
            tmp_wav
        ]
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=30,
            creationflags=subprocess.CREATE_NO_WINDOW if hasattr(subprocess, 'CREATE_NO_WINDOW') else 0,
        )
        if result.returncode != 0:
            err = result.stderr.decode('utf-8', errors='replace')[-300:]
            raise RuntimeError(f"ffmpeg failed: {err}")

        return _load_wav(tmp_wav)
    finally:
        _remove_quietly(tmp_wav)


def _remove_quietly(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Could not remove temporary file %s", path)
