import numpy as np
import pytest

from utils.file_loader import decode_audio, load_audio
from signal_builders import tone, wav_bytes


def test_stereo_int16_wav_is_downmixed_to_float(tmp_path):
    sr = 8000
    left = tone(440.0, sr, 0.5, amplitude=0.5)
    stereo = np.column_stack([left, np.zeros_like(left)])
    path = tmp_path / "pass_60.wav"
    path.write_bytes(wav_bytes(stereo, sr))

    signal, rate = load_audio(str(path))

    assert rate == sr
    assert signal.ndim == 1 and len(signal) == len(left)
    assert signal.dtype == np.float64
    np.testing.assert_allclose(signal, left / 2, atol=1e-4)


def test_float_wav_kept_as_is(tmp_path):
    sr = 8000
    samples = tone(300.0, sr, 0.25).astype(np.float32)
    path = tmp_path / "clip.wav"
    path.write_bytes(wav_bytes(samples, sr, dtype=np.float32))

    signal, _ = load_audio(str(path))

    np.testing.assert_allclose(signal, samples, atol=1e-7)


def test_decode_uploaded_bytes():
    sr = 16000
    data = wav_bytes(tone(1000.0, sr, 0.1), sr)

    signal, rate = decode_audio(data, "upload.WAV")

    assert rate == sr
    assert len(signal) == 1600
    assert np.max(np.abs(signal)) == pytest.approx(0.5, abs=1e-3)


def test_unsupported_extension(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("not audio")

    with pytest.raises(ValueError, match="Unsupported audio format"):
        load_audio(str(path))
    with pytest.raises(ValueError):
        decode_audio(b"abc", "notes.txt")


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_audio(str(tmp_path / "missing.wav"))
