import pytest
from fastapi.testclient import TestClient

from app import app
from routes import acoustic_routes
from signal_builders import two_tone_pass, wav_bytes

client = TestClient(app)


@pytest.fixture
def dataset_dir(tmp_path, monkeypatch):
    sr = 16000
    (tmp_path / "KiaSportage_85.wav").write_bytes(wav_bytes(two_tone_pass(1100.0, 950.0, sr=sr), sr))
    (tmp_path / "readme.txt").write_text("not audio")
    monkeypatch.setattr(acoustic_routes.service, "datasets_dir", str(tmp_path))
    return tmp_path


def test_root():
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "Doppler Speed API is Running"}


def test_estimate_from_samples():
    sr = 16000
    body = {"samples": two_tone_pass(1100.0, 950.0, sr=sr).tolist(), "sample_rate": sr}

    data = client.post("/api/acoustic/doppler/estimate", json=body).json()

    assert data["valid"] is True
    assert 45.0 < data["speed_mph"] < 65.0
    assert data["diagnostics"]["stage"] == "complete"


def test_estimate_options_are_applied():
    sr = 16000
    body = {
        "samples": two_tone_pass(1100.0, 950.0, sr=sr).tolist(),
        "sample_rate": sr,
        "options": {"sectioning_strategy": "quarters", "expected_speed_mph": 56},
    }

    data = client.post("/api/acoustic/doppler/estimate", json=body).json()

    assert data["valid"] is True
    assert data["metadata"]["sectioning"]["strategy"] == "short_file_quarters"


def test_estimate_rejects_bad_input():
    bad_rate = client.post("/api/acoustic/doppler/estimate", json={"samples": [0.1], "sample_rate": 0})
    empty = client.post("/api/acoustic/doppler/estimate", json={"samples": [], "sample_rate": 8000})
    bad_option = client.post(
        "/api/acoustic/doppler/estimate",
        json={"samples": [0.1] * 10, "sample_rate": 8000, "options": {"sectioning_strategy": "thirds"}},
    )

    assert bad_rate.status_code == 422
    assert empty.json()["valid"] is False
    assert "sectioning strategy" in bad_option.json()["error"]


@pytest.mark.parametrize(
    "options,message",
    [
        ({"tiers": [{"name": "x"}]}, "Tier definition needs name and bounds_kmh"),
        ({"tiers": [{"name": "x", "bounds_kmh": "fast"}]}, "Invalid tier definition"),
        ({"tiers": {"name": "x"}}, "tiers must be a list"),
        ({"tiers": []}, "tiers must not be empty"),
        ({"approach": "fast"}, "approach must be a mapping"),
        ({"time_ranges": [0, 1]}, "time_ranges must map"),
    ],
)
def test_estimate_rejects_malformed_options(options, message):
    body = {"samples": [0.1] * 10, "sample_rate": 8000, "options": options}

    response = client.post("/api/acoustic/doppler/estimate", json=body)

    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert message in response.json()["error"]


def test_estimate_with_custom_tier():
    sr = 16000
    tier = {"name": "Only", "bounds_kmh": [0, 1000], "exhaustive": True, "candidate_limit": 10}
    body = {
        "samples": two_tone_pass(1100.0, 950.0, sr=sr).tolist(),
        "sample_rate": sr,
        "options": {"tiers": [tier], "approach": {"method": "energy_peaks"}},
    }

    data = client.post("/api/acoustic/doppler/estimate", json=body).json()

    assert data["valid"] is True
    assert data["strategy"] == "Only"
    assert [t["strategy"] for t in data["metadata"]["tiers"]] == ["Only"]


def test_estimate_reports_silence():
    data = client.post(
        "/api/acoustic/doppler/estimate",
        json={"samples": [0.0] * 16000, "sample_rate": 8000},
    ).json()

    assert data["valid"] is False
    assert data["error_kind"] == "no_frequencies_found"


def test_simulate_returns_estimate_without_raw_signal():
    data = client.post("/api/acoustic/simulate", json={"frequency": 440, "velocity": 80}).json()

    assert "signal" not in data
    assert data["params"]["v_car_kmh"] == 80
    assert "estimate" in data
    assert "valid" in data["estimate"]


def test_simulate_clamps_parameters():
    data = client.post("/api/acoustic/simulate", json={"frequency": 10, "velocity": 9000}).json()

    assert data["params"]["f_source"] == 50
    assert data["params"]["v_car_kmh"] == 500


def test_list_datasets(dataset_dir):
    data = client.get("/api/acoustic/doppler/datasets").json()

    assert data["count"] == 1
    assert data["files"][0]["filename"] == "KiaSportage_85.wav"
    assert data["files"][0]["actual_speed_kmh"] == 85


def test_analyze_dataset(dataset_dir):
    data = client.get("/api/acoustic/doppler/analyze/KiaSportage_85.wav").json()

    assert data["filename"] == "KiaSportage_85.wav"
    assert data["actual_speed_kmh"] == 85
    assert data["doppler"]["valid"] is True
    assert data["fft_backend"] in ("numpy", "scipy", "radix2")
    assert set(data) >= {"waveform", "spectrogram", "fft", "frequency_track"}


def test_analyze_missing_dataset(dataset_dir):
    data = client.get("/api/acoustic/doppler/analyze/nope.wav").json()

    assert data == {"error": "File not found: nope.wav"}


def test_upload_wav():
    sr = 16000
    files = {"file": ("pass.wav", wav_bytes(two_tone_pass(1100.0, 950.0, sr=sr), sr), "audio/wav")}

    data = client.post("/api/acoustic/doppler/upload", files=files).json()

    assert data["filename"] == "pass.wav"
    assert data["doppler"]["valid"] is True


def test_upload_unsupported_format():
    files = {"file": ("notes.txt", b"hello", "text/plain")}

    data = client.post("/api/acoustic/doppler/upload", files=files).json()

    assert "Unsupported audio format" in data["error"]


def test_upload_empty_file():
    files = {"file": ("empty.wav", b"", "audio/wav")}

    data = client.post("/api/acoustic/doppler/upload", files=files).json()

    assert data["error"] == "Uploaded file is empty"


def test_parse_speed_from_filename():
    parse = acoustic_routes.service._parse_speed_from_filename

    assert parse("car_320Hz_155kmh.wav") == 155
    assert parse("KiaSportage_85.wav") == 85
    assert parse("recording.wav") is None
    assert parse("clip_2024.wav") is None
