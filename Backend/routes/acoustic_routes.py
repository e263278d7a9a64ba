import logging
from typing import List, Optional

from fastapi import APIRouter, File, UploadFile
from pydantic import BaseModel, Field

from services.acoustic_service import AcousticService

logger = logging.getLogger(__name__)

router = APIRouter()
service = AcousticService()


# ===== Request Models =====
class DopplerSimulateRequest(BaseModel):
    frequency: float = 440.0
    velocity: float = 80.0
    noise_level: float = 0.0


class DopplerEstimateRequest(BaseModel):
    samples: List[float]
    sample_rate: float = Field(..., gt=0)
    options: Optional[dict] = None


# ===== PART 1: Doppler Simulation =====

@router.post("/simulate")
async def simulate_doppler(req: DopplerSimulateRequest):
    """
    Generate a synthetic Doppler pass and estimate its speed.
    Body: { "frequency": 440, "velocity": 80 }
    """
    # Clamp values to safe ranges
    freq = max(50, min(5000, req.frequency))
    vel = max(1, min(500, req.velocity))
    noise = max(0.0, min(1.0, req.noise_level))
    return service.generate_doppler(freq, vel, noise)


# ===== PART 2: Real Doppler Analysis =====

@router.get("/doppler/datasets")
def list_doppler_datasets():
    """List available Doppler dataset files."""
    return service.list_doppler_datasets()


@router.get("/doppler/analyze/{filename}")
def analyze_doppler_dataset(filename: str):
    """Analyze a specific Doppler dataset file."""
    file_path = service.dataset_path(filename)
    if file_path is None:
        return {"error": f"File not found: {filename}"}
    return service.analyze_doppler(file_path)


@router.post("/doppler/upload")
async def upload_and_analyze_doppler(file: UploadFile = File(...)):
    """Upload and analyze a custom Doppler audio file."""
    data = await file.read()
    if not data:
        return {"error": "Uploaded file is empty", "filename": file.filename}
    return service.analyze_upload(data, file.filename)


@router.post("/doppler/estimate")
def estimate_doppler_speed(req: DopplerEstimateRequest):
    """
    Estimate speed from raw mono samples.
    Body: { "samples": [...], "sample_rate": 48000, "options": {...} }
    """
    return service.estimate_from_samples(req.samples, req.sample_rate, req.options)
