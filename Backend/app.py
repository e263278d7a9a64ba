from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from routes import acoustic_routes
import logging
import uvicorn
import os

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Doppler Speed API")

# ===== 1. CORS Setup (frontend runs on another port) =====
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ===== 2. Define Paths =====
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
# "Frontend" is a sibling folder to "Backend"
FRONTEND_DIR = os.path.join(os.path.dirname(BASE_DIR), "Frontend")
ASSETS_DIR = os.path.join(FRONTEND_DIR, "assets")
PAGES_DIR = os.path.join(FRONTEND_DIR, "pages")

# ===== 3. Register API Routes =====
app.include_router(acoustic_routes.router, prefix="/api/acoustic", tags=["Acoustic"])


# ===== 4. Root Endpoint =====
@app.get("/")
def read_root():
    return {"message": "Doppler Speed API is Running"}


# ===== 5. Serve static frontend if present =====
if os.path.exists(ASSETS_DIR):
    app.mount("/assets", StaticFiles(directory=ASSETS_DIR), name="assets")
else:
    logger.info("Assets folder not found, skipping static mount")

if os.path.exists(PAGES_DIR):
    app.mount("/pages", StaticFiles(directory=PAGES_DIR, html=True), name="pages")
else:
    logger.info("Pages folder not found, skipping pages mount")

# ===== 6. Run Server =====
if __name__ == "__main__":
    uvicorn.run("app:app", host="127.0.0.1", port=8000, reload=True)
