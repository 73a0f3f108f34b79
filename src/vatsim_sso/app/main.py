# src/vatsim_sso/app/main.py
from fastapi import FastAPI
from dotenv import load_dotenv

# Load .env before any auth modules read environment variables
load_dotenv()

from vatsim_sso.app.core.logging import setup_logging
setup_logging()

from vatsim_sso.app.auth.vatsim import router as vatsim_router  # noqa: E402

app = FastAPI(title="VATSIM SSO", version="0.1.0")

app.include_router(vatsim_router)

# Health check (open)
@app.get("/healthz")
def health():
    return {"status": "ok"}
