import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from debate_draw.database import init_db
from debate_draw.routes import draws, formats, public, registration

APP_NAME = "Debate Draw API"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title=APP_NAME)

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(formats.router, prefix="/api", tags=["formats"])
app.include_router(registration.router, prefix="/api", tags=["registration"])
app.include_router(draws.router, prefix="/api", tags=["draws"])

# Public read-only endpoints (no auth)
app.include_router(public.router, prefix="/api", tags=["public"])


@app.on_event("startup")
def on_startup():
    init_db()  # Use centralized init_db() which imports models and creates tables


@app.get("/api/health")
def health_check():
    return {"app_name": APP_NAME, "status": "healthy"}
