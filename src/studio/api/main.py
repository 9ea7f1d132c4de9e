from __future__ import annotations

from datetime import UTC, datetime
from dotenv import load_dotenv
import logging
import os
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .errors import install_error_handlers
from .routers.auth import router as auth_router
from .routers.chats import router as chats_router
from ..core.env_check import check_required_env_vars
from ..observability.metrics import metrics_middleware_factory

load_dotenv()  # Load environment variables from .env if present (V0_API_KEY, JWT_SECRET, etc.)

app = FastAPI(title="Studio API", version="0.1.0")

logging.getLogger("studio.provider").setLevel(logging.INFO)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

install_error_handlers(app)

# Routers
app.include_router(auth_router)
app.include_router(chats_router)

# Same routers under /api, the paths the web client calls
app.include_router(auth_router, prefix="/api")
app.include_router(chats_router, prefix="/api")

_origins = [o.strip() for o in os.getenv("STUDIO_CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _health_payload() -> dict:
    missing = [var.name for var in check_required_env_vars()]
    return {
        "status": "ok" if not missing else "degraded",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "ownership_store": os.getenv("STUDIO_OWNERSHIP_STORE_IMPL", "memory").lower(),
        },
        "missing_env": missing,
    }


@app.get("/")
def root():
    return {"name": "Studio API", "version": "0.1.0"}


@app.get("/health")
def health():
    return _health_payload()


@app.get("/metrics")
def metrics() -> Response:
    # Expose Prometheus metrics
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
