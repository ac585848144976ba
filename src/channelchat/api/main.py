from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
import logging
import os
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.channels import router as channels_router
from .routers.messages import router as messages_router
from ..observability.metrics import metrics_middleware_factory
from ..services import completion

load_dotenv()  # Load environment variables from .env if present (GEMINI_API_KEY, MONGO_URL, etc.)

LOG = logging.getLogger("channelchat.api")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    orchestrator = completion._orchestrator
    if orchestrator is not None:
        # Let in-flight replies land before the pool goes away.
        drain_timeout = float(os.getenv("CHANNELCHAT_SHUTDOWN_DRAIN_SECONDS", "30"))
        if not orchestrator.drain(timeout=drain_timeout):
            LOG.warning("shutdown_with_pending_fulfillments", extra={"timeout_s": drain_timeout})
        orchestrator.shutdown(wait=False)


app = FastAPI(title="channelchat API", version="0.1.0", lifespan=lifespan)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

app.include_router(channels_router)
app.include_router(messages_router)

# Same routers under /api, the paths the browser client uses
app.include_router(channels_router, prefix="/api")
app.include_router(messages_router, prefix="/api")

_cors_origins = [
    o.strip()
    for o in os.getenv("CHANNELCHAT_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _health_payload() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "store": os.getenv("CHANNELCHAT_CHAT_STORE_IMPL", "memory").lower(),
        },
    }


@app.get("/")
def root():
    return {"name": "channelchat API", "version": "0.1.0"}


@app.get("/health")
def health():
    return _health_payload()


@app.get("/api/health")
def api_health():
    return _health_payload()


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.get("/api/metrics")
def api_metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
