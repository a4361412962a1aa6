from fastapi import APIRouter, Request

from loan_engine.core.health import live_payload, ready_payload
from loan_engine.core.response_envelope import success_envelope
from loan_engine.db.session import engine

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Service liveness check")
async def health_live() -> dict:
    return success_envelope(await live_payload())


@router.get("/health/ready", summary="Service readiness check")
async def health_ready(request: Request) -> dict:
    payload = await ready_payload(getattr(request.app.state, "engine", engine))
    return success_envelope(payload)
