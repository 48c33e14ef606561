from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check for load balancers and schedulers.

    Does not touch the store; the limiter fails open anyway, so store
    trouble does not make the service unhealthy.

    Returns:
        dict: ``status`` ("ok") and the configured store backend.
    """

    store = request.app.state.services.store
    return {"status": "ok", "store": type(store).__name__}
