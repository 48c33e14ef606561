from __future__ import annotations

from ratekeeper.api.routes.health import router as health_router
from ratekeeper.api.routes.maintenance import router as maintenance_router
from ratekeeper.api.routes.rate_limits import router as rate_limits_router

__all__ = ["health_router", "maintenance_router", "rate_limits_router"]
