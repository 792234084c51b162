from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.keys import router as keys_router
from app.api.routes.summarize import router as summarize_router

__all__ = ["health_router", "keys_router", "summarize_router"]
