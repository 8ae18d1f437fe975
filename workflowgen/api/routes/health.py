"""
Health API Routes
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from workflowgen.api.dependencies import get_app_settings
from workflowgen.config import Settings
from workflowgen.database import check_database_connection
from workflowgen.integrations.base import ProviderAdapter

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, settings: Settings = Depends(get_app_settings)) -> JSONResponse:
    """Provider credential presence and cost log connectivity."""
    providers: list[ProviderAdapter] = request.app.state.router.providers
    credentials = {p.name.value: p.has_credentials(settings) for p in providers}

    engine = getattr(request.app.state, "cost_log_engine", None)
    cost_log_ok = True if engine is None else check_database_connection(engine)

    ok = any(credentials.values()) and cost_log_ok
    return JSONResponse(
        status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if ok else "degraded",
            "providers": credentials,
            "cost_log": {"backend": settings.cost_log_backend, "ok": cost_log_ok},
            "budget_policy": settings.budget_policy,
        },
    )
