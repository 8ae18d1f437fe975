from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from workflowgen.api.dependencies import get_cost_monitor
from workflowgen.services.cost_monitor import CostMonitor

router = APIRouter()


@router.get("/summary")
async def get_cost_summary(
    organization_id: Optional[str] = Query(default=None, alias="organizationId"),
    monitor: CostMonitor = Depends(get_cost_monitor),
):
    """Totals, model and complexity breakdowns, and savings recommendations."""
    return {"organization_id": organization_id, **monitor.export(organization_id)}
