"""
Workflow generation API
Generate and validate n8n workflows from orchestration plans
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status

from workflowgen.api.dependencies import get_generator
from workflowgen.core.exceptions import (
    AppError,
    BudgetExceededError,
    ConfigurationError,
    ParseError,
    ProviderError,
    ValidationError,
)
from workflowgen.schemas.generation import GenerationRequest
from workflowgen.schemas.workflow import ValidationResult
from workflowgen.services.graph_validator import validate_workflow
from workflowgen.services.workflow_generator import WorkflowGenerator

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS: dict[type[AppError], int] = {
    ConfigurationError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ProviderError: status.HTTP_502_BAD_GATEWAY,
    ParseError: status.HTTP_502_BAD_GATEWAY,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    BudgetExceededError: status.HTTP_402_PAYMENT_REQUIRED,
}


def _status_for(exc: AppError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@router.post("/generate")
async def generate_workflow(
    payload: GenerationRequest,
    generator: WorkflowGenerator = Depends(get_generator),
) -> Dict[str, Any]:
    """
    Generate an engine-ready workflow from an orchestration plan
    """
    try:
        result = await generator.generate(payload)
    except AppError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc

    return {
        "workflow": result.workflow.to_n8n(),
        "validation": result.validation.model_dump(),
        "budget_warnings": result.budget_warnings,
        "cost": result.cost_record.model_dump(mode="json", by_alias=True) if result.cost_record else None,
        "states": [state.value for state in result.states],
    }


@router.post("/validate", response_model=ValidationResult)
async def validate_workflow_json(workflow: Dict[str, Any] = Body(...)) -> ValidationResult:
    """Structural validation of engine-shaped workflow JSON."""
    return validate_workflow(workflow)
