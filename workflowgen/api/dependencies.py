"""Shared API dependencies: pipeline components wired onto app.state at startup."""
from fastapi import Request

from workflowgen.config import Settings
from workflowgen.services.cost_monitor import CostMonitor
from workflowgen.services.workflow_generator import WorkflowGenerator


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_generator(request: Request) -> WorkflowGenerator:
    return request.app.state.generator


def get_cost_monitor(request: Request) -> CostMonitor:
    return request.app.state.cost_monitor


__all__ = ["get_app_settings", "get_cost_monitor", "get_generator"]
