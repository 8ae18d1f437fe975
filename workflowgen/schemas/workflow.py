from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FlowEntry(BaseModel):
    """One node request in the model's reply, keyed by abstract node type."""

    model_config = ConfigDict(populate_by_name=True)

    node_type: str = Field(alias="nodeType")
    name: str = ""
    params: dict[str, Any] = Field(default_factory=dict)
    position: Any = None


class ParallelBranch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(alias="from")
    branches: list[str] = Field(default_factory=list)
    merge_at: str | None = Field(default=None, alias="mergeAt")


class RawModelOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    description: str = ""
    flow: list[FlowEntry] = Field(default_factory=list)
    parallel_branches: list[ParallelBranch] = Field(default_factory=list, alias="parallelBranches")


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    continue_on_fail: bool = Field(default=True, alias="continueOnFail")
    retry_on_fail: bool = Field(default=True, alias="retryOnFail")
    max_retries: int = Field(default=3, ge=0, alias="maxRetries")
    wait_between_tries: int = Field(default=1000, ge=0, alias="waitBetweenTries")


class ConnectionTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    node: str
    type: str = "main"
    index: int = 0
    output: int = 0

    def to_n8n(self) -> dict[str, Any]:
        return {"node": self.node, "type": self.type, "index": self.index}


class Node(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    concrete_type: str = Field(alias="type")
    type_version: float = Field(alias="typeVersion", gt=0)
    position: list[float] = Field(min_length=2, max_length=2)
    parameters: dict[str, Any] = Field(default_factory=dict)
    credentials: dict[str, dict[str, str]] | None = None
    retry_policy: RetryPolicy | None = Field(default=None, alias="retryPolicy")

    def to_n8n(self) -> dict[str, Any]:
        version: float | int = self.type_version
        if float(version).is_integer():
            version = int(version)
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.concrete_type,
            "typeVersion": version,
            "position": list(self.position),
            "parameters": self.parameters,
        }
        if self.credentials:
            payload["credentials"] = self.credentials
        if self.retry_policy is not None:
            payload.update(self.retry_policy.model_dump(by_alias=True))
        return payload


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class WorkflowMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organization_id: str | None = Field(default=None, alias="organizationId")
    workspace_type: str = Field(default="personal", alias="workspaceType")
    generated_at: datetime = Field(alias="generatedAt")
    generated_by: str = Field(default="workflowgen", alias="generatedBy")
    plan_tier: str | None = Field(default=None, alias="planTier")
    model: str | None = None


class Workflow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    nodes: list[Node] = Field(default_factory=list)
    connections: dict[str, list[ConnectionTarget]] = Field(default_factory=dict)
    settings: dict[str, Any] = Field(default_factory=dict)
    meta: WorkflowMeta
    tags: list[str] = Field(default_factory=list)
    validation: ValidationResult | None = None

    def node_names(self) -> list[str]:
        return [node.name for node in self.nodes]

    def to_n8n(self) -> dict[str, Any]:
        """Engine-shaped JSON: connections grouped per output slot under "main"."""
        connections: dict[str, Any] = {}
        for source, targets in self.connections.items():
            slots: list[list[dict[str, Any]]] = []
            for target in targets:
                while len(slots) <= target.output:
                    slots.append([])
                slots[target.output].append(target.to_n8n())
            connections[source] = {"main": slots}
        return {
            "name": self.name,
            "nodes": [node.to_n8n() for node in self.nodes],
            "connections": connections,
            "settings": self.settings,
            "meta": self.meta.model_dump(mode="json", by_alias=True),
            "tags": self.tags,
            "active": False,
            "pinData": {},
        }
