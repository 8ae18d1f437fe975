"""Structural checks a workflow must pass before it reaches the execution engine."""
from __future__ import annotations

from typing import Any, Mapping

from workflowgen.schemas.workflow import ValidationResult, Workflow


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_workflow(candidate: Workflow | Mapping[str, Any]) -> ValidationResult:
    """
    Validate an engine-shaped workflow and collect every violation.

    Accepts a Workflow model or the raw JSON mapping an importer would send.
    Never raises for malformed input; problems are reported in ``errors``.
    """
    payload: Any = candidate.to_n8n() if isinstance(candidate, Workflow) else candidate
    errors: list[str] = []

    if not isinstance(payload, Mapping):
        return ValidationResult(valid=False, errors=["Workflow must be a JSON object"])

    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append("Missing workflow name")

    nodes = payload.get("nodes")
    if not isinstance(nodes, list) or not nodes:
        errors.append("Missing nodes array")
        nodes = nodes if isinstance(nodes, list) else []

    node_names: set[str] = set()
    for index, node in enumerate(nodes):
        if not isinstance(node, Mapping):
            errors.append(f"Node {index} is not an object")
            continue
        node_name = node.get("name")
        if not isinstance(node_name, str) or not node_name.strip():
            errors.append(f"Node {index} missing name")
        elif node_name in node_names:
            errors.append(f"Duplicate node name: {node_name}")
        else:
            node_names.add(node_name)
        if not node.get("id"):
            errors.append(f"Node {index} missing id")
        if not isinstance(node.get("type"), str) or not node.get("type"):
            errors.append(f"Node {index} missing type")
        version = node.get("typeVersion")
        if not _is_number(version) or version <= 0:
            errors.append(f"Node {index} invalid typeVersion")
        position = node.get("position")
        if not isinstance(position, (list, tuple)) or len(position) != 2 or not all(
            _is_number(v) for v in position
        ):
            errors.append(f"Node {index} invalid position")

    connections = payload.get("connections")
    if connections is None:
        connections = {}
    if not isinstance(connections, Mapping):
        errors.append("Missing connections object")
        connections = {}

    for source, outputs in connections.items():
        if source not in node_names:
            errors.append(f"Connection references unknown source node: {source}")
        slots = outputs.get("main", []) if isinstance(outputs, Mapping) else None
        if not isinstance(slots, list):
            errors.append(f"Connections for {source} must contain a 'main' list")
            continue
        for slot in slots:
            if not isinstance(slot, list):
                errors.append(f"Connections for {source} contain a malformed output slot")
                continue
            for target in slot:
                target_name = target.get("node") if isinstance(target, Mapping) else None
                if target_name not in node_names:
                    errors.append(f"Connection references unknown target node: {target_name}")

    return ValidationResult(valid=not errors, errors=errors)
