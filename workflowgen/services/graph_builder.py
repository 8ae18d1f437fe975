"""Turn a parsed model reply into a node/connection graph."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from workflowgen.core.exceptions import ValidationError
from workflowgen.schemas.plan import OrganizationContext
from workflowgen.schemas.workflow import (
    ConnectionTarget,
    FlowEntry,
    Node,
    ParallelBranch,
    RawModelOutput,
    Workflow,
    WorkflowMeta,
)
from workflowgen.services.node_registry import (
    MERGE_MULTI_INPUT_VERSION,
    NODE_TYPE_REGISTRY,
    NodeKind,
    NodeTypeSpec,
    resolve_node_kind,
)

logger = logging.getLogger(__name__)

GRID_ORIGIN_X = 100
GRID_STEP_X = 220
GRID_Y = 300
DEFAULT_WORKFLOW_NAME = "Generated Workflow"


def _valid_position(value: Any) -> bool:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return False
    return all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)


def _unique_name(base: str, taken: set[str]) -> str:
    if base not in taken:
        return base
    suffix = 2
    while f"{base} {suffix}" in taken:
        suffix += 1
    return f"{base} {suffix}"


class WorkflowGraphBuilder:
    """Build nodes, linear edges and merge-joined parallel branches."""

    def build(
        self,
        raw: RawModelOutput,
        context: OrganizationContext | None = None,
        settings: dict[str, Any] | None = None,
        model: str | None = None,
    ) -> Workflow:
        context = context or OrganizationContext()
        kinds = [resolve_node_kind(entry.node_type) for entry in raw.flow]

        nodes: list[Node] = []
        node_kinds: list[NodeKind] = []
        by_requested_name: dict[str, int] = {}
        taken: set[str] = set()
        for index, (entry, kind) in enumerate(zip(raw.flow, kinds)):
            node = self._build_node(entry, NODE_TYPE_REGISTRY[kind], index, taken)
            taken.add(node.name)
            nodes.append(node)
            node_kinds.append(kind)
            requested = entry.name.strip()
            if requested:
                by_requested_name.setdefault(requested, index)
            by_requested_name.setdefault(node.name, index)

        names = [node.name for node in nodes]
        groups = [self._resolve_branch(branch, by_requested_name, names) for branch in raw.parallel_branches]
        connections = self._connect(nodes, node_kinds, groups, taken)

        meta = WorkflowMeta(
            organization_id=context.organization_id,
            workspace_type=context.workspace_type,
            generated_at=datetime.now(timezone.utc),
            plan_tier=context.plan_tier.value,
            model=model,
        )
        workflow = Workflow(
            name=raw.name.strip() or DEFAULT_WORKFLOW_NAME,
            description=raw.description,
            nodes=nodes,
            connections=connections,
            settings=dict(settings or {}),
            meta=meta,
        )
        logger.info(
            f"Built workflow '{workflow.name}' with {len(workflow.nodes)} nodes "
            f"and {len(raw.parallel_branches)} parallel groups"
        )
        return workflow

    @staticmethod
    def _build_node(entry: FlowEntry, spec: NodeTypeSpec, index: int, taken: set[str]) -> Node:
        parameters = spec.default_parameters()
        parameters.update(entry.params)
        if _valid_position(entry.position):
            position = [float(entry.position[0]), float(entry.position[1])]
        else:
            position = [float(GRID_ORIGIN_X + index * GRID_STEP_X), float(GRID_Y)]
        return Node(
            id=str(uuid.uuid4()),
            name=_unique_name(entry.name.strip() or spec.display_name, taken),
            concrete_type=spec.concrete_type,
            type_version=spec.type_version,
            position=position,
            parameters=parameters,
        )

    @staticmethod
    def _resolve_branch(branch: ParallelBranch, by_name: dict[str, int], names: list[str]) -> dict[str, Any]:
        """
        Map a parallelBranches entry onto flow indices.

        Lanes must sit in one contiguous run after their source, and an explicit
        merge must directly follow that run, so every entry stays on a path from the source.
        """
        missing = [name for name in [branch.source, *branch.branches] if name not in by_name]
        if branch.merge_at is not None and branch.merge_at not in by_name:
            missing.append(branch.merge_at)
        if missing:
            raise ValidationError(f"parallelBranches references unknown node(s): {', '.join(missing)}")
        if not branch.branches:
            raise ValidationError(f"parallelBranches entry from '{branch.source}' has no branches")

        source = by_name[branch.source]
        lanes = [by_name[name] for name in branch.branches]
        if len(set(lanes)) != len(lanes):
            raise ValidationError(f"parallelBranches entry from '{branch.source}' lists a branch more than once")
        if source >= min(lanes):
            raise ValidationError(
                f"parallelBranches source '{branch.source}' must come before its branches in the flow"
            )
        interior = [names[i] for i in range(min(lanes), max(lanes) + 1) if i not in lanes]
        if interior:
            raise ValidationError(
                f"parallelBranches from '{branch.source}' are not adjacent in the flow; "
                f"{', '.join(interior)} sits between them"
            )
        merge_at = by_name[branch.merge_at] if branch.merge_at is not None else None
        if merge_at is not None and merge_at != max(lanes) + 1:
            raise ValidationError(
                f"parallelBranches mergeAt '{branch.merge_at}' must directly follow the branches it joins"
            )
        return {"source": source, "branches": lanes, "merge_at": merge_at}

    def _connect(
        self,
        nodes: list[Node],
        kinds: list[NodeKind],
        groups: list[dict[str, Any]],
        taken: set[str],
    ) -> dict[str, list[ConnectionTarget]]:
        connections: dict[str, list[ConnectionTarget]] = {}

        def link(source: int, target: int, output: int = 0, index: int = 0) -> None:
            edges = connections.setdefault(nodes[source].name, [])
            edge = ConnectionTarget(node=nodes[target].name, index=index, output=output)
            if edge not in edges:
                edges.append(edge)

        # Branch lanes are entered only from their source and leave only through the merge.
        branch_members = {member for group in groups for member in group["branches"]}
        original_count = len(nodes)
        for i in range(original_count - 1):
            if i in branch_members or (i + 1) in branch_members:
                continue
            link(i, i + 1)

        for group in groups:
            source = group["source"]
            fan_out_slots = NODE_TYPE_REGISTRY[kinds[source]].branching
            for slot, member in enumerate(group["branches"]):
                link(source, member, output=slot if fan_out_slots else 0)

            merge_index, continue_to = self._merge_target(nodes, kinds, group, original_count)
            if merge_index is None:
                merge_index = self._insert_merge(nodes, kinds, group, taken)
                if continue_to is not None:
                    link(merge_index, continue_to)
            else:
                self._widen_merge(nodes, merge_index, len(group["branches"]))

            for input_index, member in enumerate(group["branches"]):
                link(member, merge_index, index=input_index)
        return connections

    @staticmethod
    def _merge_target(
        nodes: list[Node],
        kinds: list[NodeKind],
        group: dict[str, Any],
        original_count: int,
    ) -> tuple[int | None, int | None]:
        """Return (existing merge node, node an inserted merge should continue to)."""
        merge_at = group["merge_at"]
        if merge_at is not None:
            if kinds[merge_at] is NodeKind.MERGE:
                return merge_at, None
            return None, merge_at
        after = max(group["branches"]) + 1
        if after < original_count and kinds[after] is NodeKind.MERGE:
            return after, None
        return None, after if after < original_count else None

    @staticmethod
    def _insert_merge(
        nodes: list[Node],
        kinds: list[NodeKind],
        group: dict[str, Any],
        taken: set[str],
    ) -> int:
        spec = NODE_TYPE_REGISTRY[NodeKind.MERGE]
        source_name = nodes[group["source"]].name
        branch_positions = [nodes[i].position for i in group["branches"]]
        x = max(p[0] for p in branch_positions) + GRID_STEP_X / 2
        y = sum(p[1] for p in branch_positions) / len(branch_positions)
        merge = Node(
            id=str(uuid.uuid4()),
            name=_unique_name(f"Merge {source_name}", taken),
            concrete_type=spec.concrete_type,
            type_version=spec.type_version,
            position=[float(x), float(y)],
            parameters=spec.default_parameters(),
        )
        taken.add(merge.name)
        nodes.append(merge)
        kinds.append(NodeKind.MERGE)
        WorkflowGraphBuilder._widen_merge(nodes, len(nodes) - 1, len(group["branches"]))
        return len(nodes) - 1

    @staticmethod
    def _widen_merge(nodes: list[Node], merge_index: int, inputs: int) -> None:
        if inputs <= 2:
            return
        merge = nodes[merge_index]
        parameters = dict(merge.parameters)
        parameters["numberInputs"] = max(inputs, int(parameters.get("numberInputs", 0) or 0))
        nodes[merge_index] = merge.model_copy(
            update={"type_version": MERGE_MULTI_INPUT_VERSION, "parameters": parameters}
        )
