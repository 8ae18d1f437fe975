import pytest

from workflowgen.core.exceptions import ValidationError
from workflowgen.schemas.plan import OrganizationContext, PlanTier
from workflowgen.schemas.workflow import RawModelOutput
from workflowgen.services.graph_builder import WorkflowGraphBuilder
from workflowgen.services.graph_validator import validate_workflow
from workflowgen.services.node_registry import NODE_TYPE_REGISTRY, NodeKind


def build(payload, context=None):
    return WorkflowGraphBuilder().build(RawModelOutput.model_validate(payload), context)


def targets(workflow, source):
    return [(t.node, t.output, t.index) for t in workflow.connections.get(source, [])]


def test_linear_flow():
    workflow = build(
        {
            "name": "Lead Intake",
            "flow": [
                {"nodeType": "webhook-trigger", "name": "Incoming Lead"},
                {"nodeType": "function", "name": "Normalize"},
                {"nodeType": "http-call", "name": "Push to CRM", "params": {"url": "https://crm.example.com"}},
            ],
        },
        OrganizationContext(organizationId="org-42", planTier=PlanTier.STARTER),
    )
    assert workflow.name == "Lead Intake"
    assert workflow.node_names() == ["Incoming Lead", "Normalize", "Push to CRM"]
    assert targets(workflow, "Incoming Lead") == [("Normalize", 0, 0)]
    assert targets(workflow, "Normalize") == [("Push to CRM", 0, 0)]
    assert "Push to CRM" not in workflow.connections
    assert workflow.meta.organization_id == "org-42"
    assert workflow.meta.workspace_type == "organization"
    assert workflow.meta.plan_tier == "starter"
    assert validate_workflow(workflow).valid


def test_unknown_node_type_names_the_key():
    with pytest.raises(ValidationError, match="teleporter"):
        build({"flow": [{"nodeType": "webhook"}, {"nodeType": "teleporter"}]})


def test_duplicate_and_empty_names_are_made_unique():
    workflow = build(
        {
            "flow": [
                {"nodeType": "manual-trigger"},
                {"nodeType": "function", "name": "Code"},
                {"nodeType": "function", "name": "Code"},
                {"nodeType": "function"},
            ]
        }
    )
    assert workflow.node_names() == ["Manual Trigger", "Code", "Code 2", "Code 3"]
    assert workflow.name == "Generated Workflow"
    assert len({node.id for node in workflow.nodes}) == 4


def test_params_merge_over_registry_defaults():
    workflow = build({"flow": [{"nodeType": "http-call", "params": {"url": "https://x.test", "method": "POST"}}]})
    params = workflow.nodes[0].parameters
    assert params == {"method": "POST", "url": "https://x.test", "options": {}}
    assert NODE_TYPE_REGISTRY[NodeKind.HTTP_CALL].parameter_defaults["method"] == "GET"


def test_invalid_positions_fall_back_to_grid():
    workflow = build(
        {
            "flow": [
                {"nodeType": "webhook", "position": [40, 80]},
                {"nodeType": "function", "position": ["a", 1]},
                {"nodeType": "function", "position": [1, 2, 3]},
            ]
        }
    )
    assert workflow.nodes[0].position == [40.0, 80.0]
    assert workflow.nodes[1].position == [320.0, 300.0]
    assert workflow.nodes[2].position == [540.0, 300.0]


def test_parallel_branches_get_an_inserted_merge():
    workflow = build(
        {
            "name": "Fan out",
            "flow": [
                {"nodeType": "webhook-trigger", "name": "Trigger"},
                {"nodeType": "http-call", "name": "BranchA"},
                {"nodeType": "slack-message", "name": "BranchB"},
            ],
            "parallelBranches": [{"from": "Trigger", "branches": ["BranchA", "BranchB"]}],
        }
    )
    merge = workflow.nodes[-1]
    assert merge.concrete_type == "n8n-nodes-base.merge"
    assert merge.name == "Merge Trigger"
    assert targets(workflow, "Trigger") == [("BranchA", 0, 0), ("BranchB", 0, 0)]
    assert targets(workflow, "BranchA") == [("Merge Trigger", 0, 0)]
    assert targets(workflow, "BranchB") == [("Merge Trigger", 0, 1)]
    assert validate_workflow(workflow).valid


def test_existing_merge_is_reused():
    workflow = build(
        {
            "flow": [
                {"nodeType": "schedule-trigger", "name": "Every Hour"},
                {"nodeType": "http-call", "name": "Fetch Orders"},
                {"nodeType": "http-call", "name": "Fetch Refunds"},
                {"nodeType": "merge", "name": "Join"},
                {"nodeType": "postgres", "name": "Store"},
            ],
            "parallelBranches": [
                {"from": "Every Hour", "branches": ["Fetch Orders", "Fetch Refunds"], "mergeAt": "Join"}
            ],
        }
    )
    merges = [n for n in workflow.nodes if n.concrete_type == "n8n-nodes-base.merge"]
    assert [n.name for n in merges] == ["Join"]
    assert targets(workflow, "Fetch Orders") == [("Join", 0, 0)]
    assert targets(workflow, "Fetch Refunds") == [("Join", 0, 1)]
    assert targets(workflow, "Join") == [("Store", 0, 0)]
    assert validate_workflow(workflow).valid


def test_inserted_merge_continues_to_next_entry():
    workflow = build(
        {
            "flow": [
                {"nodeType": "webhook", "name": "Trigger"},
                {"nodeType": "http-call", "name": "A"},
                {"nodeType": "http-call", "name": "B"},
                {"nodeType": "respond-webhook", "name": "Reply"},
            ],
            "parallelBranches": [{"from": "Trigger", "branches": ["A", "B"]}],
        }
    )
    assert targets(workflow, "Merge Trigger") == [("Reply", 0, 0)]
    assert "Reply" not in [t.node for t in workflow.connections["B"]]


def test_branching_source_uses_separate_output_slots():
    workflow = build(
        {
            "flow": [
                {"nodeType": "webhook", "name": "Trigger"},
                {"nodeType": "if", "name": "Is Urgent"},
                {"nodeType": "slack-message", "name": "Page On Call"},
                {"nodeType": "email-send", "name": "Queue Reply"},
            ],
            "parallelBranches": [{"from": "Is Urgent", "branches": ["Page On Call", "Queue Reply"]}],
        }
    )
    assert targets(workflow, "Is Urgent") == [("Page On Call", 0, 0), ("Queue Reply", 1, 0)]
    main = workflow.to_n8n()["connections"]["Is Urgent"]["main"]
    assert [[t["node"] for t in slot] for slot in main] == [["Page On Call"], ["Queue Reply"]]


def test_three_branches_widen_the_merge():
    workflow = build(
        {
            "flow": [
                {"nodeType": "manual", "name": "Start"},
                {"nodeType": "http-call", "name": "A"},
                {"nodeType": "http-call", "name": "B"},
                {"nodeType": "http-call", "name": "C"},
            ],
            "parallelBranches": [{"from": "Start", "branches": ["A", "B", "C"]}],
        }
    )
    merge = workflow.nodes[-1]
    assert merge.type_version == 3
    assert merge.parameters["numberInputs"] == 3
    assert targets(workflow, "C") == [("Merge Start", 0, 2)]


def test_unknown_branch_name_is_rejected():
    with pytest.raises(ValidationError, match="Ghost"):
        build(
            {
                "flow": [{"nodeType": "webhook", "name": "Trigger"}, {"nodeType": "function", "name": "A"}],
                "parallelBranches": [{"from": "Trigger", "branches": ["A", "Ghost"]}],
            }
        )


def test_empty_branch_list_is_rejected():
    with pytest.raises(ValidationError, match="no branches"):
        build(
            {
                "flow": [{"nodeType": "webhook", "name": "Trigger"}],
                "parallelBranches": [{"from": "Trigger", "branches": []}],
            }
        )


def reachable_from(workflow, start):
    seen, stack = {start}, [start]
    while stack:
        for edge in workflow.connections.get(stack.pop(), []):
            if edge.node not in seen:
                seen.add(edge.node)
                stack.append(edge.node)
    return seen


@pytest.mark.parametrize(
    "flow, branch",
    [
        (["Trigger", "A", "B", "End"], {"from": "Trigger", "branches": ["A", "B"]}),
        (["Trigger", "B", "A", "End"], {"from": "Trigger", "branches": ["A", "B"]}),
        (["Trigger", "Prep", "A", "B"], {"from": "Prep", "branches": ["A", "B"]}),
        (["Trigger", "A", "B", "Join", "End"], {"from": "Trigger", "branches": ["A", "B"], "mergeAt": "Join"}),
    ],
)
def test_every_flow_node_is_reachable_from_the_trigger(flow, branch):
    entries = [{"nodeType": "webhook", "name": flow[0]}]
    entries += [{"nodeType": "merge" if name == "Join" else "function", "name": name} for name in flow[1:]]
    workflow = build({"flow": entries, "parallelBranches": [branch]})

    assert reachable_from(workflow, flow[0]) == set(workflow.node_names())
    assert validate_workflow(workflow).valid


def test_source_listed_after_its_branches_is_rejected():
    with pytest.raises(ValidationError, match="must come before its branches"):
        build(
            {
                "flow": [
                    {"nodeType": "function", "name": "A"},
                    {"nodeType": "function", "name": "B"},
                    {"nodeType": "webhook", "name": "Trigger"},
                ],
                "parallelBranches": [{"from": "Trigger", "branches": ["A", "B"]}],
            }
        )


def test_source_cannot_be_one_of_its_branches():
    with pytest.raises(ValidationError, match="must come before its branches"):
        build(
            {
                "flow": [{"nodeType": "webhook", "name": "Trigger"}, {"nodeType": "function", "name": "A"}],
                "parallelBranches": [{"from": "Trigger", "branches": ["Trigger", "A"]}],
            }
        )


def test_entry_between_branches_is_rejected():
    with pytest.raises(ValidationError, match="X sits between them"):
        build(
            {
                "flow": [
                    {"nodeType": "webhook", "name": "Trigger"},
                    {"nodeType": "function", "name": "A"},
                    {"nodeType": "function", "name": "X"},
                    {"nodeType": "function", "name": "B"},
                    {"nodeType": "function", "name": "End"},
                ],
                "parallelBranches": [{"from": "Trigger", "branches": ["A", "B"]}],
            }
        )


def test_merge_at_must_follow_the_branches():
    flow = [
        {"nodeType": "webhook", "name": "Trigger"},
        {"nodeType": "function", "name": "A"},
        {"nodeType": "function", "name": "B"},
        {"nodeType": "function", "name": "Between"},
        {"nodeType": "merge", "name": "Join"},
    ]
    with pytest.raises(ValidationError, match="mergeAt 'Join'"):
        build({"flow": flow, "parallelBranches": [{"from": "Trigger", "branches": ["A", "B"], "mergeAt": "Join"}]})
    with pytest.raises(ValidationError, match="mergeAt 'Trigger'"):
        build({"flow": flow, "parallelBranches": [{"from": "Trigger", "branches": ["A", "B"], "mergeAt": "Trigger"}]})


def test_duplicate_branch_is_rejected():
    with pytest.raises(ValidationError, match="more than once"):
        build(
            {
                "flow": [{"nodeType": "webhook", "name": "Trigger"}, {"nodeType": "function", "name": "A"}],
                "parallelBranches": [{"from": "Trigger", "branches": ["A", "A"]}],
            }
        )
