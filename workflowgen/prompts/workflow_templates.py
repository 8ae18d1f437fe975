from __future__ import annotations

from workflowgen.schemas.plan import PlanTier

WORKFLOW_ARCHITECT_PROMPT = """
# Workflow Architect

You are an expert n8n workflow architect with access to a knowledge base of production-tested workflows.
Design a production-ready workflow for the plan below using proven patterns.

## BUSINESS REQUIREMENTS
**Process**: {description}
**Workflow Type**: {workflow_name}
**Workspace**: {workspace}
**Plan Tier**: {plan_tier}
**Expected Volume**: {expected_volume}
**Industry Context**: {industry}

## ORCHESTRATION PLAN
```json
{plan_json}
```

## PROVEN WORKING EXAMPLES
{examples}

## MANDATORY BEST PRACTICES
{best_practices}

## CRITICAL RISKS TO AVOID
{risks}

## OPTIMIZATION OPPORTUNITIES
{optimizations}

## PROVEN NODE SEQUENCES
{sequences}

## AUTHENTICATION
{authentication}

## PERFORMANCE
{performance}

## WORKFLOW FOCUS
{focus}

## ALLOWED NODE TYPES
Use only these values for "nodeType": {node_types}

## RESPONSE FORMAT
Return one JSON object with exactly this shape:
{response_shape}

- "flow" lists nodes in execution order; each entry is connected to the next one.
- "parallelBranches" is optional. Each entry fans out from the node named in "from" to every node
  named in "branches"; "mergeAt" names the merge node that joins them.
- Reference credentials only as {{{{ env.NAME }}}} placeholders. Never write key material.

IMPORTANT: Respond with ONLY the JSON object. No prose, no markdown, no code fences, no comments.
"""

RESPONSE_SHAPE = """{
  "name": "Descriptive Workflow Name",
  "description": "One sentence summary",
  "flow": [
    {"nodeType": "<allowed node type>", "name": "Unique Node Name", "params": {}, "position": [100, 300]}
  ],
  "parallelBranches": [
    {"from": "Node Name", "branches": ["Branch A", "Branch B"], "mergeAt": "Merge Node Name"}
  ]
}"""

NO_EXAMPLES_TEXT = "No directly similar workflows found. Using general best practices."
NO_PRACTICES_TEXT = "- Apply general best practices for error handling and security"
NO_RISKS_TEXT = "No specific risks identified for this workflow type."
NO_OPTIMIZATIONS_TEXT = "No specific optimizations identified. Apply standard performance practices."
NO_SEQUENCES_TEXT = "No common sequences found. Create the optimal flow from the requirements."

AUTHENTICATION_GUIDANCE: dict[PlanTier, str] = {
    PlanTier.FREE: (
        "- Use built-in credential types only; reference them as {{ env.NAME }} placeholders\n"
        "- Prefer OAuth2 for email services when available"
    ),
    PlanTier.STARTER: (
        "- Reference every credential as a {{ env.NAME }} placeholder\n"
        "- Use OAuth2 for email services and header auth for webhooks"
    ),
    PlanTier.PROFESSIONAL: (
        "- Reference every credential as a {{ env.NAME }} placeholder\n"
        "- Use OAuth2 for email services and HMAC or header auth for webhooks\n"
        "- Separate credentials per integration"
    ),
    PlanTier.ENTERPRISE: (
        "- Reference every credential as a {{ env.NAME }} placeholder managed by the organization vault\n"
        "- Enforce HMAC signature verification on every inbound webhook\n"
        "- Apply least-privilege scopes to each credential"
    ),
}

PERFORMANCE_GUIDANCE: dict[PlanTier, str] = {
    PlanTier.FREE: (
        "- Keep workflows simple to avoid timeouts (5-10 nodes)\n"
        "- Process small batches of 1-10 items per run\n"
        "- Focus: Simplicity"
    ),
    PlanTier.STARTER: (
        "- Keep workflows focused (10-20 nodes)\n"
        "- Batch items in groups of 50\n"
        "- Focus: Reliability"
    ),
    PlanTier.PROFESSIONAL: (
        "- Workflows of 20-50 nodes are supported\n"
        "- Use parallel branches for independent API calls\n"
        "- Focus: Scalability"
    ),
    PlanTier.ENTERPRISE: (
        "- Workflows of 50+ nodes are supported\n"
        "- Use high-performance execution modes and concurrent processing for independent branches\n"
        "- Focus: Security and Compliance"
    ),
}
