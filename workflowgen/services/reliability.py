"""Attach retry policies and credential placeholders to built nodes."""
from __future__ import annotations

import logging
from typing import Iterable

from workflowgen.core.security import placeholder, redact_secrets
from workflowgen.schemas.plan import PlanTier
from workflowgen.schemas.workflow import Node, RetryPolicy
from workflowgen.services.node_registry import spec_for_concrete_type

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
WAIT_BETWEEN_TRIES_MS = 1000
TIER_RETRY_CAPS: dict[PlanTier, int] = {PlanTier.FREE: 2}


def max_retries_for(plan_tier: PlanTier) -> int:
    return min(DEFAULT_MAX_RETRIES, TIER_RETRY_CAPS.get(plan_tier, DEFAULT_MAX_RETRIES))


class ReliabilityAugmenter:
    def __init__(self, secrets: Iterable[str] = ()) -> None:
        self.secrets = [s for s in secrets if s]

    def augment(self, nodes: list[Node], plan_tier: PlanTier = PlanTier.FREE) -> list[Node]:
        """Return new nodes; the input list and its nodes are left untouched."""
        retries = max_retries_for(plan_tier)
        augmented: list[Node] = []
        critical_count = 0
        for node in nodes:
            spec = spec_for_concrete_type(node.concrete_type)
            update: dict = {
                "parameters": redact_secrets(node.parameters, self.secrets),
                # Only placeholders from the registry survive; model-supplied blocks are dropped.
                "credentials": None,
            }
            if spec is not None and spec.critical:
                critical_count += 1
                update["retry_policy"] = RetryPolicy(
                    continue_on_fail=True,
                    retry_on_fail=True,
                    max_retries=retries,
                    wait_between_tries=WAIT_BETWEEN_TRIES_MS,
                )
            if spec is not None and spec.credentials is not None:
                prefix = spec.credentials.env_prefix
                update["credentials"] = {
                    spec.credentials.credential_type: {
                        "id": placeholder(f"{prefix}_ID"),
                        "name": placeholder(f"{prefix}_NAME"),
                    }
                }
            augmented.append(node.model_copy(update=update, deep=True))

        logger.info(
            f"Applied retry policy (maxRetries={retries}) to {critical_count} critical nodes "
            f"for plan tier {plan_tier.value}"
        )
        return augmented
