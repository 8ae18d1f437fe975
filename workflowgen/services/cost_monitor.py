from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from workflowgen.schemas.cost import BudgetStatus, CostRecord, OrgBudget
from workflowgen.services.cost_log import CostLogSink

logger = logging.getLogger(__name__)

# USD per million tokens, keyed by model family.
MODEL_PRICES: dict[str, dict[str, float]] = {
    "claude-3-5-sonnet": {"input": 3.0, "output": 15.0},
    "claude-3-7-sonnet": {"input": 15.0, "output": 75.0},
    "gpt-4o": {"input": 2.5, "output": 10.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.6},
}
ADVANCED_FAMILIES = ("claude-3-7-sonnet", "gpt-4o")
BUDGET_WARNING_RATIO = 0.8
HIGH_CALL_COST = 0.50
SAVINGS_BY_ACTION = {"reduce-context": 0.30, "prefer-standard-model": 0.60, "reduce-nodes": 0.20}


class UsageBucket(BaseModel):
    calls: int = 0
    cost: float = 0.0


class CostSummary(BaseModel):
    total_calls: int = 0
    failed_calls: int = 0
    total_cost: float = 0.0
    average_cost: float = 0.0
    model_breakdown: dict[str, UsageBucket] = Field(default_factory=dict)
    complexity_breakdown: dict[str, UsageBucket] = Field(default_factory=dict)
    time_range: dict[str, datetime | None] = Field(default_factory=lambda: {"start": None, "end": None})


class Recommendation(BaseModel):
    type: str
    message: str
    action: str


class OptimizationReport(BaseModel):
    recommendations: list[Recommendation] = Field(default_factory=list)
    potential_savings: float = 0.0


class CostMonitor:
    """Prices invocations, appends them to the sink and evaluates budgets."""

    def __init__(self, sink: CostLogSink, price_table: dict[str, dict[str, float]] | None = None) -> None:
        self.sink = sink
        self.price_table = price_table or MODEL_PRICES
        # Unknown models are priced at the most expensive known rate.
        self.fallback_rate = max(self.price_table.values(), key=lambda r: (r["output"], r["input"]))

    def model_family(self, model: str) -> str | None:
        matches = [family for family in self.price_table if family in model]
        return max(matches, key=len) if matches else None

    def price(self, model: str, input_tokens: int, output_tokens: int) -> float:
        family = self.model_family(model)
        if family is None:
            logger.warning(f"No price entry for model '{model}', using the highest known rate")
            rates = self.fallback_rate
        else:
            rates = self.price_table[family]
        cost = (max(input_tokens, 0) / 1_000_000) * rates["input"] + (
            max(output_tokens, 0) / 1_000_000
        ) * rates["output"]
        return round(cost, 6)

    def record(
        self,
        model: str,
        input_tokens: int,
        output_tokens: int,
        *,
        provider: str | None = None,
        job_id: str | None = None,
        organization_id: str | None = None,
        tier: str | None = None,
        complexity: str | None = None,
        success: bool = True,
        error: str | None = None,
    ) -> CostRecord:
        record = CostRecord(
            model=model,
            provider=provider,
            input_tokens=max(input_tokens, 0),
            output_tokens=max(output_tokens, 0),
            cost=self.price(model, input_tokens, output_tokens) if success else 0.0,
            job_id=job_id,
            organization_id=organization_id,
            tier=tier,
            complexity=complexity,
            success=success,
            error=error,
        )
        self.sink.append(record)
        logger.info(
            f"Cost recorded: model={model} in={record.input_tokens} out={record.output_tokens} "
            f"cost=${record.cost:.6f} success={success} job={job_id}"
        )
        return record

    def daily_total(self, organization_id: str | None, now: datetime | None = None) -> float:
        """Spend for one organization (or the personal workspace) since UTC midnight."""
        now = now or datetime.now(timezone.utc)
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        total = sum(
            r.cost
            for r in self.sink.records(organization_id)
            if r.organization_id == organization_id and r.timestamp >= start_of_day
        )
        return round(total, 6)

    def check_budget(self, record: CostRecord, budget: OrgBudget | None = None) -> BudgetStatus:
        budget = budget or OrgBudget()
        cumulative = self.daily_total(record.organization_id)
        warnings: list[str] = []
        if record.cost > budget.single_call_limit:
            warnings.append(
                f"Single call cost ${record.cost:.5f} exceeds limit ${budget.single_call_limit:.2f}"
            )
        if cumulative > budget.daily_budget * BUDGET_WARNING_RATIO:
            warnings.append(
                f"Daily usage ${cumulative:.5f} approaching budget ${budget.daily_budget:.2f}"
            )
        if cumulative > budget.daily_budget:
            warnings.append(
                f"Daily budget ${budget.daily_budget:.2f} exceeded! Current: ${cumulative:.5f}"
            )
        for warning in warnings:
            logger.warning(f"[{record.organization_id or 'Personal'}] {warning}")
        return BudgetStatus(
            within_budget=cumulative < budget.daily_budget and record.cost < budget.single_call_limit,
            warnings=warnings,
            current_cost=record.cost,
            cumulative_cost=cumulative,
            daily_budget=budget.daily_budget,
            single_call_limit=budget.single_call_limit,
        )

    def summary(self, organization_id: str | None = None) -> CostSummary:
        records = self.sink.records(organization_id)
        if not records:
            return CostSummary()

        models: dict[str, UsageBucket] = {}
        complexities: dict[str, UsageBucket] = {}
        for r in records:
            model_key = self.model_family(r.model) or r.model
            for key, bucket in ((model_key, models), (r.complexity or "unknown", complexities)):
                entry = bucket.setdefault(key, UsageBucket())
                entry.calls += 1
                entry.cost = round(entry.cost + r.cost, 6)

        total = round(sum(r.cost for r in records), 6)
        timestamps = sorted(r.timestamp for r in records)
        return CostSummary(
            total_calls=len(records),
            failed_calls=sum(1 for r in records if not r.success),
            total_cost=total,
            average_cost=round(total / len(records), 6),
            model_breakdown=models,
            complexity_breakdown=complexities,
            time_range={"start": timestamps[0], "end": timestamps[-1]},
        )

    def optimization_recommendations(
        self,
        summary: CostSummary,
        node_count: int = 0,
        complexity: str | None = None,
    ) -> OptimizationReport:
        recommendations: list[Recommendation] = []
        for family in ADVANCED_FAMILIES:
            usage = summary.model_breakdown.get(family)
            if usage and usage.calls and usage.cost / usage.calls > HIGH_CALL_COST:
                recommendations.append(
                    Recommendation(
                        type="cost-reduction",
                        message=f"{family} averaging ${usage.cost / usage.calls:.3f} per call - consider reducing context size",
                        action="reduce-context",
                    )
                )
                break

        if node_count > 6 and complexity == "simple":
            recommendations.append(
                Recommendation(
                    type="context-optimization",
                    message="Simple workflows using complex context - reduce to 4-6 nodes",
                    action="reduce-nodes",
                )
            )

        simple = summary.complexity_breakdown.get("simple")
        ratio = (simple.calls / summary.total_calls) if simple and summary.total_calls else 0.0
        if ratio > 0.6:
            recommendations.append(
                Recommendation(
                    type="model-optimization",
                    message=f"{round(ratio * 100)}% simple workflows - consider defaulting to the standard model",
                    action="prefer-standard-model",
                )
            )

        savings = sum(summary.total_cost * SAVINGS_BY_ACTION.get(r.action, 0.0) for r in recommendations)
        return OptimizationReport(recommendations=recommendations, potential_savings=round(savings, 6))

    def export(self, organization_id: str | None = None) -> dict[str, Any]:
        summary = self.summary(organization_id)
        return {
            "summary": summary.model_dump(mode="json"),
            "recommendations": self.optimization_recommendations(summary).model_dump(mode="json"),
            "exported_at": datetime.now(timezone.utc).isoformat(),
        }
