"""
Production-tested workflow examples, best practices and anti-patterns.

The corpus is loaded once and never mutated; analyzers only read from it.
"""
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorHandlingPattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: str
    implementation: str
    fallback: str = ""


class CommonFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue: str
    cause: str
    prevention: str


class WorkflowExample(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str
    category: str
    name: str
    description: str
    tags: tuple[str, ...] = ()
    industries: tuple[str, ...] = ()
    # Step families, e.g. "email", "http", "condition".
    step_kinds: tuple[str, ...] = Field(default=(), alias="stepKinds")
    node_sequence: tuple[str, ...] = Field(default=(), alias="nodeSequence")
    integrations: tuple[str, ...] = ()
    success_rate: float = Field(alias="successRate", ge=0, le=1)
    avg_execution_seconds: float = Field(default=0.0, alias="avgExecutionSeconds", ge=0)
    error_handling: ErrorHandlingPattern | None = Field(default=None, alias="errorHandling")
    common_failures: tuple[CommonFailure, ...] = Field(default=(), alias="commonFailures")


class BestPractice(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    group: str
    category: str
    practice: str
    implementation: str
    description: str = ""
    success_rate: float | None = Field(default=None, alias="successRate")
    improvement: str | None = None
    source: str = "knowledge_base"


class AntiPattern(BaseModel):
    """Matches when any ``present_terms`` occur, or when none of ``absent_terms`` do."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str
    failure_rate: float = Field(alias="failureRate", ge=0, le=1)
    prevention: str
    example: str = ""
    present_terms: tuple[str, ...] = Field(default=(), alias="presentTerms")
    absent_terms: tuple[str, ...] = Field(default=(), alias="absentTerms")


_SUPPORT_FAILURES = (
    {
        "issue": "Email trigger stops working",
        "cause": "OAuth token expiry",
        "prevention": "Monitor token expiry, implement refresh logic",
    },
    {
        "issue": "Classification inconsistency",
        "cause": "Ambiguous email content",
        "prevention": "Add confidence scoring and manual review queue",
    },
)

WORKFLOW_EXAMPLES: list[dict[str, Any]] = [
    {
        "key": "customer_support",
        "category": "emailAutomation",
        "name": "Customer Support Email Processing",
        "description": "Processes incoming support emails, classifies urgency, routes to appropriate team members",
        "tags": ("email", "support", "classification", "routing"),
        "industries": ("saas", "ecommerce", "service"),
        "stepKinds": ("email", "transform", "condition", "http", "notification"),
        "nodeSequence": ("Email Trigger", "Function", "If", "Http Request", "Email Send"),
        "integrations": ("gmail", "slack"),
        "successRate": 0.96,
        "avgExecutionSeconds": 2.3,
        "errorHandling": {
            "strategy": "Each HTTP request and email send includes retry logic",
            "implementation": "3 retries with exponential backoff",
            "fallback": "Log error and send admin notification if all retries fail",
        },
        "commonFailures": _SUPPORT_FAILURES,
    },
    {
        "key": "sales_inquiry_triage",
        "category": "emailAutomation",
        "name": "Sales Inquiry Email Triage",
        "description": "Reads inbound sales emails, classifies intent with AI, answers common questions and escalates qualified leads",
        "tags": ("email", "sales", "classification", "ai", "answer"),
        "industries": ("saas", "b2b"),
        "stepKinds": ("email", "ai", "condition", "http", "email"),
        "nodeSequence": ("Email Trigger", "Function", "If", "Http Request", "Email Send"),
        "integrations": ("gmail", "openai", "hubspot"),
        "successRate": 0.95,
        "avgExecutionSeconds": 3.4,
        "errorHandling": {
            "strategy": "Classify with a confidence threshold and fall back to human review",
            "implementation": "continueOnFail on the AI node with a default 'needs-review' label",
        },
        "commonFailures": (
            {
                "issue": "AI classification times out",
                "cause": "Long email threads exceed token limits",
                "prevention": "Truncate quoted replies before classification",
            },
        ),
    },
    {
        "key": "lead_nurturing",
        "category": "emailAutomation",
        "name": "Lead Nurturing Email Sequence",
        "description": "Automated email sequences based on user actions and engagement",
        "tags": ("email", "marketing", "nurturing", "segmentation"),
        "industries": ("saas", "ecommerce", "b2b"),
        "stepKinds": ("webhook", "transform", "condition", "email"),
        "nodeSequence": ("Webhook", "Function", "Switch", "Email Send"),
        "integrations": ("sendgrid",),
        "successRate": 0.94,
        "avgExecutionSeconds": 1.8,
    },
    {
        "key": "csv_to_database",
        "category": "dataProcessing",
        "name": "CSV Data Import and Validation",
        "description": "Import CSV files, validate data, and insert into database with error handling",
        "tags": ("data", "csv", "validation", "database"),
        "industries": ("generic",),
        "stepKinds": ("webhook", "transform", "storage"),
        "nodeSequence": ("Webhook", "Function", "Split In Batches", "Postgres"),
        "integrations": ("postgres",),
        "successRate": 0.98,
        "avgExecutionSeconds": 4.2,
        "errorHandling": {
            "strategy": "Continue processing valid records, collect errors for review",
            "implementation": "Process in batches of 100 records and route invalid rows to an error list",
        },
    },
    {
        "key": "order_webhook",
        "category": "integrationWorkflows",
        "name": "E-commerce Order Webhook Processing",
        "description": "Receives order webhooks, validates payloads and stores orders in the database",
        "tags": ("webhook", "order", "ecommerce", "database"),
        "industries": ("ecommerce", "retail"),
        "stepKinds": ("webhook", "transform", "storage"),
        "nodeSequence": ("Webhook", "Function", "Split In Batches", "Postgres"),
        "integrations": ("shopify", "postgres"),
        "successRate": 0.97,
        "avgExecutionSeconds": 1.2,
    },
    {
        "key": "sheet_enrichment",
        "category": "dataProcessing",
        "name": "Spreadsheet Lead Enrichment",
        "description": "Reads new spreadsheet rows on a schedule, enriches each lead through an external API and writes the results back",
        "tags": ("data", "enrichment", "spreadsheet", "api"),
        "industries": ("b2b", "service"),
        "stepKinds": ("schedule", "storage", "http", "storage"),
        "nodeSequence": ("Schedule Trigger", "Google Sheets", "Split In Batches", "Http Request", "Google Sheets"),
        "integrations": ("google sheets", "clearbit"),
        "successRate": 0.93,
        "avgExecutionSeconds": 5.5,
    },
    {
        "key": "crm_sync",
        "category": "integrationWorkflows",
        "name": "Bi-directional CRM Synchronization",
        "description": "Keep customer data synchronized between multiple systems",
        "tags": ("crm", "sync", "integration", "data-consistency"),
        "industries": ("saas", "service"),
        "stepKinds": ("schedule", "http", "transform", "http"),
        "nodeSequence": ("Schedule Trigger", "Http Request", "Function", "Http Request"),
        "integrations": ("hubspot", "salesforce"),
        "successRate": 0.92,
        "avgExecutionSeconds": 3.1,
        "errorHandling": {
            "strategy": "Quarantine conflicted records for manual review",
            "implementation": "Last-write-wins with audit trail and fuzzy matching on email plus company name",
        },
    },
    {
        "key": "ai_content_digest",
        "category": "aiAutomation",
        "name": "Daily AI News Digest",
        "description": "Fetches articles on a schedule, summarizes them with AI and posts a digest to a chat channel",
        "tags": ("ai", "summary", "digest", "slack"),
        "industries": ("media", "generic"),
        "stepKinds": ("schedule", "http", "ai", "notification"),
        "nodeSequence": ("Schedule Trigger", "Http Request", "Open Ai", "Slack"),
        "integrations": ("openai", "slack"),
        "successRate": 0.88,
        "avgExecutionSeconds": 7.9,
    },
]

BEST_PRACTICES: list[dict[str, Any]] = [
    {
        "group": "errorHandling",
        "category": "HTTP Requests",
        "practice": "Always include retry logic with exponential backoff",
        "implementation": "retryOnFail: true, maxRetries: 3, waitBetweenTries: 1000",
        "successRate": 0.96,
        "description": "Handles temporary network issues and API rate limits",
    },
    {
        "group": "errorHandling",
        "category": "Email Operations",
        "practice": "Use OAuth2 authentication over basic auth",
        "implementation": "Configure OAuth2 credentials in the credential store",
        "successRate": 0.98,
        "description": "More secure and reliable than password-based auth",
    },
    {
        "group": "errorHandling",
        "category": "Function Nodes",
        "practice": "Wrap all logic in try/catch blocks",
        "implementation": "try { /* logic */ } catch (error) { return [{ json: { error: error.message } }]; }",
        "successRate": 0.94,
        "description": "Prevents workflow crashes from JavaScript errors",
    },
    {
        "group": "performance",
        "category": "Large Dataset Processing",
        "practice": "Process data in batches to avoid memory issues",
        "implementation": "Use SplitInBatches node with batch size 100-500",
        "improvement": "60% faster execution, 80% less memory usage",
        "description": "Prevents timeout and memory overflow errors",
    },
    {
        "group": "performance",
        "category": "External API Calls",
        "practice": "Implement caching for frequently accessed data",
        "implementation": "Use Set node to store results, IF node to check cache",
        "improvement": "70% faster execution for repeated data",
        "description": "Reduces API call volume and improves response times",
    },
    {
        "group": "security",
        "category": "Webhook Authentication",
        "practice": "Always use authentication on webhook endpoints",
        "implementation": "headerAuth with API key or HMAC signature verification",
        "improvement": "Prevents unauthorized workflow execution",
        "description": "Critical for production webhooks receiving external data",
    },
]

ANTI_PATTERNS: list[dict[str, Any]] = [
    {
        "name": "No Error Handling",
        "description": "Workflows without error handling crash on first failure",
        "failureRate": 0.45,
        "prevention": "Add error handling to every node that can fail",
        "example": "HTTP request nodes without retry logic",
        "absentTerms": ("error", "retry", "handle"),
    },
    {
        "name": "Hardcoded Values",
        "description": "Hardcoded URLs, credentials, or configuration make workflows brittle",
        "failureRate": 0.30,
        "prevention": "Use environment variables and node parameters",
        "example": "Hardcoded API endpoints that change between environments",
        "presentTerms": ("hardcode", "fixed"),
    },
    {
        "name": "No Input Validation",
        "description": "Processing invalid input data causes unexpected errors",
        "failureRate": 0.25,
        "prevention": "Validate input data structure and types before processing",
        "example": "Assuming email fields exist without checking",
        "absentTerms": ("validate", "check", "verify"),
    },
]


class KnowledgeBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    examples: tuple[WorkflowExample, ...] = ()
    best_practices: tuple[BestPractice, ...] = Field(default=(), alias="bestPractices")
    anti_patterns: tuple[AntiPattern, ...] = Field(default=(), alias="antiPatterns")

    @classmethod
    def default(cls) -> "KnowledgeBase":
        return _bundled_knowledge_base()

    @classmethod
    def from_json(cls, path: str | Path) -> "KnowledgeBase":
        """Load a corpus file; sections it omits fall back to the bundled ones."""
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Knowledge corpus at {path} must be a JSON object")
        return cls.model_validate(
            {
                "examples": payload.get("examples", WORKFLOW_EXAMPLES),
                "bestPractices": payload.get("bestPractices", BEST_PRACTICES),
                "antiPatterns": payload.get("antiPatterns", ANTI_PATTERNS),
            }
        )

    def practices_for(self, category: str) -> list[BestPractice]:
        return [p for p in self.best_practices if p.category == category]


@lru_cache(maxsize=1)
def _bundled_knowledge_base() -> KnowledgeBase:
    return KnowledgeBase.model_validate(
        {
            "examples": WORKFLOW_EXAMPLES,
            "bestPractices": BEST_PRACTICES,
            "antiPatterns": ANTI_PATTERNS,
        }
    )
