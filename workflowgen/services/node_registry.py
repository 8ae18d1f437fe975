"""Closed table of abstract node kinds and the concrete n8n node each one builds."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from workflowgen.core.exceptions import ValidationError


class NodeKind(str, Enum):
    WEBHOOK_TRIGGER = "webhook-trigger"
    EMAIL_TRIGGER = "email-trigger"
    GMAIL_TRIGGER = "gmail-trigger"
    SCHEDULE_TRIGGER = "schedule-trigger"
    MANUAL_TRIGGER = "manual-trigger"
    HTTP_CALL = "http-call"
    EMAIL_SEND = "email-send"
    GMAIL_SEND = "gmail-send"
    AI_CLASSIFY = "ai-classify"
    AI_GENERATE = "ai-generate"
    FUNCTION = "function"
    IF = "if"
    SWITCH = "switch"
    MERGE = "merge"
    SET = "set"
    SPLIT_BATCHES = "split-batches"
    RESPOND_WEBHOOK = "respond-webhook"
    NO_OP = "no-op"
    GOOGLE_SHEETS = "google-sheets"
    AIRTABLE = "airtable"
    POSTGRES = "postgres"
    SLACK_MESSAGE = "slack-message"


@dataclass(frozen=True)
class CredentialRequirement:
    credential_type: str
    env_prefix: str


@dataclass(frozen=True)
class NodeTypeSpec:
    kind: NodeKind
    concrete_type: str
    type_version: float
    display_name: str
    parameter_defaults: dict[str, Any] = field(default_factory=dict)
    critical: bool = False
    trigger: bool = False
    branching: bool = False
    credentials: CredentialRequirement | None = None

    def default_parameters(self) -> dict[str, Any]:
        return copy.deepcopy(self.parameter_defaults)


_AI_DEFAULTS = {
    "resource": "chat",
    "model": "gpt-4o-mini",
    "options": {"temperature": 0.2, "maxTokens": 1000},
}

NODE_TYPE_REGISTRY: dict[NodeKind, NodeTypeSpec] = {
    spec.kind: spec
    for spec in (
        NodeTypeSpec(
            kind=NodeKind.WEBHOOK_TRIGGER,
            concrete_type="n8n-nodes-base.webhook",
            type_version=1,
            display_name="Webhook",
            parameter_defaults={"httpMethod": "POST", "path": "webhook", "responseMode": "onReceived"},
            trigger=True,
        ),
        NodeTypeSpec(
            kind=NodeKind.EMAIL_TRIGGER,
            concrete_type="n8n-nodes-base.emailReadImap",
            type_version=2,
            display_name="Email Trigger",
            parameter_defaults={"mailbox": "INBOX", "postProcessAction": "read", "options": {}},
            trigger=True,
            credentials=CredentialRequirement("imap", "IMAP_CREDENTIAL"),
        ),
        NodeTypeSpec(
            kind=NodeKind.GMAIL_TRIGGER,
            concrete_type="n8n-nodes-base.gmailTrigger",
            type_version=1,
            display_name="Gmail Trigger",
            parameter_defaults={"pollTimes": {"item": [{"mode": "everyMinute"}]}, "simple": True, "filters": {}},
            trigger=True,
            credentials=CredentialRequirement("gmailOAuth2", "GMAIL_OAUTH2_CREDENTIAL"),
        ),
        NodeTypeSpec(
            kind=NodeKind.SCHEDULE_TRIGGER,
            concrete_type="n8n-nodes-base.scheduleTrigger",
            type_version=1.2,
            display_name="Schedule Trigger",
            parameter_defaults={"rule": {"interval": [{"field": "cronExpression", "expression": "0 * * * *"}]}},
            trigger=True,
        ),
        NodeTypeSpec(
            kind=NodeKind.MANUAL_TRIGGER,
            concrete_type="n8n-nodes-base.manualTrigger",
            type_version=1,
            display_name="Manual Trigger",
            trigger=True,
        ),
        NodeTypeSpec(
            kind=NodeKind.HTTP_CALL,
            concrete_type="n8n-nodes-base.httpRequest",
            type_version=4.2,
            display_name="HTTP Request",
            parameter_defaults={"method": "GET", "url": "", "options": {}},
            critical=True,
        ),
        NodeTypeSpec(
            kind=NodeKind.EMAIL_SEND,
            concrete_type="n8n-nodes-base.emailSend",
            type_version=2.1,
            display_name="Send Email",
            parameter_defaults={"fromEmail": "", "toEmail": "", "subject": "", "emailFormat": "text", "options": {}},
            critical=True,
            credentials=CredentialRequirement("smtp", "SMTP_CREDENTIAL"),
        ),
        NodeTypeSpec(
            kind=NodeKind.GMAIL_SEND,
            concrete_type="n8n-nodes-base.gmail",
            type_version=2.1,
            display_name="Gmail",
            parameter_defaults={"resource": "message", "operation": "send", "options": {}},
            critical=True,
            credentials=CredentialRequirement("gmailOAuth2", "GMAIL_OAUTH2_CREDENTIAL"),
        ),
        NodeTypeSpec(
            kind=NodeKind.AI_CLASSIFY,
            concrete_type="n8n-nodes-base.openAi",
            type_version=1.1,
            display_name="Classify with AI",
            parameter_defaults={**_AI_DEFAULTS, "prompt": {"messages": [{"role": "system", "content": "Classify the input."}]}},
            critical=True,
            credentials=CredentialRequirement("openAiApi", "OPENAI_CREDENTIAL"),
        ),
        NodeTypeSpec(
            kind=NodeKind.AI_GENERATE,
            concrete_type="n8n-nodes-base.openAi",
            type_version=1.1,
            display_name="Generate with AI",
            parameter_defaults={**_AI_DEFAULTS, "prompt": {"messages": []}},
            critical=True,
            credentials=CredentialRequirement("openAiApi", "OPENAI_CREDENTIAL"),
        ),
        NodeTypeSpec(
            kind=NodeKind.FUNCTION,
            concrete_type="n8n-nodes-base.code",
            type_version=2,
            display_name="Code",
            parameter_defaults={"jsCode": "return $input.all();"},
        ),
        NodeTypeSpec(
            kind=NodeKind.IF,
            concrete_type="n8n-nodes-base.if",
            type_version=2,
            display_name="If",
            parameter_defaults={"conditions": {}, "options": {}},
            branching=True,
        ),
        NodeTypeSpec(
            kind=NodeKind.SWITCH,
            concrete_type="n8n-nodes-base.switch",
            type_version=3,
            display_name="Switch",
            parameter_defaults={"rules": {"values": []}, "options": {}},
            branching=True,
        ),
        NodeTypeSpec(
            kind=NodeKind.MERGE,
            concrete_type="n8n-nodes-base.merge",
            type_version=2,
            display_name="Merge",
            parameter_defaults={"mode": "append", "options": {}},
        ),
        NodeTypeSpec(
            kind=NodeKind.SET,
            concrete_type="n8n-nodes-base.set",
            type_version=3.4,
            display_name="Edit Fields",
            parameter_defaults={"mode": "manual", "assignments": {"assignments": []}, "options": {}},
        ),
        NodeTypeSpec(
            kind=NodeKind.SPLIT_BATCHES,
            concrete_type="n8n-nodes-base.splitInBatches",
            type_version=3,
            display_name="Split In Batches",
            parameter_defaults={"batchSize": 100, "options": {}},
        ),
        NodeTypeSpec(
            kind=NodeKind.RESPOND_WEBHOOK,
            concrete_type="n8n-nodes-base.respondToWebhook",
            type_version=1.1,
            display_name="Respond to Webhook",
            parameter_defaults={"respondWith": "firstIncomingItem", "options": {}},
        ),
        NodeTypeSpec(
            kind=NodeKind.NO_OP,
            concrete_type="n8n-nodes-base.noOp",
            type_version=1,
            display_name="No Operation",
        ),
        NodeTypeSpec(
            kind=NodeKind.GOOGLE_SHEETS,
            concrete_type="n8n-nodes-base.googleSheets",
            type_version=4.5,
            display_name="Google Sheets",
            parameter_defaults={"operation": "append", "options": {}},
            critical=True,
            credentials=CredentialRequirement("googleSheetsOAuth2Api", "GOOGLE_SHEETS_CREDENTIAL"),
        ),
        NodeTypeSpec(
            kind=NodeKind.AIRTABLE,
            concrete_type="n8n-nodes-base.airtable",
            type_version=2.1,
            display_name="Airtable",
            parameter_defaults={"operation": "create", "options": {"typecast": True}},
            critical=True,
            credentials=CredentialRequirement("airtableTokenApi", "AIRTABLE_CREDENTIAL"),
        ),
        NodeTypeSpec(
            kind=NodeKind.POSTGRES,
            concrete_type="n8n-nodes-base.postgres",
            type_version=2.5,
            display_name="Postgres",
            parameter_defaults={"operation": "insert", "schema": "public", "options": {}},
            critical=True,
            credentials=CredentialRequirement("postgres", "POSTGRES_CREDENTIAL"),
        ),
        NodeTypeSpec(
            kind=NodeKind.SLACK_MESSAGE,
            concrete_type="n8n-nodes-base.slack",
            type_version=2.2,
            display_name="Slack",
            parameter_defaults={"resource": "message", "operation": "post", "otherOptions": {}},
            critical=True,
            credentials=CredentialRequirement("slackApi", "SLACK_CREDENTIAL"),
        ),
    )
}

# Keys older prompts and stored plans still use.
NODE_KIND_ALIASES: dict[str, NodeKind] = {
    "webhook": NodeKind.WEBHOOK_TRIGGER,
    "email": NodeKind.EMAIL_SEND,
    "imap": NodeKind.EMAIL_TRIGGER,
    "schedule": NodeKind.SCHEDULE_TRIGGER,
    "cron": NodeKind.SCHEDULE_TRIGGER,
    "manual": NodeKind.MANUAL_TRIGGER,
    "http": NodeKind.HTTP_CALL,
    "http-request": NodeKind.HTTP_CALL,
    "gmail": NodeKind.GMAIL_SEND,
    "openai": NodeKind.AI_GENERATE,
    "classify": NodeKind.AI_CLASSIFY,
    "code": NodeKind.FUNCTION,
    "split-in-batches": NodeKind.SPLIT_BATCHES,
    "slack": NodeKind.SLACK_MESSAGE,
}

MERGE_MULTI_INPUT_VERSION = 3

_BY_CONCRETE_TYPE: dict[str, NodeTypeSpec] = {}
for _spec in NODE_TYPE_REGISTRY.values():
    _BY_CONCRETE_TYPE.setdefault(_spec.concrete_type, _spec)


def resolve_node_kind(key: str) -> NodeKind:
    """Map a canonical key or legacy alias to its NodeKind; anything else is rejected."""
    normalized = str(key or "").strip().lower().replace("_", "-")
    try:
        return NodeKind(normalized)
    except ValueError:
        pass
    if normalized in NODE_KIND_ALIASES:
        return NODE_KIND_ALIASES[normalized]
    raise ValidationError(f"unknown node type: {key}")


def get_node_spec(key: str | NodeKind) -> NodeTypeSpec:
    kind = key if isinstance(key, NodeKind) else resolve_node_kind(key)
    return NODE_TYPE_REGISTRY[kind]


def spec_for_concrete_type(concrete_type: str) -> NodeTypeSpec | None:
    return _BY_CONCRETE_TYPE.get(concrete_type)


def allowed_node_keys() -> list[str]:
    return [kind.value for kind in NodeKind]
