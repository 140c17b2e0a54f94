"""Data models for the workflow engine."""

from .core import (
    WorkflowStatusEnum,
    RunStatusEnum,
    NodeLogStatusEnum,
    WorkflowDefinition,
    RunRecord,
    NodeLogRecord,
    IntegrationRecord,
    WebhookEventRecord,
    NodeResult,
    RunOutcome,
    DryRunResult,
)
from .nodes import (
    NodeType,
    ENTRY_NODE_TYPES,
    NodeConfig,
    PassThroughConfig,
    JiraWebhookConfig,
    HttpRequestConfig,
    JiraCreateIssueConfig,
    SlackMessageConfig,
    DelayConfig,
    parse_node_config,
)

__all__ = [
    "WorkflowStatusEnum",
    "RunStatusEnum",
    "NodeLogStatusEnum",
    "WorkflowDefinition",
    "RunRecord",
    "NodeLogRecord",
    "IntegrationRecord",
    "WebhookEventRecord",
    "NodeResult",
    "RunOutcome",
    "DryRunResult",
    "NodeType",
    "ENTRY_NODE_TYPES",
    "NodeConfig",
    "PassThroughConfig",
    "JiraWebhookConfig",
    "HttpRequestConfig",
    "JiraCreateIssueConfig",
    "SlackMessageConfig",
    "DelayConfig",
    "parse_node_config",
]
