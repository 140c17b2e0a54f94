"""Database models and storage layer."""

from .database import Base, Database
from .models import WorkflowModel, WorkflowRunModel, NodeLogModel, IntegrationModel, WebhookEventModel
from .repositories import SqlWorkflowStore, SqlRunRecorder, SqlIntegrationStore, SqlWebhookEventStore
from .memory import (
    InMemoryWorkflowStore,
    InMemoryRunRecorder,
    InMemoryIntegrationStore,
    InMemoryWebhookEventStore,
)

__all__ = [
    "Base",
    "Database",
    "WorkflowModel",
    "WorkflowRunModel",
    "NodeLogModel",
    "IntegrationModel",
    "WebhookEventModel",
    "SqlWorkflowStore",
    "SqlRunRecorder",
    "SqlIntegrationStore",
    "SqlWebhookEventStore",
    "InMemoryWorkflowStore",
    "InMemoryRunRecorder",
    "InMemoryIntegrationStore",
    "InMemoryWebhookEventStore",
]
