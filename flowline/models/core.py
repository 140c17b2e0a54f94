"""Core Pydantic models for the workflow engine."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class WorkflowStatusEnum(str, Enum):
    """Lifecycle status of a workflow definition."""
    DRAFT = "draft"
    PUBLISHED = "published"
    ACTIVE = "active"


class RunStatusEnum(str, Enum):
    """Enumeration of workflow run statuses."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class NodeLogStatusEnum(str, Enum):
    """Enumeration of per-node log statuses."""
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowDefinition(BaseModel):
    """Snapshot of a persisted workflow.

    Nodes and edges are kept as the raw mappings the editor saves; the graph
    builder is the only place that interprets them.
    """
    id: str = Field(..., description="Unique identifier of the workflow")
    name: str = Field(..., description="Name of the workflow")
    description: str = Field(default="", description="Description of the workflow")
    nodes: List[Dict[str, Any]] = Field(default_factory=list, description="Raw node definitions")
    edges: List[Dict[str, Any]] = Field(default_factory=list, description="Raw edge definitions")
    status: WorkflowStatusEnum = Field(default=WorkflowStatusEnum.DRAFT, description="Lifecycle status")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    @field_validator('nodes', 'edges', mode='before')
    @classmethod
    def default_empty_list(cls, value):
        """Treat a missing node or edge list as empty."""
        return value if value is not None else []


class RunRecord(BaseModel):
    """Persisted state of one workflow run."""
    id: str = Field(..., description="Unique identifier for the run")
    workflow_id: str = Field(..., description="ID of the workflow being executed")
    status: RunStatusEnum = Field(..., description="Current run status")
    input: Any = Field(None, description="Payload the run was triggered with")
    output: Any = Field(None, description="Final payload, or the failing node's output")
    message: str = Field(default="", description="Human-readable summary")
    started_at: datetime = Field(..., description="Timestamp when the run started")
    finished_at: Optional[datetime] = Field(None, description="Timestamp when the run finished")


class NodeLogRecord(BaseModel):
    """Audit record of one node execution within a run."""
    id: str = Field(..., description="Unique identifier for the log row")
    run_id: str = Field(..., description="ID of the workflow run")
    node_id: str = Field(..., description="ID of the node")
    node_name: str = Field(default="", description="Display title of the node")
    node_type: str = Field(..., description="Type of the node")
    status: NodeLogStatusEnum = Field(..., description="Node execution status")
    input: Any = Field(None, description="Payload before the node ran")
    output: Any = Field(None, description="Payload the node returned")
    error_message: str = Field(default="", description="Error message if the node failed")
    created_at: datetime = Field(..., description="Timestamp when the node started")


class IntegrationRecord(BaseModel):
    """Credentials and settings for a third-party integration."""
    id: str = Field(..., description="Unique identifier of the integration")
    type: str = Field(..., description="Integration type, e.g. 'jira' or 'slack'")
    name: str = Field(default="", description="Display name")
    config: Dict[str, Any] = Field(default_factory=dict, description="Credential/config mapping")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")


class WebhookEventRecord(BaseModel):
    """An inbound webhook delivery and the run it started, if any."""
    id: str = Field(..., description="Unique identifier of the event")
    source: str = Field(..., description="Sending system, e.g. 'jira'")
    event_type: str = Field(..., description="Event name read from the payload")
    payload: Any = Field(None, description="Body as received")
    processed: bool = Field(default=False, description="Whether a workflow run was started")
    workflow_run_id: Optional[str] = Field(None, description="Run started for this event")
    created_at: datetime = Field(..., description="Timestamp when the event arrived")


class NodeResult(BaseModel):
    """What a node handler hands back: the new payload and an error string.

    An empty ``error`` means success. On failure ``output`` may still carry
    whatever the handler got back (for example a rejected response body).
    """
    output: Any = None
    error: str = ""

    @property
    def failed(self) -> bool:
        return bool(self.error)

    @classmethod
    def ok(cls, output: Any) -> "NodeResult":
        return cls(output=output, error="")

    @classmethod
    def fail(cls, error: str, output: Any = None) -> "NodeResult":
        return cls(output=output, error=error)


class RunOutcome(BaseModel):
    """Terminal result of executing a workflow graph."""
    run_id: str = Field(..., description="ID of the workflow run")
    status: RunStatusEnum = Field(..., description="Terminal run status")
    output: Any = Field(None, description="Final payload")
    message: str = Field(..., description="Human-readable summary")
    nodes_executed: int = Field(default=0, description="Number of nodes visited")


class DryRunResult(BaseModel):
    """Result of running a single node in isolation."""
    success: bool = Field(..., description="Whether the node succeeded")
    error: Optional[str] = Field(None, description="Error message if the node failed")
    output: Any = Field(None, description="Payload the node returned")
