"""SQLAlchemy database models for the workflow engine."""

from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from .database import Base


class WorkflowModel(Base):
    """Database model for workflow definitions."""
    __tablename__ = "workflows"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    nodes = Column(JSON, nullable=False, default=list)  # Raw node mappings in editor order
    edges = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default="draft")  # draft, published, active
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    runs = relationship("WorkflowRunModel", back_populates="workflow", cascade="all, delete-orphan")


class WorkflowRunModel(Base):
    """Database model for workflow execution runs."""
    __tablename__ = "workflow_runs"

    id = Column(String, primary_key=True)
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False, index=True)
    status = Column(String, nullable=False)  # pending, running, success, failed
    input = Column(JSON)
    output = Column(JSON)
    message = Column(Text, default="")
    started_at = Column(DateTime, default=datetime.utcnow)
    finished_at = Column(DateTime)

    workflow = relationship("WorkflowModel", back_populates="runs")
    logs = relationship("NodeLogModel", back_populates="run", cascade="all, delete-orphan")


class NodeLogModel(Base):
    """Database model for per-node execution logs."""
    __tablename__ = "workflow_logs"

    id = Column(String, primary_key=True)
    run_id = Column(String, ForeignKey("workflow_runs.id"), nullable=False, index=True)
    node_id = Column(String, nullable=False)
    node_name = Column(String, default="")
    node_type = Column(String, nullable=False)
    status = Column(String, nullable=False)  # started, completed, failed
    input = Column(JSON)
    output = Column(JSON)
    error_message = Column(Text, default="")
    created_at = Column(DateTime, default=datetime.utcnow)

    run = relationship("WorkflowRunModel", back_populates="logs")


class IntegrationModel(Base):
    """Database model for third-party integration credentials."""
    __tablename__ = "integrations"

    id = Column(String, primary_key=True)
    type = Column(String, nullable=False, unique=True)  # jira, slack
    name = Column(String, default="")
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class WebhookEventModel(Base):
    """Database model for inbound webhook deliveries."""
    __tablename__ = "webhook_events"

    id = Column(String, primary_key=True)
    source = Column(String, nullable=False, index=True)  # jira
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    processed = Column(Boolean, nullable=False, default=False, index=True)
    workflow_run_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
