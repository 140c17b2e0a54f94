"""SQLAlchemy-backed workflow store, run recorder and integration store."""

import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RunNotFoundError, StorageError, WorkflowNotFoundError
from ..core.logging import get_logger
from ..models.core import (
    IntegrationRecord,
    NodeLogRecord,
    NodeLogStatusEnum,
    RunRecord,
    RunStatusEnum,
    WebhookEventRecord,
    WorkflowDefinition,
    WorkflowStatusEnum,
)
from .database import Database
from .models import IntegrationModel, NodeLogModel, WebhookEventModel, WorkflowModel, WorkflowRunModel

logger = get_logger(__name__)


def _status_value(status: Any) -> str:
    return status.value if hasattr(status, "value") else str(status)


@contextmanager
def _session_scope(database: Database, operation: str, table: str) -> Iterator[Session]:
    """Open a transactional session and convert SQLAlchemy errors to StorageError."""
    try:
        with database.session() as db:
            yield db
    except SQLAlchemyError as e:
        logger.error(f"Database error during {operation} on {table}: {e}")
        raise StorageError(f"Failed to {operation}: {e}", operation=operation, table=table)


def _to_workflow(model: WorkflowModel) -> WorkflowDefinition:
    return WorkflowDefinition(
        id=model.id,
        name=model.name,
        description=model.description or "",
        nodes=model.nodes or [],
        edges=model.edges or [],
        status=model.status,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_run(model: WorkflowRunModel) -> RunRecord:
    return RunRecord(
        id=model.id,
        workflow_id=model.workflow_id,
        status=model.status,
        input=model.input,
        output=model.output,
        message=model.message or "",
        started_at=model.started_at,
        finished_at=model.finished_at,
    )


def _to_node_log(model: NodeLogModel) -> NodeLogRecord:
    return NodeLogRecord(
        id=model.id,
        run_id=model.run_id,
        node_id=model.node_id,
        node_name=model.node_name or "",
        node_type=model.node_type,
        status=model.status,
        input=model.input,
        output=model.output,
        error_message=model.error_message or "",
        created_at=model.created_at,
    )


def _to_integration(model: IntegrationModel) -> IntegrationRecord:
    return IntegrationRecord(
        id=model.id,
        type=model.type,
        name=model.name or "",
        config=model.config or {},
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_webhook_event(model: WebhookEventModel) -> WebhookEventRecord:
    return WebhookEventRecord(
        id=model.id,
        source=model.source,
        event_type=model.event_type,
        payload=model.payload,
        processed=bool(model.processed),
        workflow_run_id=model.workflow_run_id,
        created_at=model.created_at,
    )


class SqlWorkflowStore:
    """Workflow definitions stored in the ``workflows`` table."""

    def __init__(self, database: Database):
        self.database = database

    def create_workflow(
        self,
        name: str,
        description: str = "",
        nodes: Optional[List[Dict[str, Any]]] = None,
        edges: Optional[List[Dict[str, Any]]] = None,
        status: str = WorkflowStatusEnum.DRAFT.value,
        workflow_id: Optional[str] = None
    ) -> WorkflowDefinition:
        """
        Persist a new workflow.

        Args:
            name: Workflow name
            description: Optional description
            nodes: Raw node mappings
            edges: Raw edge mappings
            status: Lifecycle status
            workflow_id: Explicit ID; generated when omitted

        Returns:
            The stored workflow

        Raises:
            StorageError: If the insert fails
        """
        now = datetime.utcnow()
        with _session_scope(self.database, "create workflow", "workflows") as db:
            model = WorkflowModel(
                id=workflow_id or str(uuid.uuid4()),
                name=name,
                description=description or "",
                nodes=nodes or [],
                edges=edges or [],
                status=_status_value(status),
                created_at=now,
                updated_at=now,
            )
            db.add(model)
            db.flush()
            workflow = _to_workflow(model)
        logger.info(f"Created workflow {workflow.id} ('{workflow.name}')")
        return workflow

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        with _session_scope(self.database, "get workflow", "workflows") as db:
            model = db.get(WorkflowModel, workflow_id)
            return _to_workflow(model) if model else None

    def list_workflows(self, status: Optional[str] = None) -> List[WorkflowDefinition]:
        """List workflows, oldest first, optionally filtered by status."""
        with _session_scope(self.database, "list workflows", "workflows") as db:
            query = db.query(WorkflowModel)
            if status is not None:
                query = query.filter(WorkflowModel.status == _status_value(status))
            return [_to_workflow(model) for model in query.order_by(WorkflowModel.created_at).all()]

    def update_workflow(self, workflow_id: str, **fields: Any) -> WorkflowDefinition:
        """
        Update the given fields (name, description, nodes, edges, status).

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
            StorageError: If the update fails
        """
        allowed = {"name", "description", "nodes", "edges", "status"}
        with _session_scope(self.database, "update workflow", "workflows") as db:
            model = db.get(WorkflowModel, workflow_id)
            if model is None:
                raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id=workflow_id)
            for key, value in fields.items():
                if key not in allowed or value is None:
                    continue
                setattr(model, key, _status_value(value) if key == "status" else value)
            model.updated_at = datetime.utcnow()
            db.flush()
            workflow = _to_workflow(model)
        logger.info(f"Updated workflow {workflow_id}")
        return workflow

    def delete_workflow(self, workflow_id: str) -> None:
        """
        Delete a workflow together with its runs and logs.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
        """
        with _session_scope(self.database, "delete workflow", "workflows") as db:
            model = db.get(WorkflowModel, workflow_id)
            if model is None:
                raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id=workflow_id)
            db.delete(model)
        logger.info(f"Deleted workflow {workflow_id}")


class SqlRunRecorder:
    """Run and node log rows in the ``workflow_runs`` and ``workflow_logs`` tables."""

    def __init__(self, database: Database):
        self.database = database

    def create_run(self, run_id: str, workflow_id: str, input: Any) -> None:
        with _session_scope(self.database, "create run", "workflow_runs") as db:
            db.add(WorkflowRunModel(
                id=run_id,
                workflow_id=workflow_id,
                status=RunStatusEnum.RUNNING.value,
                input=input,
                message="",
                started_at=datetime.utcnow(),
            ))

    def update_run_terminal(
        self,
        run_id: str,
        status: RunStatusEnum,
        output: Any,
        message: str,
        finished_at: datetime
    ) -> None:
        with _session_scope(self.database, "update run", "workflow_runs") as db:
            model = db.get(WorkflowRunModel, run_id)
            if model is None:
                raise RunNotFoundError(f"Run {run_id} not found", run_id=run_id)
            model.status = _status_value(status)
            model.output = output
            model.message = message
            model.finished_at = finished_at

    def create_node_log(
        self,
        log_id: str,
        run_id: str,
        node_id: str,
        node_name: str,
        node_type: str,
        input: Any
    ) -> None:
        with _session_scope(self.database, "create node log", "workflow_logs") as db:
            db.add(NodeLogModel(
                id=log_id,
                run_id=run_id,
                node_id=node_id,
                node_name=node_name,
                node_type=node_type,
                status=NodeLogStatusEnum.STARTED.value,
                input=input,
                error_message="",
                created_at=datetime.utcnow(),
            ))

    def update_node_log(
        self,
        log_id: str,
        status: NodeLogStatusEnum,
        output: Any,
        error_message: str
    ) -> None:
        with _session_scope(self.database, "update node log", "workflow_logs") as db:
            model = db.get(NodeLogModel, log_id)
            if model is None:
                raise StorageError(f"Node log {log_id} not found", operation="update node log", table="workflow_logs")
            model.status = _status_value(status)
            model.output = output
            model.error_message = error_message

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        with _session_scope(self.database, "get run", "workflow_runs") as db:
            model = db.get(WorkflowRunModel, run_id)
            return _to_run(model) if model else None

    def list_runs(self, workflow_id: Optional[str] = None, limit: int = 50) -> List[RunRecord]:
        """List runs, newest first."""
        with _session_scope(self.database, "list runs", "workflow_runs") as db:
            query = db.query(WorkflowRunModel)
            if workflow_id is not None:
                query = query.filter(WorkflowRunModel.workflow_id == workflow_id)
            query = query.order_by(WorkflowRunModel.started_at.desc()).limit(limit)
            return [_to_run(model) for model in query.all()]

    def list_node_logs(self, run_id: str) -> List[NodeLogRecord]:
        """List a run's node logs in execution order."""
        with _session_scope(self.database, "list node logs", "workflow_logs") as db:
            query = (
                db.query(NodeLogModel)
                .filter(NodeLogModel.run_id == run_id)
                .order_by(NodeLogModel.created_at)
            )
            return [_to_node_log(model) for model in query.all()]


class SqlIntegrationStore:
    """Integration credentials in the ``integrations`` table, one row per type."""

    def __init__(self, database: Database):
        self.database = database

    def get_config(self, integration_type: str) -> Optional[Dict[str, Any]]:
        record = self.get_integration(integration_type)
        return dict(record.config) if record else None

    def get_integration(self, integration_type: str) -> Optional[IntegrationRecord]:
        with _session_scope(self.database, "get integration", "integrations") as db:
            model = db.query(IntegrationModel).filter(IntegrationModel.type == integration_type).first()
            return _to_integration(model) if model else None

    def list_integrations(self) -> List[IntegrationRecord]:
        with _session_scope(self.database, "list integrations", "integrations") as db:
            return [_to_integration(model) for model in db.query(IntegrationModel).order_by(IntegrationModel.type).all()]

    def upsert_integration(self, integration_type: str, config: Dict[str, Any], name: str = "") -> IntegrationRecord:
        """Create or replace the config for an integration type."""
        now = datetime.utcnow()
        with _session_scope(self.database, "save integration", "integrations") as db:
            model = db.query(IntegrationModel).filter(IntegrationModel.type == integration_type).first()
            if model is None:
                model = IntegrationModel(
                    id=str(uuid.uuid4()),
                    type=integration_type,
                    created_at=now,
                )
                db.add(model)
            model.name = name or model.name or integration_type
            model.config = dict(config)
            model.updated_at = now
            db.flush()
            record = _to_integration(model)
        logger.info(f"Saved {integration_type} integration")
        return record

    def delete_integration(self, integration_type: str) -> bool:
        """Delete an integration; returns False if none was stored."""
        with _session_scope(self.database, "delete integration", "integrations") as db:
            model = db.query(IntegrationModel).filter(IntegrationModel.type == integration_type).first()
            if model is None:
                return False
            db.delete(model)
        logger.info(f"Deleted {integration_type} integration")
        return True


class SqlWebhookEventStore:
    """Inbound webhook deliveries in the ``webhook_events`` table."""

    def __init__(self, database: Database):
        self.database = database

    def record_event(self, source: str, event_type: str, payload: Any) -> WebhookEventRecord:
        """Store a delivery as unprocessed and return it."""
        with _session_scope(self.database, "record webhook event", "webhook_events") as db:
            model = WebhookEventModel(
                id=str(uuid.uuid4()),
                source=source,
                event_type=event_type,
                payload=payload,
                processed=False,
                created_at=datetime.utcnow(),
            )
            db.add(model)
            db.flush()
            return _to_webhook_event(model)

    def mark_processed(self, event_id: str, run_id: str) -> None:
        """Link an event to the run it started."""
        with _session_scope(self.database, "update webhook event", "webhook_events") as db:
            model = db.get(WebhookEventModel, event_id)
            if model is None:
                raise StorageError(
                    f"Webhook event {event_id} not found",
                    operation="update webhook event",
                    table="webhook_events"
                )
            model.processed = True
            model.workflow_run_id = run_id

    def list_events(self, limit: int = 50) -> List[WebhookEventRecord]:
        """List events, newest first."""
        with _session_scope(self.database, "list webhook events", "webhook_events") as db:
            query = db.query(WebhookEventModel).order_by(WebhookEventModel.created_at.desc()).limit(limit)
            return [_to_webhook_event(model) for model in query.all()]
