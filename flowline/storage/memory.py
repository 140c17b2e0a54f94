"""In-memory implementations of the storage interfaces.

Useful for tests and for embedding the engine without a database. Each store
guards its state with a lock, since runs record from worker threads.
"""

import copy
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.exceptions import RunNotFoundError, StorageError, WorkflowNotFoundError
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


class InMemoryWorkflowStore:
    """Workflow definitions kept in a dict, in insertion order."""

    def __init__(self, workflows: Optional[List[WorkflowDefinition]] = None):
        self._lock = threading.Lock()
        self._workflows: Dict[str, WorkflowDefinition] = {}
        for workflow in workflows or []:
            self._workflows[workflow.id] = workflow

    def add_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        with self._lock:
            self._workflows[workflow.id] = workflow
        return workflow

    def create_workflow(
        self,
        name: str,
        description: str = "",
        nodes: Optional[List[Dict[str, Any]]] = None,
        edges: Optional[List[Dict[str, Any]]] = None,
        status: str = WorkflowStatusEnum.DRAFT.value,
        workflow_id: Optional[str] = None
    ) -> WorkflowDefinition:
        now = datetime.utcnow()
        workflow = WorkflowDefinition(
            id=workflow_id or str(uuid.uuid4()),
            name=name,
            description=description or "",
            nodes=copy.deepcopy(nodes or []),
            edges=copy.deepcopy(edges or []),
            status=status,
            created_at=now,
            updated_at=now,
        )
        return self.add_workflow(workflow)

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
            return workflow.model_copy(deep=True) if workflow else None

    def list_workflows(self, status: Optional[str] = None) -> List[WorkflowDefinition]:
        with self._lock:
            workflows = list(self._workflows.values())
        if status is not None:
            status = status.value if hasattr(status, "value") else status
            workflows = [w for w in workflows if w.status.value == status]
        return [w.model_copy(deep=True) for w in workflows]

    def update_workflow(self, workflow_id: str, **fields: Any) -> WorkflowDefinition:
        allowed = {"name", "description", "nodes", "edges", "status"}
        with self._lock:
            workflow = self._workflows.get(workflow_id)
            if workflow is None:
                raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id=workflow_id)
            changes = {k: v for k, v in fields.items() if k in allowed and v is not None}
            data = workflow.model_dump()
            data.update(changes)
            data["updated_at"] = datetime.utcnow()
            updated = WorkflowDefinition(**data)
            self._workflows[workflow_id] = updated
            return updated.model_copy(deep=True)

    def delete_workflow(self, workflow_id: str) -> None:
        with self._lock:
            if self._workflows.pop(workflow_id, None) is None:
                raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id=workflow_id)


class InMemoryRunRecorder:
    """Run and node log records kept in dicts."""

    def __init__(self):
        self._lock = threading.Lock()
        self._runs: Dict[str, RunRecord] = {}
        self._logs: Dict[str, NodeLogRecord] = {}

    def create_run(self, run_id: str, workflow_id: str, input: Any) -> None:
        with self._lock:
            self._runs[run_id] = RunRecord(
                id=run_id,
                workflow_id=workflow_id,
                status=RunStatusEnum.RUNNING,
                input=copy.deepcopy(input),
                started_at=datetime.utcnow(),
            )

    def update_run_terminal(
        self,
        run_id: str,
        status: RunStatusEnum,
        output: Any,
        message: str,
        finished_at: datetime
    ) -> None:
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise RunNotFoundError(f"Run {run_id} not found", run_id=run_id)
            self._runs[run_id] = run.model_copy(update={
                "status": RunStatusEnum(status),
                "output": copy.deepcopy(output),
                "message": message,
                "finished_at": finished_at,
            })

    def create_node_log(
        self,
        log_id: str,
        run_id: str,
        node_id: str,
        node_name: str,
        node_type: str,
        input: Any
    ) -> None:
        with self._lock:
            self._logs[log_id] = NodeLogRecord(
                id=log_id,
                run_id=run_id,
                node_id=node_id,
                node_name=node_name,
                node_type=node_type,
                status=NodeLogStatusEnum.STARTED,
                input=copy.deepcopy(input),
                created_at=datetime.utcnow(),
            )

    def update_node_log(
        self,
        log_id: str,
        status: NodeLogStatusEnum,
        output: Any,
        error_message: str
    ) -> None:
        with self._lock:
            log = self._logs.get(log_id)
            if log is None:
                raise StorageError(f"Node log {log_id} not found", operation="update node log")
            self._logs[log_id] = log.model_copy(update={
                "status": NodeLogStatusEnum(status),
                "output": copy.deepcopy(output),
                "error_message": error_message,
            })

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        with self._lock:
            return self._runs.get(run_id)

    def list_runs(self, workflow_id: Optional[str] = None, limit: int = 50) -> List[RunRecord]:
        with self._lock:
            runs = [r for r in self._runs.values() if workflow_id is None or r.workflow_id == workflow_id]
        return list(reversed(runs))[:limit]

    def list_node_logs(self, run_id: str) -> List[NodeLogRecord]:
        with self._lock:
            return [log for log in self._logs.values() if log.run_id == run_id]


class InMemoryIntegrationStore:
    """Integration configs keyed by type."""

    def __init__(self, configs: Optional[Dict[str, Dict[str, Any]]] = None):
        self._lock = threading.Lock()
        self._integrations: Dict[str, IntegrationRecord] = {}
        for integration_type, config in (configs or {}).items():
            self.upsert_integration(integration_type, config)

    def get_config(self, integration_type: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._integrations.get(integration_type)
            return copy.deepcopy(record.config) if record else None

    def get_integration(self, integration_type: str) -> Optional[IntegrationRecord]:
        with self._lock:
            return self._integrations.get(integration_type)

    def list_integrations(self) -> List[IntegrationRecord]:
        with self._lock:
            return [self._integrations[key] for key in sorted(self._integrations)]

    def upsert_integration(self, integration_type: str, config: Dict[str, Any], name: str = "") -> IntegrationRecord:
        now = datetime.utcnow()
        with self._lock:
            existing = self._integrations.get(integration_type)
            record = IntegrationRecord(
                id=existing.id if existing else str(uuid.uuid4()),
                type=integration_type,
                name=name or (existing.name if existing else integration_type),
                config=copy.deepcopy(config),
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self._integrations[integration_type] = record
            return record

    def delete_integration(self, integration_type: str) -> bool:
        with self._lock:
            return self._integrations.pop(integration_type, None) is not None


class InMemoryWebhookEventStore:
    """Webhook deliveries kept in arrival order."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: Dict[str, WebhookEventRecord] = {}

    def record_event(self, source: str, event_type: str, payload: Any) -> WebhookEventRecord:
        event = WebhookEventRecord(
            id=str(uuid.uuid4()),
            source=source,
            event_type=event_type,
            payload=copy.deepcopy(payload),
            created_at=datetime.utcnow(),
        )
        with self._lock:
            self._events[event.id] = event
        return event

    def mark_processed(self, event_id: str, run_id: str) -> None:
        with self._lock:
            event = self._events.get(event_id)
            if event is None:
                raise StorageError(f"Webhook event {event_id} not found", operation="update webhook event")
            self._events[event_id] = event.model_copy(update={"processed": True, "workflow_run_id": run_id})

    def list_events(self, limit: int = 50) -> List[WebhookEventRecord]:
        with self._lock:
            return list(reversed(list(self._events.values())))[:limit]
