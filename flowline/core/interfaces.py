"""Interfaces of the collaborators the engine depends on.

The engine only talks to storage through these protocols. SQL-backed
implementations live in ``flowline.storage.repositories`` and in-memory ones
in ``flowline.storage.memory``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..models.core import NodeLogStatusEnum, RunStatusEnum, WorkflowDefinition


@runtime_checkable
class WorkflowStore(Protocol):
    """Read access to persisted workflow definitions."""

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        ...

    def list_workflows(self, status: Optional[str] = None) -> List[WorkflowDefinition]:
        ...


@runtime_checkable
class RunRecorder(Protocol):
    """Durable trace of runs and per-node logs."""

    def create_run(self, run_id: str, workflow_id: str, input: Any) -> None:
        ...

    def update_run_terminal(
        self,
        run_id: str,
        status: RunStatusEnum,
        output: Any,
        message: str,
        finished_at: datetime
    ) -> None:
        ...

    def create_node_log(
        self,
        log_id: str,
        run_id: str,
        node_id: str,
        node_name: str,
        node_type: str,
        input: Any
    ) -> None:
        ...

    def update_node_log(
        self,
        log_id: str,
        status: NodeLogStatusEnum,
        output: Any,
        error_message: str
    ) -> None:
        ...


@runtime_checkable
class IntegrationConfigProvider(Protocol):
    """Lookup of third-party integration credentials by type."""

    def get_config(self, integration_type: str) -> Optional[Dict[str, Any]]:
        ...
