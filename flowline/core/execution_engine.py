"""Execution Engine: starts workflow runs on a background thread pool."""

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..handlers.base import HandlerContext
from ..models.core import DryRunResult, RunOutcome, RunStatusEnum, WorkflowStatusEnum
from ..models.nodes import NodeType, parse_node_config
from .exceptions import ExecutionEngineError, NodeConfigurationError, WorkflowNotFoundError
from .executor import GraphExecutor
from .graph_builder import ExecutionGraph, build_graph, build_node
from .handler_registry import HandlerRegistry
from .interfaces import IntegrationConfigProvider, RunRecorder, WorkflowStore
from .logging import get_logger, run_logging_context

logger = get_logger(__name__)

DRY_RUN_NODE_ID = "dry-run"


@dataclass
class RunHandle:
    """A started run: its id and the future resolving to its RunOutcome."""
    run_id: str
    future: Future

    def result(self, timeout: Optional[float] = None) -> RunOutcome:
        """Block until the run finishes and return its outcome."""
        return self.future.result(timeout=timeout)

    def done(self) -> bool:
        return self.future.done()


class ExecutionEngine:
    """Supervises workflow runs.

    A run is created as ``running`` in the caller's thread, then traversed on
    a worker thread. Runs are independent of each other; within a run nodes
    execute one at a time.
    """

    def __init__(
        self,
        workflow_store: WorkflowStore,
        run_recorder: RunRecorder,
        integration_provider: Optional[IntegrationConfigProvider] = None,
        max_concurrent_runs: int = 10,
        handler_context: Optional[HandlerContext] = None,
        registry: Optional[HandlerRegistry] = None
    ):
        """Initialize the execution engine.

        Args:
            workflow_store: Source of workflow definitions
            run_recorder: Sink for run and node log rows
            integration_provider: Source of integration credentials for handlers
            max_concurrent_runs: Maximum number of runs executing at once
            handler_context: Context for handlers; built from ``integration_provider`` if omitted
            registry: Handler registry; a registry with the built-in handlers if omitted
        """
        if handler_context is None:
            handler_context = HandlerContext(integrations=integration_provider)
        elif handler_context.integrations is None:
            handler_context.integrations = integration_provider

        self.workflow_store = workflow_store
        self.run_recorder = run_recorder
        self.registry = registry or HandlerRegistry(handler_context)
        self.graph_executor = GraphExecutor(run_recorder, self.registry)

        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_runs,
            thread_name_prefix="flowline-run"
        )
        self._active_runs: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._shutdown = False

        logger.info(f"ExecutionEngine initialized with max_concurrent_runs={max_concurrent_runs}")

    def start_run(self, workflow_id: str, input: Any = None) -> str:
        """
        Start a run of a workflow and return immediately.

        Args:
            workflow_id: ID of the workflow to run
            input: Payload handed to the entry node

        Returns:
            The new run's ID

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
            ExecutionEngineError: If the engine has been shut down
        """
        return self.launch_run(workflow_id, input).run_id

    def launch_run(self, workflow_id: str, input: Any = None) -> RunHandle:
        """
        Start a run and return a handle that can be joined.

        The workflow is read and its graph built before this returns, so the
        run executes against the definition as it was at trigger time.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
            ExecutionEngineError: If the engine has been shut down
        """
        if self._shutdown:
            raise ExecutionEngineError("Execution engine is shut down", workflow_id=workflow_id)

        workflow = self.workflow_store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id=workflow_id)

        graph = build_graph(workflow.nodes, workflow.edges)
        run_id = str(uuid.uuid4())

        self.run_recorder.create_run(run_id, workflow_id, input)
        logger.info(f"Created run {run_id} for workflow {workflow_id} ('{workflow.name}')")

        with self._lock:
            try:
                future = self._executor.submit(self._execute_run, run_id, workflow_id, graph, input)
            except RuntimeError as e:
                self._fail_run(run_id, f"Run could not be scheduled: {e}")
                raise ExecutionEngineError(
                    f"Failed to schedule run {run_id}: {e}", run_id=run_id, workflow_id=workflow_id
                )
            self._active_runs[run_id] = future

        future.add_done_callback(lambda _f: self._cleanup_run(run_id))
        return RunHandle(run_id=run_id, future=future)

    def _execute_run(self, run_id: str, workflow_id: str, graph: ExecutionGraph, input: Any) -> RunOutcome:
        with run_logging_context(run_id=run_id, workflow_id=workflow_id):
            try:
                return self.graph_executor.execute(run_id, graph, input)
            except Exception as e:
                logger.error(f"Run {run_id} aborted by unexpected error: {e}", exc_info=True)
                message = f"Execution error: {e}"
                self._fail_run(run_id, message)
                return RunOutcome(run_id=run_id, status=RunStatusEnum.FAILED, output=None, message=message)

    def _fail_run(self, run_id: str, message: str) -> None:
        try:
            self.run_recorder.update_run_terminal(run_id, RunStatusEnum.FAILED, None, message, datetime.utcnow())
        except Exception as e:
            logger.error(f"Failed to mark run {run_id} as failed: {e}")

    def _cleanup_run(self, run_id: str) -> None:
        with self._lock:
            self._active_runs.pop(run_id, None)
        logger.debug(f"Cleaned up execution resources for run {run_id}")

    def dry_run_node(self, node_type: str, config: Optional[Mapping[str, Any]] = None, input: Any = None) -> DryRunResult:
        """
        Execute a single node in isolation without persisting anything.

        The node goes through the same config parsing and handler dispatch as
        a node inside a run, so the returned output and error match what a
        one-node workflow would produce.

        Args:
            node_type: Node type to execute
            config: Raw node configuration
            input: Payload for the node; defaults to an empty object

        Returns:
            DryRunResult with success flag, error and output

        Raises:
            NodeConfigurationError: If ``node_type`` is empty
        """
        if not isinstance(node_type, str) or not node_type.strip():
            raise NodeConfigurationError("Node type is required for a dry run")

        payload = {} if input is None else input
        title = config.get("title") if isinstance(config, Mapping) else None
        node = build_node(DRY_RUN_NODE_ID, node_type.strip(), config, title if isinstance(title, str) else "")

        logger.info(f"Dry-running {node.type} node")
        result = self.registry.dispatch(node, payload)
        return DryRunResult(success=not result.failed, error=result.error or None, output=result.output)

    def trigger_webhook(self, event_type: str, payload: Any) -> Optional[str]:
        """
        Start the first active workflow whose Jira trigger accepts ``event_type``.

        A ``jira_webhook`` node matches when its ``event_filter`` is empty or
        equal to the event type. Workflows are considered in store order and
        at most one run is started.

        Returns:
            The started run's ID, or None when no workflow matched
        """
        for workflow in self.workflow_store.list_workflows(status=WorkflowStatusEnum.ACTIVE.value):
            if not self._has_matching_trigger(workflow.nodes, event_type):
                continue
            logger.info(f"Triggering workflow '{workflow.name}' ({workflow.id}) from Jira event {event_type}")
            return self.start_run(workflow.id, payload)

        logger.info(f"No active workflow listens for Jira event {event_type}")
        return None

    @staticmethod
    def _has_matching_trigger(nodes: List[Any], event_type: str) -> bool:
        for node in nodes:
            if not isinstance(node, Mapping) or node.get("type") != NodeType.JIRA_WEBHOOK.value:
                continue
            data = node.get("data")
            if data is None:
                data = node.get("config")
            event_filter = parse_node_config(NodeType.JIRA_WEBHOOK.value, data).event_filter
            if not event_filter or event_filter == event_type:
                return True
        return False

    def get_active_runs(self) -> List[str]:
        """Return the IDs of runs that have not finished yet."""
        with self._lock:
            return list(self._active_runs.keys())

    def is_run_active(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._active_runs

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting runs and, by default, wait for running ones to finish."""
        self._shutdown = True
        self._executor.shutdown(wait=wait)
        logger.info("ExecutionEngine shutdown completed")
