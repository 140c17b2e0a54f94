"""Breadth-first graph executor."""

import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Optional, Set

from ..models.core import NodeLogStatusEnum, NodeResult, RunOutcome, RunStatusEnum
from .graph_builder import ExecutionGraph, GraphNode
from .handler_registry import HandlerRegistry
from .interfaces import RunRecorder
from .logging import get_logger, log_with_context

logger = get_logger(__name__)


class GraphExecutor:
    """Walks an ExecutionGraph breadth-first, threading one payload through the nodes.

    Each node's output becomes the input of the next node dequeued. Every
    node runs at most once per run; on fan-in the first visit wins and later
    arrivals are ignored. The first failing node stops the run.

    Recorder failures are logged and never interrupt traversal.
    """

    def __init__(self, recorder: RunRecorder, registry: HandlerRegistry):
        self.recorder = recorder
        self.registry = registry

    def _record(self, operation: str, call: Callable[[], None], run_id: str) -> None:
        try:
            call()
        except Exception as e:
            logger.error(f"Run recorder {operation} failed for run {run_id}: {e}", exc_info=True)

    def _finish(self, run_id: str, status: RunStatusEnum, output: Any, message: str) -> None:
        finished_at = datetime.utcnow()
        self._record(
            "update_run_terminal",
            lambda: self.recorder.update_run_terminal(run_id, status, output, message, finished_at),
            run_id
        )

    def execute_node(self, run_id: str, node: GraphNode, payload: Any) -> NodeResult:
        """Execute one node, writing its started and terminal log rows."""
        log_id = str(uuid.uuid4())
        self._record(
            "create_node_log",
            lambda: self.recorder.create_node_log(log_id, run_id, node.id, node.name, node.type, payload),
            run_id
        )

        log_with_context(logger, logging.DEBUG, f"Executing node '{node.id}' ({node.type})",
                         run_id=run_id, node_id=node.id, node_type=node.type)
        result = self.registry.dispatch(node, payload)

        if result.failed:
            status = NodeLogStatusEnum.FAILED
        else:
            status = NodeLogStatusEnum.COMPLETED
        self._record(
            "update_node_log",
            lambda: self.recorder.update_node_log(log_id, status, result.output, result.error),
            run_id
        )
        return result

    def execute(self, run_id: str, graph: ExecutionGraph, initial_payload: Any) -> RunOutcome:
        """
        Run the graph from its entry node.

        Args:
            run_id: ID of the run row already created by the caller
            graph: Graph produced by ``build_graph``
            initial_payload: Payload handed to the entry node

        Returns:
            RunOutcome describing the terminal state, which is also written
            to the run recorder
        """
        current_payload = initial_payload
        visited: Set[str] = set()
        queue = deque([graph.entry_node_id] if graph.entry_node_id is not None else [])

        while queue:
            node_id = queue.popleft()
            if node_id in visited:
                continue
            visited.add(node_id)

            node: Optional[GraphNode] = graph.node_index.get(node_id)
            if node is None:
                logger.debug(f"Run {run_id}: skipping edge target '{node_id}' which is not in the graph")
                continue

            result = self.execute_node(run_id, node, current_payload)

            if result.failed:
                message = f"Node '{node.name}' ({node.type}) failed: {result.error}"
                logger.warning(f"Run {run_id} failed: {message}")
                self._finish(run_id, RunStatusEnum.FAILED, result.output, message)
                return RunOutcome(
                    run_id=run_id,
                    status=RunStatusEnum.FAILED,
                    output=result.output,
                    message=message,
                    nodes_executed=len(visited)
                )

            current_payload = result.output
            queue.extend(graph.successors(node_id))

        message = f"Workflow completed successfully. {len(visited)} nodes executed."
        logger.info(f"Run {run_id}: {message}")
        self._finish(run_id, RunStatusEnum.SUCCESS, current_payload, message)
        return RunOutcome(
            run_id=run_id,
            status=RunStatusEnum.SUCCESS,
            output=current_payload,
            message=message,
            nodes_executed=len(visited)
        )
