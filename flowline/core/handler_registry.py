"""Handler registry: maps node type names to handler functions."""

import inspect
from typing import Any, Dict, List, Optional

from ..handlers import builtin_handlers, execute_passthrough
from ..handlers.base import HandlerContext, NodeHandler
from ..models.core import NodeResult
from .exceptions import NodeConfigurationError
from .graph_builder import GraphNode
from .logging import get_logger

logger = get_logger(__name__)


class HandlerRegistry:
    """Dispatch table for node handlers.

    Node types without a registered handler pass their input through, so a
    workflow saved by a newer editor still runs.
    """

    def __init__(self, context: Optional[HandlerContext] = None, include_builtins: bool = True):
        """Initialize the registry.

        Args:
            context: Handler context passed to every handler. Defaults to an
                empty context with no integrations configured.
            include_builtins: Register the built-in handlers for all known node types
        """
        self.context = context or HandlerContext()
        self._handlers: Dict[str, NodeHandler] = {}
        if include_builtins:
            self._handlers.update(builtin_handlers())

    def register(self, node_type: str, handler: NodeHandler) -> None:
        """Register (or replace) the handler for a node type.

        Raises:
            NodeConfigurationError: If the type is empty or the handler is not callable
        """
        if not node_type or not node_type.strip():
            raise NodeConfigurationError("Node type cannot be empty")
        if not callable(handler):
            raise NodeConfigurationError(f"Handler for '{node_type}' must be callable", node_type=node_type)

        try:
            sig = inspect.signature(handler)
        except (ValueError, TypeError) as e:
            raise NodeConfigurationError(
                f"Cannot inspect handler signature for '{node_type}': {e}", node_type=node_type
            )
        if len(sig.parameters) < 3:
            logger.warning(f"Handler for '{node_type}' takes fewer than 3 parameters (config, payload, context)")

        node_type = node_type.strip()
        if node_type in self._handlers:
            logger.info(f"Replacing handler for node type '{node_type}'")
        self._handlers[node_type] = handler

    def get(self, node_type: str) -> NodeHandler:
        """Return the handler for a node type, or the pass-through handler."""
        return self._handlers.get(node_type, execute_passthrough)

    def is_registered(self, node_type: str) -> bool:
        return node_type in self._handlers

    def registered_types(self) -> List[str]:
        return sorted(self._handlers)

    def dispatch(self, node: GraphNode, payload: Any) -> NodeResult:
        """
        Run the handler for ``node`` against ``payload``.

        Never raises: a configuration error recorded on the node, or any
        exception escaping the handler, comes back as a failed NodeResult.

        Args:
            node: Node to execute
            payload: Current workflow payload

        Returns:
            The handler's NodeResult
        """
        if node.config_error:
            return NodeResult.fail(node.config_error)

        handler = self.get(node.type)
        try:
            result = handler(node.config, payload, self.context)
        except Exception as e:
            logger.error(f"Handler for node '{node.id}' ({node.type}) raised: {e}", exc_info=True)
            return NodeResult.fail(f"Unexpected error in {node.type} node: {e}")

        if not isinstance(result, NodeResult):
            logger.error(f"Handler for node '{node.id}' ({node.type}) returned {type(result).__name__}")
            return NodeResult.fail(
                f"Unexpected error in {node.type} node: handler returned {type(result).__name__}"
            )
        return result
