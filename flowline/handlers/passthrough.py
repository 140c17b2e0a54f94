"""Nodes that forward their input unchanged: triggers, delay and placeholders."""

import time
from typing import Any

from ..core.logging import get_logger
from ..models.core import NodeResult
from ..models.nodes import DelayConfig, NodeConfig
from .base import HandlerContext

logger = get_logger(__name__)


def execute_passthrough(config: NodeConfig, payload: Any, context: HandlerContext) -> NodeResult:
    """Return the input as output. Used for start, trigger, condition, transform and end nodes."""
    return NodeResult.ok(payload)


def execute_delay(config: DelayConfig, payload: Any, context: HandlerContext) -> NodeResult:
    """Block the worker thread for the configured duration, then pass the input through."""
    seconds = config.seconds
    logger.info(f"Delay node: waiting {seconds:g}s")
    if seconds > 0:
        time.sleep(seconds)
    return NodeResult.ok(payload)
