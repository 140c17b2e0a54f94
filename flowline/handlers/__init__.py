"""Node handlers, one per node type."""

from typing import Dict

from ..models.nodes import NodeType
from .base import HandlerContext, NodeHandler
from .http_request import execute_http_request
from .jira import execute_jira_create_issue
from .passthrough import execute_delay, execute_passthrough
from .slack import execute_slack_message


def builtin_handlers() -> Dict[str, NodeHandler]:
    """Return the handler table for every node type the editor knows about."""
    return {
        NodeType.START.value: execute_passthrough,
        NodeType.JIRA_WEBHOOK.value: execute_passthrough,
        NodeType.HTTP_REQUEST.value: execute_http_request,
        NodeType.JIRA_CREATE_ISSUE.value: execute_jira_create_issue,
        NodeType.SLACK_MESSAGE.value: execute_slack_message,
        NodeType.DELAY.value: execute_delay,
        NodeType.CONDITION.value: execute_passthrough,
        NodeType.TRANSFORM.value: execute_passthrough,
        NodeType.END.value: execute_passthrough,
    }


__all__ = [
    "HandlerContext",
    "NodeHandler",
    "builtin_handlers",
    "execute_http_request",
    "execute_jira_create_issue",
    "execute_slack_message",
    "execute_delay",
    "execute_passthrough",
]
