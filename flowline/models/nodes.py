"""Typed configuration models for each node type."""

import json
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..core.exceptions import NodeConfigurationError


class NodeType(str, Enum):
    """Node type names as saved by the editor."""
    START = "start"
    JIRA_WEBHOOK = "jira_webhook"
    HTTP_REQUEST = "http_request"
    JIRA_CREATE_ISSUE = "jira_create_issue"
    SLACK_MESSAGE = "slack_message"
    DELAY = "delay"
    CONDITION = "condition"
    TRANSFORM = "transform"
    END = "end"


ENTRY_NODE_TYPES = frozenset({NodeType.START.value, NodeType.JIRA_WEBHOOK.value})


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


class NodeConfig(BaseModel):
    """Base for node configuration models.

    Unknown keys are ignored and explicit nulls fall back to field defaults.
    """
    model_config = ConfigDict(extra='ignore', coerce_numbers_to_str=True)

    title: str = Field(default="", description="Display name of the node")

    @model_validator(mode='before')
    @classmethod
    def drop_nulls(cls, data):
        if isinstance(data, Mapping):
            return {key: value for key, value in data.items() if value is not None}
        return data

    @field_validator('title', mode='before')
    @classmethod
    def ignore_non_string_title(cls, v):
        """Titles are display-only; anything but a string or number reads as untitled."""
        if isinstance(v, bool) or not isinstance(v, (str, int, float)):
            return ""
        return v


class PassThroughConfig(NodeConfig):
    """Configuration for nodes that forward their input unchanged."""
    model_config = ConfigDict(extra='allow', coerce_numbers_to_str=True)


class JiraWebhookConfig(NodeConfig):
    """Trigger node fired by inbound Jira webhook events."""
    event_filter: str = Field(default="", description="Only fire for this webhookEvent; empty matches all")

    @field_validator('event_filter', mode='before')
    @classmethod
    def ignore_non_string_filter(cls, v):
        return v if isinstance(v, str) else ""


class HttpRequestConfig(NodeConfig):
    """Configuration for outbound HTTP request nodes."""
    url: str = Field(default="", description="Request URL, may contain {{key}} placeholders")
    method: str = Field(default="GET", description="HTTP method")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    headers_json: str = Field(default="", description="Extra request headers as a JSON object string")
    auth_type: str = Field(default="", description="One of bearer, basic, api_key")
    auth_token: str = ""
    auth_username: str = ""
    auth_password: str = ""
    api_key_header: str = ""
    api_key_value: str = ""
    body: str = Field(default="", description="Body template for POST/PUT/PATCH")
    timeout: Optional[float] = Field(default=None, description="Timeout in seconds")

    @field_validator('method', mode='before')
    @classmethod
    def normalize_method(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or "GET"
        return v

    @field_validator('headers', mode='before')
    @classmethod
    def keep_string_headers(cls, v):
        """Headers with non-string values are dropped."""
        if isinstance(v, Mapping):
            return {str(k): val for k, val in v.items() if isinstance(val, str)}
        return v

    @field_validator('body', mode='before')
    @classmethod
    def encode_structured_body(cls, v):
        if isinstance(v, (dict, list)):
            return json.dumps(v)
        return v

    @field_validator('timeout', mode='before')
    @classmethod
    def parse_timeout(cls, v):
        """Numeric strings are accepted; anything unusable means 'use the default'."""
        seconds = _to_float(v)
        if seconds is None or seconds <= 0:
            return None
        return seconds

    def extra_headers(self) -> Dict[str, str]:
        """Merge ``headers_json`` and ``headers``; the mapping wins on conflicts."""
        merged: Dict[str, str] = {}
        if self.headers_json.strip():
            try:
                parsed = json.loads(self.headers_json)
            except ValueError:
                parsed = None
            if isinstance(parsed, dict):
                merged.update({str(k): str(v) for k, v in parsed.items()})
        merged.update(self.headers)
        return merged


class JiraCreateIssueConfig(NodeConfig):
    """Configuration for Jira 'create issue' nodes."""
    project_key: str = ""
    summary: str = ""
    description: str = ""
    issue_type: str = ""
    priority: str = ""
    assignee: str = ""
    labels: List[str] = Field(default_factory=list)

    @field_validator('labels', mode='before')
    @classmethod
    def split_labels(cls, v):
        """Accept a comma-separated string or a list; trim and drop empties."""
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, (list, tuple)):
            return [str(item).strip() for item in v if str(item).strip()]
        return v


class SlackMessageConfig(NodeConfig):
    """Configuration for Slack message nodes."""
    channel: str = ""
    message: str = ""
    username: str = ""
    icon_emoji: str = ""
    thread_ts: str = ""


DELAY_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class DelayConfig(NodeConfig):
    """Configuration for delay nodes."""
    delay: float = Field(default=1.0, description="Amount of time to wait")
    delay_unit: str = Field(default="ms", description="ms, s, m or h")

    @field_validator('delay', mode='before')
    @classmethod
    def parse_delay(cls, v):
        amount = _to_float(v)
        if amount is None or amount < 0:
            return 1.0
        return amount

    @field_validator('delay_unit', mode='before')
    @classmethod
    def normalize_unit(cls, v):
        if isinstance(v, str) and v.strip().lower() in DELAY_UNIT_SECONDS:
            return v.strip().lower()
        return "ms"

    @property
    def seconds(self) -> float:
        return self.delay * DELAY_UNIT_SECONDS[self.delay_unit]


NODE_CONFIG_MODELS: Dict[str, Type[NodeConfig]] = {
    NodeType.JIRA_WEBHOOK.value: JiraWebhookConfig,
    NodeType.HTTP_REQUEST.value: HttpRequestConfig,
    NodeType.JIRA_CREATE_ISSUE.value: JiraCreateIssueConfig,
    NodeType.SLACK_MESSAGE.value: SlackMessageConfig,
    NodeType.DELAY.value: DelayConfig,
}

# Entry and pass-through nodes: their config is never rejected
LENIENT_CONFIG_MODELS = frozenset({PassThroughConfig, JiraWebhookConfig})


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "config"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


def parse_node_config(node_type: str, raw: Any) -> NodeConfig:
    """
    Parse a raw configuration mapping into the typed model for ``node_type``.

    Types without a dedicated model (start, condition, transform, end and
    anything unknown) get a ``PassThroughConfig``. Those and ``jira_webhook``
    never fail to parse: a ``data`` value that is not a mapping reads as empty.

    Args:
        node_type: Node type string
        raw: The node's ``data`` mapping; ``None`` is treated as empty

    Returns:
        The parsed configuration model

    Raises:
        NodeConfigurationError: If an action node's mapping does not fit its model
    """
    model = NODE_CONFIG_MODELS.get(node_type, PassThroughConfig)
    if raw is None or (model in LENIENT_CONFIG_MODELS and not isinstance(raw, Mapping)):
        raw = {}
    if not isinstance(raw, Mapping):
        raise NodeConfigurationError(
            f"Invalid {node_type} configuration: expected an object, got {type(raw).__name__}",
            node_type=node_type
        )

    try:
        return model.model_validate(dict(raw))
    except ValidationError as e:
        raise NodeConfigurationError(
            f"Invalid {node_type} configuration: {_format_validation_error(e)}",
            node_type=node_type
        )
