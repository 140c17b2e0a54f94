"""Shared pieces for node handlers."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from ..core.interfaces import IntegrationConfigProvider
from ..models.core import NodeResult
from ..models.nodes import NodeConfig

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_JIRA_TIMEOUT = 30.0
DEFAULT_SLACK_TIMEOUT = 15.0
DEFAULT_SLACK_API_URL = "https://slack.com/api/chat.postMessage"

JSON_CONTENT_TYPE = "application/json"


@dataclass
class HandlerContext:
    """Everything a handler may need beyond its own config and input."""
    integrations: Optional[IntegrationConfigProvider] = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    jira_timeout: float = DEFAULT_JIRA_TIMEOUT
    slack_timeout: float = DEFAULT_SLACK_TIMEOUT
    slack_api_url: str = DEFAULT_SLACK_API_URL

    @classmethod
    def from_config(cls, config, integrations: Optional[IntegrationConfigProvider] = None) -> "HandlerContext":
        """Build a context from an ``AppConfig``."""
        return cls(
            integrations=integrations,
            http_timeout=config.http_timeout,
            jira_timeout=config.jira_timeout,
            slack_timeout=config.slack_timeout,
            slack_api_url=config.slack_api_url,
        )

    def integration_config(self, integration_type: str) -> Optional[Dict[str, Any]]:
        """Return the stored config for an integration, or None if absent."""
        if self.integrations is None:
            return None
        return self.integrations.get_config(integration_type)


# A handler takes the parsed node config, the current payload and the context.
NodeHandler = Callable[[NodeConfig, Any, HandlerContext], NodeResult]


def parse_response_body(response: requests.Response) -> Any:
    """Return the response body as parsed JSON, or the raw text if it isn't JSON."""
    text = response.text
    if not text:
        return None
    try:
        return response.json()
    except ValueError:
        return text


def config_str(config: Dict[str, Any], key: str) -> str:
    """Read a string value from an integration config; anything else is empty."""
    value = config.get(key)
    return value.strip() if isinstance(value, str) else ""
