"""Outbound HTTP request node."""

import json
from typing import Any, Dict, Optional

import requests

from ..core.logging import get_logger
from ..core.templating import flatten_payload, substitute
from ..models.core import NodeResult
from ..models.nodes import HttpRequestConfig
from .base import JSON_CONTENT_TYPE, HandlerContext, parse_response_body

logger = get_logger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def _build_headers(config: HttpRequestConfig) -> Dict[str, str]:
    headers = {"Content-Type": JSON_CONTENT_TYPE}
    headers.update(config.extra_headers())

    auth_type = config.auth_type.strip().lower()
    if auth_type == "bearer" and config.auth_token:
        headers["Authorization"] = f"Bearer {config.auth_token}"
    elif auth_type == "api_key" and config.api_key_header and config.api_key_value:
        headers[config.api_key_header] = config.api_key_value
    return headers


def _build_auth(config: HttpRequestConfig) -> Optional[tuple]:
    if config.auth_type.strip().lower() == "basic" and config.auth_username:
        return (config.auth_username, config.auth_password)
    return None


def _build_body(config: HttpRequestConfig, payload: Any, values: Dict[str, Any]) -> Optional[str]:
    if config.method not in BODY_METHODS:
        return None
    if config.body:
        return substitute(config.body, values)
    return json.dumps(payload, default=str)


def execute_http_request(config: HttpRequestConfig, payload: Any, context: HandlerContext) -> NodeResult:
    """
    Send the configured HTTP request.

    Args:
        config: Parsed node configuration
        payload: Current workflow payload; its top-level keys feed the URL and
            body templates, and it is sent as the body when no template is set
        context: Handler context supplying the default timeout

    Returns:
        NodeResult with ``{"status_code", "body"}`` as output. A status of 400
        or above is reported as an error while the output is still returned.
    """
    if not config.url.strip():
        return NodeResult.fail("HTTP Request node: URL is required")

    values = flatten_payload(payload)
    url = substitute(config.url, values)
    timeout = config.timeout if config.timeout is not None else context.http_timeout

    logger.debug(f"HTTP request node: {config.method} {url} (timeout {timeout}s)")

    try:
        response = requests.request(
            config.method,
            url,
            headers=_build_headers(config),
            data=_build_body(config, payload, values),
            auth=_build_auth(config),
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.warning(f"HTTP request to {url} failed: {e}")
        return NodeResult.fail(f"HTTP request failed: {e}")

    output = {
        "status_code": response.status_code,
        "body": parse_response_body(response),
    }

    if response.status_code >= 400:
        return NodeResult.fail(f"HTTP {response.status_code}: {response.text}", output=output)

    return NodeResult.ok(output)
