"""Jira Cloud: the 'create issue' node and webhook registration."""

import uuid
from typing import Any, Dict, List, Optional

import requests

from ..core.exceptions import IntegrationError
from ..core.logging import get_logger
from ..core.templating import flatten_payload, substitute
from ..models.core import NodeResult
from ..models.nodes import JiraCreateIssueConfig
from .base import DEFAULT_JIRA_TIMEOUT, JSON_CONTENT_TYPE, HandlerContext, config_str, parse_response_body

logger = get_logger(__name__)

DEFAULT_SUMMARY = "Issue created by workflow"
DEFAULT_ISSUE_TYPE = "Task"
EMPTY_DESCRIPTION = "No description provided"
DEFAULT_WEBHOOK_EVENTS = ("jira:issue_created", "jira:issue_updated", "jira:issue_deleted")
WEBHOOK_NAME_PREFIX = "flowline"


def text_to_adf(text: str) -> Dict[str, Any]:
    """Convert plain text to an Atlassian Document Format document, one paragraph per line."""
    if not text:
        text = EMPTY_DESCRIPTION
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": line}]}
            for line in text.split("\n")
        ],
    }


def build_issue_payload(config: JiraCreateIssueConfig, values: Dict[str, Any]) -> Dict[str, Any]:
    """Build the request body for ``POST /rest/api/3/issue``."""
    summary = substitute(config.summary or DEFAULT_SUMMARY, values)
    description = substitute(config.description, values)

    fields: Dict[str, Any] = {
        "project": {"key": config.project_key},
        "summary": summary,
        "description": text_to_adf(description),
        "issuetype": {"name": config.issue_type or DEFAULT_ISSUE_TYPE},
    }
    if config.priority:
        fields["priority"] = {"name": config.priority}
    if config.assignee:
        fields["assignee"] = {"accountId": config.assignee}
    if config.labels:
        fields["labels"] = list(config.labels)

    return {"fields": fields}


def execute_jira_create_issue(config: JiraCreateIssueConfig, payload: Any, context: HandlerContext) -> NodeResult:
    """Create a Jira issue using the stored ``jira`` integration credentials."""
    jira_config = context.integration_config("jira")
    if jira_config is None:
        return NodeResult.fail("Jira integration not configured. Go to Settings → Integrations to set it up.")

    domain = config_str(jira_config, "domain")
    email = config_str(jira_config, "email")
    api_token = config_str(jira_config, "api_token")
    if not domain or not email or not api_token:
        return NodeResult.fail("Jira integration config incomplete: need domain, email, api_token")

    if not config.project_key:
        return NodeResult.fail("Jira Create Issue: project_key is required")

    issue = build_issue_payload(config, flatten_payload(payload))
    url = f"https://{domain}/rest/api/3/issue"

    try:
        response = requests.request(
            "POST",
            url,
            json=issue,
            auth=(email, api_token),
            headers={"Content-Type": JSON_CONTENT_TYPE, "Accept": JSON_CONTENT_TYPE},
            timeout=context.jira_timeout,
        )
    except requests.RequestException as e:
        logger.warning(f"Jira API call to {domain} failed: {e}")
        return NodeResult.fail(f"Jira API call failed: {e}")

    body = parse_response_body(response)
    if response.status_code >= 400:
        return NodeResult.fail(f"Jira API error {response.status_code}: {response.text}", output=body)

    logger.info(f"Jira issue created in project {config.project_key}")
    return NodeResult.ok(body)


def register_jira_webhook(
    domain: str,
    email: str,
    api_token: str,
    webhook_url: str,
    events: Optional[List[str]] = None,
    jql_filter: str = "",
    timeout: float = DEFAULT_JIRA_TIMEOUT
) -> Dict[str, Any]:
    """
    Register ``webhook_url`` as a webhook on a Jira Cloud site.

    Args:
        domain: Jira site host, e.g. ``acme.atlassian.net``
        email: Account email for basic auth
        api_token: Account API token
        webhook_url: Callback Jira should POST events to
        events: Event names; the issue created/updated/deleted events if empty
        jql_filter: Optional JQL restricting which issues fire the webhook
        timeout: Request timeout in seconds

    Returns:
        The webhook's generated name, its Jira id and the registered events

    Raises:
        IntegrationError: If Jira cannot be reached or rejects the registration
    """
    events = list(events or DEFAULT_WEBHOOK_EVENTS)
    name = f"{WEBHOOK_NAME_PREFIX}-{uuid.uuid4().hex[:8]}"
    registration: Dict[str, Any] = {"name": name, "url": webhook_url, "events": events}
    if jql_filter:
        registration["filters"] = {"issue-related-events-section": jql_filter}

    try:
        response = requests.request(
            "POST",
            f"https://{domain}/rest/webhooks/1.0/webhook",
            json=registration,
            auth=(email, api_token),
            headers={"Content-Type": JSON_CONTENT_TYPE, "Accept": JSON_CONTENT_TYPE},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise IntegrationError(f"Failed to call Jira API: {e}", integration="jira", domain=domain)

    if response.status_code >= 400:
        raise IntegrationError(
            f"Jira API returned {response.status_code}",
            integration="jira",
            http_status=response.status_code,
            details=response.text
        )

    body = parse_response_body(response)
    self_url = body.get("self") if isinstance(body, dict) else None
    webhook_id = self_url.rstrip("/").rsplit("/", 1)[-1] if isinstance(self_url, str) else ""

    logger.info(f"Jira webhook registered on {domain}: name={name}, id={webhook_id}, url={webhook_url}")
    return {"name": name, "webhook_id": webhook_id, "events": events}
