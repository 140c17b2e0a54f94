"""Slack chat.postMessage node."""

from typing import Any, Dict

import requests

from ..core.logging import get_logger
from ..core.templating import flatten_payload, substitute
from ..models.core import NodeResult
from ..models.nodes import SlackMessageConfig
from .base import JSON_CONTENT_TYPE, HandlerContext, config_str, parse_response_body

logger = get_logger(__name__)

DEFAULT_MESSAGE = "Workflow notification"


def build_message_payload(config: SlackMessageConfig, values: Dict[str, Any]) -> Dict[str, Any]:
    message: Dict[str, Any] = {
        "channel": config.channel,
        "text": substitute(config.message or DEFAULT_MESSAGE, values),
    }
    if config.username:
        message["username"] = config.username
    if config.icon_emoji:
        message["icon_emoji"] = config.icon_emoji
    if config.thread_ts:
        thread_ts = substitute(config.thread_ts, values)
        if thread_ts:
            message["thread_ts"] = thread_ts
    return message


def execute_slack_message(config: SlackMessageConfig, payload: Any, context: HandlerContext) -> NodeResult:
    """
    Post a message with the stored ``slack`` bot token.

    Slack answers HTTP 200 even for rejected calls, so success is decided by
    the ``ok`` field of the JSON response.
    """
    slack_config = context.integration_config("slack")
    if slack_config is None:
        return NodeResult.fail("Slack integration not configured. Go to Settings → Integrations to set it up.")

    bot_token = config_str(slack_config, "bot_token")
    if not bot_token:
        return NodeResult.fail("Slack integration config incomplete: need bot_token")

    if not config.channel:
        return NodeResult.fail("Slack Message node: channel is required")

    message = build_message_payload(config, flatten_payload(payload))

    try:
        response = requests.request(
            "POST",
            context.slack_api_url,
            json=message,
            headers={"Content-Type": JSON_CONTENT_TYPE, "Authorization": f"Bearer {bot_token}"},
            timeout=context.slack_timeout,
        )
    except requests.RequestException as e:
        logger.warning(f"Slack API call failed: {e}")
        return NodeResult.fail(f"Slack API call failed: {e}")

    body = parse_response_body(response)
    if not isinstance(body, dict) or body.get("ok") is not True:
        error = body.get("error", "") if isinstance(body, dict) else ""
        return NodeResult.fail(f"Slack API error: {error}", output=body)

    logger.info(f"Slack message sent to #{config.channel}")
    return NodeResult.ok(body)
