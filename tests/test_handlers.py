"""Tests for node handlers and the handler registry."""

import json
from unittest.mock import patch

import pytest
import requests

from flowline.core.graph_builder import build_node
from flowline.core.handler_registry import HandlerRegistry
from flowline.core.exceptions import IntegrationError, NodeConfigurationError
from flowline.handlers import execute_delay, execute_http_request, execute_jira_create_issue, execute_slack_message
from flowline.handlers.base import HandlerContext
from flowline.handlers.jira import register_jira_webhook, text_to_adf
from flowline.models.core import NodeResult
from flowline.models.nodes import (
    DelayConfig,
    HttpRequestConfig,
    JiraCreateIssueConfig,
    SlackMessageConfig,
)
from flowline.storage.memory import InMemoryIntegrationStore

from conftest import mock_response

JIRA_CREDENTIALS = {"domain": "acme.atlassian.net", "email": "bot@acme.test", "api_token": "tok"}


@pytest.fixture
def context():
    return HandlerContext(integrations=InMemoryIntegrationStore())


class TestHttpRequestHandler:
    """Test cases for the http_request handler."""

    def test_url_is_required(self, context):
        result = execute_http_request(HttpRequestConfig(), {}, context)
        assert result.error == "HTTP Request node: URL is required"
        assert result.output is None

    @patch("requests.request")
    def test_404_returns_error_and_body(self, mock_request, context):
        mock_request.return_value = mock_response(404, {"error": "nf"})
        config = HttpRequestConfig(url="https://example.test/{{id}}", method="GET")

        result = execute_http_request(config, {"id": "42"}, context)

        args, kwargs = mock_request.call_args
        assert args == ("GET", "https://example.test/42")
        assert result.output == {"status_code": 404, "body": {"error": "nf"}}
        assert result.error == 'HTTP 404: {"error":"nf"}'

    @patch("requests.request")
    def test_success_with_text_body(self, mock_request, context):
        mock_request.return_value = mock_response(200, text="plain text")
        result = execute_http_request(HttpRequestConfig(url="https://example.test"), {}, context)
        assert result.error == ""
        assert result.output == {"status_code": 200, "body": "plain text"}

    @patch("requests.request")
    def test_get_sends_no_body_and_default_headers(self, mock_request, context):
        mock_request.return_value = mock_response(200, {})
        execute_http_request(HttpRequestConfig(url="https://example.test"), {"a": 1}, context)

        kwargs = mock_request.call_args.kwargs
        assert kwargs["data"] is None
        assert kwargs["headers"]["Content-Type"] == "application/json"
        assert kwargs["timeout"] == 30.0
        assert kwargs["auth"] is None

    @patch("requests.request")
    def test_post_forwards_input_when_no_body_template(self, mock_request, context):
        mock_request.return_value = mock_response(201, {"ok": True})
        payload = {"name": "x", "n": 2}
        execute_http_request(HttpRequestConfig(url="https://example.test", method="post"), payload, context)

        args, kwargs = mock_request.call_args
        assert args[0] == "POST"
        assert json.loads(kwargs["data"]) == payload

    @patch("requests.request")
    def test_post_uses_templated_body(self, mock_request, context):
        mock_request.return_value = mock_response(200, {})
        config = HttpRequestConfig(url="https://example.test", method="PUT", body='{"who": "{{name}}"}')
        execute_http_request(config, {"name": "ada"}, context)
        assert mock_request.call_args.kwargs["data"] == '{"who": "ada"}'

    @patch("requests.request")
    def test_auth_variants(self, mock_request, context):
        mock_request.return_value = mock_response(200, {})

        execute_http_request(
            HttpRequestConfig(url="https://e.test", auth_type="bearer", auth_token="abc"), {}, context
        )
        assert mock_request.call_args.kwargs["headers"]["Authorization"] == "Bearer abc"

        execute_http_request(
            HttpRequestConfig(url="https://e.test", auth_type="basic", auth_username="u", auth_password="p"),
            {}, context
        )
        assert mock_request.call_args.kwargs["auth"] == ("u", "p")

        execute_http_request(
            HttpRequestConfig(url="https://e.test", auth_type="api_key", api_key_header="X-Key", api_key_value="k"),
            {}, context
        )
        assert mock_request.call_args.kwargs["headers"]["X-Key"] == "k"

    @patch("requests.request")
    def test_custom_headers_override_content_type(self, mock_request, context):
        mock_request.return_value = mock_response(200, {})
        config = HttpRequestConfig(url="https://e.test", headers={"Content-Type": "text/plain"})
        execute_http_request(config, {}, context)
        assert mock_request.call_args.kwargs["headers"]["Content-Type"] == "text/plain"

    @patch("requests.request")
    def test_node_timeout_overrides_default(self, mock_request, context):
        mock_request.return_value = mock_response(200, {})
        execute_http_request(HttpRequestConfig(url="https://e.test", timeout="5"), {}, context)
        assert mock_request.call_args.kwargs["timeout"] == 5.0

    @patch("requests.request")
    def test_transport_error(self, mock_request, context):
        mock_request.side_effect = requests.ConnectionError("connection refused")
        result = execute_http_request(HttpRequestConfig(url="https://e.test"), {}, context)
        assert result.error == "HTTP request failed: connection refused"
        assert result.output is None


class TestJiraHandler:
    """Test cases for the jira_create_issue handler."""

    def test_missing_integration(self, context):
        result = execute_jira_create_issue(JiraCreateIssueConfig(project_key="OPS"), {}, context)
        assert result.error == "Jira integration not configured. Go to Settings → Integrations to set it up."

    def test_incomplete_integration(self, context):
        context.integrations.upsert_integration("jira", {"domain": "acme.atlassian.net"})
        result = execute_jira_create_issue(JiraCreateIssueConfig(project_key="OPS"), {}, context)
        assert result.error == "Jira integration config incomplete: need domain, email, api_token"

    def test_project_key_required(self, context):
        context.integrations.upsert_integration("jira", JIRA_CREDENTIALS)
        result = execute_jira_create_issue(JiraCreateIssueConfig(), {}, context)
        assert result.error == "Jira Create Issue: project_key is required"

    @patch("requests.request")
    def test_creates_issue(self, mock_request, context):
        context.integrations.upsert_integration("jira", JIRA_CREDENTIALS)
        mock_request.return_value = mock_response(201, {"id": "10001", "key": "OPS-7"})
        config = JiraCreateIssueConfig(
            project_key="OPS",
            summary="Deploy {{service}}",
            description="Line one\nService: {{service}}",
            priority="High",
            assignee="acc-1",
            labels="deploy, auto"
        )

        result = execute_jira_create_issue(config, {"service": "billing"}, context)

        assert result.error == ""
        assert result.output == {"id": "10001", "key": "OPS-7"}
        args, kwargs = mock_request.call_args
        assert args == ("POST", "https://acme.atlassian.net/rest/api/3/issue")
        assert kwargs["auth"] == ("bot@acme.test", "tok")
        assert kwargs["timeout"] == 30.0
        fields = kwargs["json"]["fields"]
        assert fields["project"] == {"key": "OPS"}
        assert fields["summary"] == "Deploy billing"
        assert fields["issuetype"] == {"name": "Task"}
        assert fields["priority"] == {"name": "High"}
        assert fields["assignee"] == {"accountId": "acc-1"}
        assert fields["labels"] == ["deploy", "auto"]
        assert [p["content"][0]["text"] for p in fields["description"]["content"]] == [
            "Line one", "Service: billing"
        ]

    @patch("requests.request")
    def test_defaults_for_summary_and_description(self, mock_request, context):
        context.integrations.upsert_integration("jira", JIRA_CREDENTIALS)
        mock_request.return_value = mock_response(201, {"key": "OPS-1"})
        execute_jira_create_issue(JiraCreateIssueConfig(project_key="OPS"), {}, context)

        fields = mock_request.call_args.kwargs["json"]["fields"]
        assert fields["summary"] == "Issue created by workflow"
        assert fields["description"]["content"][0]["content"][0]["text"] == "No description provided"
        assert "labels" not in fields

    @patch("requests.request")
    def test_api_error(self, mock_request, context):
        context.integrations.upsert_integration("jira", JIRA_CREDENTIALS)
        mock_request.return_value = mock_response(400, {"errors": {"project": "invalid"}})
        result = execute_jira_create_issue(JiraCreateIssueConfig(project_key="NOPE"), {}, context)
        assert result.error == 'Jira API error 400: {"errors":{"project":"invalid"}}'
        assert result.output == {"errors": {"project": "invalid"}}

    @patch("requests.request")
    def test_transport_error(self, mock_request, context):
        context.integrations.upsert_integration("jira", JIRA_CREDENTIALS)
        mock_request.side_effect = requests.Timeout("timed out")
        result = execute_jira_create_issue(JiraCreateIssueConfig(project_key="OPS"), {}, context)
        assert result.error == "Jira API call failed: timed out"


class TestTextToAdf:
    """Test cases for the Atlassian Document Format conversion."""

    def test_one_paragraph_per_line(self):
        doc = text_to_adf("a\nb")
        assert doc == {
            "type": "doc",
            "version": 1,
            "content": [
                {"type": "paragraph", "content": [{"type": "text", "text": "a"}]},
                {"type": "paragraph", "content": [{"type": "text", "text": "b"}]},
            ],
        }


class TestSlackHandler:
    """Test cases for the slack_message handler."""

    def test_missing_integration(self, context):
        result = execute_slack_message(SlackMessageConfig(channel="#ops"), {}, context)
        assert result.error.startswith("Slack integration not configured.")

    def test_missing_token(self, context):
        context.integrations.upsert_integration("slack", {"bot_token": ""})
        result = execute_slack_message(SlackMessageConfig(channel="#ops"), {}, context)
        assert result.error == "Slack integration config incomplete: need bot_token"

    def test_channel_required(self, context):
        context.integrations.upsert_integration("slack", {"bot_token": "xoxb-1"})
        result = execute_slack_message(SlackMessageConfig(), {}, context)
        assert result.error == "Slack Message node: channel is required"

    @patch("requests.request")
    def test_sends_templated_message(self, mock_request, context):
        context.integrations.upsert_integration("slack", {"bot_token": "xoxb-1"})
        mock_request.return_value = mock_response(200, {"ok": True, "ts": "1.2"})
        config = SlackMessageConfig(channel="#ops", message="Issue {{key}} created", icon_emoji=":robot:",
                                    thread_ts="{{thread}}")

        result = execute_slack_message(config, {"key": "OPS-7", "thread": ""}, context)

        assert result.error == ""
        assert result.output == {"ok": True, "ts": "1.2"}
        args, kwargs = mock_request.call_args
        assert args == ("POST", "https://slack.com/api/chat.postMessage")
        assert kwargs["headers"]["Authorization"] == "Bearer xoxb-1"
        assert kwargs["timeout"] == 15.0
        assert kwargs["json"] == {"channel": "#ops", "text": "Issue OPS-7 created", "icon_emoji": ":robot:"}

    @patch("requests.request")
    def test_default_message(self, mock_request, context):
        context.integrations.upsert_integration("slack", {"bot_token": "xoxb-1"})
        mock_request.return_value = mock_response(200, {"ok": True})
        execute_slack_message(SlackMessageConfig(channel="#ops"), {}, context)
        assert mock_request.call_args.kwargs["json"]["text"] == "Workflow notification"

    @patch("requests.request")
    def test_ok_false_is_an_error(self, mock_request, context):
        context.integrations.upsert_integration("slack", {"bot_token": "xoxb-1"})
        mock_request.return_value = mock_response(200, {"ok": False, "error": "channel_not_found"})
        result = execute_slack_message(SlackMessageConfig(channel="#nope"), {}, context)
        assert result.error == "Slack API error: channel_not_found"
        assert result.output == {"ok": False, "error": "channel_not_found"}

    @patch("requests.request")
    def test_unparseable_response_is_an_error(self, mock_request, context):
        context.integrations.upsert_integration("slack", {"bot_token": "xoxb-1"})
        mock_request.return_value = mock_response(502, text="<html>bad gateway</html>")
        result = execute_slack_message(SlackMessageConfig(channel="#ops"), {}, context)
        assert result.error == "Slack API error: "


class TestDelayHandler:
    """Test cases for the delay handler."""

    @patch("time.sleep")
    def test_sleeps_and_passes_through(self, mock_sleep, context):
        payload = {"a": 1}
        result = execute_delay(DelayConfig(delay=2, delay_unit="s"), payload, context)
        mock_sleep.assert_called_once_with(2.0)
        assert result.output == payload
        assert result.error == ""

    @patch("time.sleep")
    def test_default_is_one_millisecond(self, mock_sleep, context):
        execute_delay(DelayConfig(), None, context)
        assert mock_sleep.call_count == 1
        assert mock_sleep.call_args.args[0] == pytest.approx(0.001)


class TestHandlerRegistry:
    """Test cases for HandlerRegistry dispatch."""

    def test_passthrough_types(self):
        registry = HandlerRegistry()
        for node_type in ("start", "jira_webhook", "condition", "transform", "end"):
            result = registry.dispatch(build_node("n", node_type, {}), {"x": 1})
            assert result == NodeResult(output={"x": 1}, error="")

    def test_passthrough_types_tolerate_odd_config(self):
        registry = HandlerRegistry()
        odd_configs = [{"title": {"en": "Start"}}, {"title": ["End"]}, "not-a-mapping", {"event_filter": ["a"]}]
        for node_type in ("start", "jira_webhook", "end", "custom_future_node"):
            for config in odd_configs:
                result = registry.dispatch(build_node("n", node_type, config), {"x": 1})
                assert result == NodeResult(output={"x": 1}, error="")

    def test_unknown_type_passes_through(self):
        registry = HandlerRegistry()
        assert not registry.is_registered("mystery")
        result = registry.dispatch(build_node("n", "mystery", {"foo": "bar"}), [1, 2])
        assert result.output == [1, 2]
        assert result.error == ""

    def test_config_error_fails_node(self):
        registry = HandlerRegistry()
        result = registry.dispatch(build_node("n", "http_request", {"url": ["x"]}), {})
        assert result.error.startswith("Invalid http_request configuration")
        assert result.output is None

    def test_handler_exception_becomes_error(self):
        registry = HandlerRegistry()

        def explode(config, payload, context):
            raise RuntimeError("boom")

        registry.register("explode", explode)
        result = registry.dispatch(build_node("n", "explode", {}), {})
        assert result.error == "Unexpected error in explode node: boom"

    def test_register_replaces_builtin(self):
        registry = HandlerRegistry()
        registry.register("end", lambda config, payload, context: NodeResult.ok("done"))
        assert registry.dispatch(build_node("n", "end", {}), {}).output == "done"

    def test_register_rejects_bad_input(self):
        registry = HandlerRegistry()
        with pytest.raises(NodeConfigurationError):
            registry.register("", lambda c, p, x: NodeResult.ok(p))
        with pytest.raises(NodeConfigurationError):
            registry.register("thing", "not callable")

    def test_context_is_passed_to_handlers(self):
        seen = {}
        context = HandlerContext(http_timeout=9.0)
        registry = HandlerRegistry(context)

        def capture(config, payload, ctx):
            seen["ctx"] = ctx
            return NodeResult.ok(payload)

        registry.register("capture", capture)
        registry.dispatch(build_node("n", "capture", {}), {})
        assert seen["ctx"] is context


class TestRegisterJiraWebhook:
    """Test cases for registering a webhook on a Jira site."""

    @patch("requests.request")
    def test_registers_with_default_events(self, mock_request):
        mock_request.return_value = mock_response(
            201, {"self": "https://acme.atlassian.net/rest/webhooks/1.0/webhook/42", "name": "x"}
        )

        registered = register_jira_webhook(
            "acme.atlassian.net", "bot@acme.test", "tok", "https://flowline.test/webhooks/jira", timeout=7.0
        )

        assert registered["webhook_id"] == "42"
        assert registered["name"].startswith("flowline-")
        assert registered["events"] == ["jira:issue_created", "jira:issue_updated", "jira:issue_deleted"]
        args, kwargs = mock_request.call_args
        assert args == ("POST", "https://acme.atlassian.net/rest/webhooks/1.0/webhook")
        assert kwargs["auth"] == ("bot@acme.test", "tok")
        assert kwargs["timeout"] == 7.0
        assert kwargs["json"]["url"] == "https://flowline.test/webhooks/jira"
        assert kwargs["json"]["name"] == registered["name"]
        assert "filters" not in kwargs["json"]

    @patch("requests.request")
    def test_custom_events_and_jql_filter(self, mock_request):
        mock_request.return_value = mock_response(201, {})

        registered = register_jira_webhook(
            "acme.atlassian.net", "e", "t", "https://cb.test", events=["jira:issue_created"], jql_filter="project = OPS"
        )

        sent = mock_request.call_args.kwargs["json"]
        assert sent["events"] == ["jira:issue_created"]
        assert sent["filters"] == {"issue-related-events-section": "project = OPS"}
        assert registered["webhook_id"] == ""

    @patch("requests.request")
    def test_rejection_keeps_jira_status(self, mock_request):
        mock_request.return_value = mock_response(403, text="Forbidden")

        with pytest.raises(IntegrationError) as exc_info:
            register_jira_webhook("acme.atlassian.net", "e", "t", "https://cb.test")

        assert exc_info.value.http_status == 403
        assert exc_info.value.message == "Jira API returned 403"
        assert exc_info.value.context["details"] == "Forbidden"

    @patch("requests.request")
    def test_unreachable_jira_is_bad_gateway(self, mock_request):
        mock_request.side_effect = requests.ConnectionError("no route")

        with pytest.raises(IntegrationError) as exc_info:
            register_jira_webhook("acme.atlassian.net", "e", "t", "https://cb.test")

        assert exc_info.value.http_status == 502
        assert exc_info.value.message.startswith("Failed to call Jira API")
