"""FastAPI REST endpoints for the workflow engine."""

from typing import Any, Dict, List, NoReturn, Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..core.execution_engine import ExecutionEngine
from ..core.exceptions import (
    IntegrationError,
    RunNotFoundError,
    WorkflowEngineError,
    WorkflowNotFoundError,
    create_error_response,
)
from ..core.logging import get_logger
from ..handlers.base import config_str
from ..handlers.jira import register_jira_webhook
from ..models.core import (
    DryRunResult,
    IntegrationRecord,
    NodeLogRecord,
    RunRecord,
    WebhookEventRecord,
    WorkflowDefinition,
    WorkflowStatusEnum,
)
from ..storage.repositories import SqlIntegrationStore, SqlRunRecorder, SqlWebhookEventStore, SqlWorkflowStore

logger = get_logger(__name__)

# Create routers
router = APIRouter(prefix="/api", tags=["workflow"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])

# Global instances (initialized by the application factory)
_execution_engine: Optional[ExecutionEngine] = None
_workflow_store: Optional[SqlWorkflowStore] = None
_run_recorder: Optional[SqlRunRecorder] = None
_integration_store: Optional[SqlIntegrationStore] = None
_webhook_event_store: Optional[SqlWebhookEventStore] = None


def init_dependencies(
    execution_engine: ExecutionEngine,
    workflow_store: SqlWorkflowStore,
    run_recorder: SqlRunRecorder,
    integration_store: SqlIntegrationStore,
    webhook_event_store: SqlWebhookEventStore
):
    """Initialize the global dependencies.

    Any store exposing the same methods works, including the in-memory ones.
    """
    global _execution_engine, _workflow_store, _run_recorder, _integration_store, _webhook_event_store
    _execution_engine = execution_engine
    _workflow_store = workflow_store
    _run_recorder = run_recorder
    _integration_store = integration_store
    _webhook_event_store = webhook_event_store


def _not_initialized(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{name} not initialized"
    )


def get_execution_engine() -> ExecutionEngine:
    """Dependency to get execution engine."""
    if _execution_engine is None:
        raise _not_initialized("Execution engine")
    return _execution_engine


def get_workflow_store() -> SqlWorkflowStore:
    """Dependency to get workflow store."""
    if _workflow_store is None:
        raise _not_initialized("Workflow store")
    return _workflow_store


def get_run_recorder() -> SqlRunRecorder:
    """Dependency to get run recorder."""
    if _run_recorder is None:
        raise _not_initialized("Run recorder")
    return _run_recorder


def get_integration_store() -> SqlIntegrationStore:
    """Dependency to get integration store."""
    if _integration_store is None:
        raise _not_initialized("Integration store")
    return _integration_store


def get_webhook_event_store() -> SqlWebhookEventStore:
    """Dependency to get webhook event store."""
    if _webhook_event_store is None:
        raise _not_initialized("Webhook event store")
    return _webhook_event_store


def raise_http_error(error: WorkflowEngineError, action: str) -> NoReturn:
    """Translate an engine exception into an HTTPException with a standard body."""
    if error.http_status >= 500:
        logger.error(f"{action}: {error.message}")
    else:
        logger.warning(f"{action}: {error.message}")
    raise HTTPException(status_code=error.http_status, detail=create_error_response(error))


# Request/Response models
class WorkflowCreateRequest(BaseModel):
    """Request model for creating a workflow."""
    name: str = Field(..., min_length=1, description="Workflow name")
    description: str = Field(default="", description="Workflow description")
    nodes: List[Dict[str, Any]] = Field(default_factory=list, description="Raw node definitions")
    edges: List[Dict[str, Any]] = Field(default_factory=list, description="Raw edge definitions")
    status: WorkflowStatusEnum = Field(default=WorkflowStatusEnum.DRAFT, description="Lifecycle status")


class WorkflowUpdateRequest(BaseModel):
    """Request model for updating a workflow; omitted fields are left unchanged."""
    name: Optional[str] = None
    description: Optional[str] = None
    nodes: Optional[List[Dict[str, Any]]] = None
    edges: Optional[List[Dict[str, Any]]] = None
    status: Optional[WorkflowStatusEnum] = None


class RunWorkflowRequest(BaseModel):
    """Request model for running a workflow."""
    input: Any = Field(None, description="Payload handed to the entry node")


class RunWorkflowResponse(BaseModel):
    """Response model for workflow execution."""
    run_id: str = Field(..., description="Unique identifier for the execution run")
    status: str = Field(..., description="Initial execution status")
    message: str = Field(..., description="Success message")


class DryRunRequest(BaseModel):
    """Request model for a single-node dry run."""
    node_type: str = Field(..., description="Type of node to execute")
    data: Optional[Dict[str, Any]] = Field(None, description="Node configuration")
    config: Optional[Dict[str, Any]] = Field(None, description="Alias of data")
    input: Any = Field(None, description="Payload for the node; defaults to {}")


class IntegrationUpsertRequest(BaseModel):
    """Request model for saving integration credentials."""
    name: str = Field(default="", description="Display name")
    config: Dict[str, Any] = Field(default_factory=dict, description="Credential/config mapping")


class MessageResponse(BaseModel):
    """Generic acknowledgement."""
    message: str


class WebhookResponse(BaseModel):
    """Response to an inbound webhook."""
    status: str = Field(..., description="Always 'received'")
    event_id: Optional[str] = Field(None, description="ID of the stored event, if it could be stored")
    event_type: str = Field(..., description="Event type read from the payload")
    run_id: Optional[str] = Field(None, description="Run started for this event, if any")


class JiraWebhookRegistrationRequest(BaseModel):
    """Request model for registering our Jira webhook receiver on a Jira site.

    Credentials left empty are taken from the stored ``jira`` integration.
    """
    webhook_url: str = Field(..., min_length=1, description="Public URL of /webhooks/jira")
    jira_domain: str = Field(default="", description="Jira site host, e.g. acme.atlassian.net")
    jira_email: str = Field(default="", description="Account email")
    jira_api_token: str = Field(default="", description="Account API token")
    events: List[str] = Field(default_factory=list, description="Events to subscribe to")
    jql_filter: str = Field(default="", description="Optional JQL issue filter")


class JiraWebhookRegistrationResponse(BaseModel):
    """Response model for a Jira webhook registration."""
    message: str
    name: str = Field(..., description="Generated webhook name")
    webhook_id: str = Field(default="", description="ID Jira assigned to the webhook")
    events: List[str] = Field(default_factory=list)


# Workflows

@router.get("/workflows", response_model=List[WorkflowDefinition], summary="List workflows")
def list_workflows(
    status_filter: Optional[WorkflowStatusEnum] = Query(None, alias="status"),
    workflow_store: SqlWorkflowStore = Depends(get_workflow_store)
) -> List[WorkflowDefinition]:
    try:
        return workflow_store.list_workflows(status_filter.value if status_filter else None)
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to list workflows")


@router.post(
    "/workflows",
    response_model=WorkflowDefinition,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workflow"
)
def create_workflow(
    request: WorkflowCreateRequest,
    workflow_store: SqlWorkflowStore = Depends(get_workflow_store)
) -> WorkflowDefinition:
    try:
        return workflow_store.create_workflow(
            name=request.name,
            description=request.description,
            nodes=request.nodes,
            edges=request.edges,
            status=request.status.value
        )
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to create workflow")


@router.get("/workflows/{workflow_id}", response_model=WorkflowDefinition, summary="Get a workflow")
def get_workflow(
    workflow_id: str,
    workflow_store: SqlWorkflowStore = Depends(get_workflow_store)
) -> WorkflowDefinition:
    try:
        workflow = workflow_store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id=workflow_id)
        return workflow
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to get workflow")


@router.put("/workflows/{workflow_id}", response_model=WorkflowDefinition, summary="Update a workflow")
def update_workflow(
    workflow_id: str,
    request: WorkflowUpdateRequest,
    workflow_store: SqlWorkflowStore = Depends(get_workflow_store)
) -> WorkflowDefinition:
    try:
        return workflow_store.update_workflow(workflow_id, **request.model_dump(exclude_none=True))
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to update workflow")


@router.delete("/workflows/{workflow_id}", response_model=MessageResponse, summary="Delete a workflow")
def delete_workflow(
    workflow_id: str,
    workflow_store: SqlWorkflowStore = Depends(get_workflow_store)
) -> MessageResponse:
    try:
        workflow_store.delete_workflow(workflow_id)
        return MessageResponse(message="Workflow deleted")
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to delete workflow")


@router.post(
    "/workflows/{workflow_id}/run",
    response_model=RunWorkflowResponse,
    summary="Run a workflow",
    description="Start a run in the background and return its ID immediately"
)
def run_workflow(
    workflow_id: str,
    request: Optional[RunWorkflowRequest] = Body(None),
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> RunWorkflowResponse:
    """
    Start a workflow run.

    Args:
        workflow_id: ID of the workflow to run
        request: Optional body carrying the input payload
        execution_engine: Execution engine dependency

    Returns:
        The run ID with status ``running``

    Raises:
        HTTPException: 404 if the workflow does not exist
    """
    try:
        run_id = execution_engine.start_run(workflow_id, request.input if request else None)
        return RunWorkflowResponse(run_id=run_id, status="running", message="Workflow started")
    except WorkflowEngineError as e:
        raise_http_error(e, f"Failed to start workflow {workflow_id}")


# Runs

@router.get("/runs", response_model=List[RunRecord], summary="List runs")
def list_runs(
    workflow_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    run_recorder: SqlRunRecorder = Depends(get_run_recorder)
) -> List[RunRecord]:
    try:
        return run_recorder.list_runs(workflow_id=workflow_id, limit=limit)
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to list runs")


@router.get("/runs/{run_id}", response_model=RunRecord, summary="Get a run")
def get_run(
    run_id: str,
    run_recorder: SqlRunRecorder = Depends(get_run_recorder)
) -> RunRecord:
    try:
        run = run_recorder.get_run(run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id} not found", run_id=run_id)
        return run
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to get run")


@router.get("/runs/{run_id}/logs", response_model=List[NodeLogRecord], summary="Get a run's node logs")
def get_run_logs(
    run_id: str,
    run_recorder: SqlRunRecorder = Depends(get_run_recorder)
) -> List[NodeLogRecord]:
    try:
        if run_recorder.get_run(run_id) is None:
            raise RunNotFoundError(f"Run {run_id} not found", run_id=run_id)
        return run_recorder.list_node_logs(run_id)
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to get run logs")


# Integrations

@router.get("/integrations", response_model=List[IntegrationRecord], summary="List integrations")
def list_integrations(
    integration_store: SqlIntegrationStore = Depends(get_integration_store)
) -> List[IntegrationRecord]:
    try:
        return integration_store.list_integrations()
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to list integrations")


@router.get("/integrations/{integration_type}", response_model=IntegrationRecord, summary="Get an integration")
def get_integration(
    integration_type: str,
    integration_store: SqlIntegrationStore = Depends(get_integration_store)
) -> IntegrationRecord:
    try:
        record = integration_store.get_integration(integration_type)
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to get integration")
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
    return record


@router.put("/integrations/{integration_type}", response_model=IntegrationRecord, summary="Save an integration")
def upsert_integration(
    integration_type: str,
    request: IntegrationUpsertRequest,
    integration_store: SqlIntegrationStore = Depends(get_integration_store)
) -> IntegrationRecord:
    try:
        return integration_store.upsert_integration(integration_type, request.config, name=request.name)
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to save integration")


@router.delete("/integrations/{integration_type}", response_model=MessageResponse, summary="Delete an integration")
def delete_integration(
    integration_type: str,
    integration_store: SqlIntegrationStore = Depends(get_integration_store)
) -> MessageResponse:
    try:
        integration_store.delete_integration(integration_type)
        return MessageResponse(message="Integration deleted")
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to delete integration")


# Nodes

@router.post(
    "/nodes/dry-run",
    response_model=DryRunResult,
    summary="Dry-run a single node",
    description="Execute one node against a sample input without creating any run or log rows"
)
def dry_run_node(
    request: DryRunRequest,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> DryRunResult:
    config = request.data if request.data is not None else request.config
    try:
        return execution_engine.dry_run_node(request.node_type, config, request.input)
    except WorkflowEngineError as e:
        raise_http_error(e, "Dry run rejected")


# Webhooks

@router.get("/webhook-events", response_model=List[WebhookEventRecord], summary="List received webhook events")
def list_webhook_events(
    limit: int = Query(50, ge=1, le=500),
    webhook_event_store: SqlWebhookEventStore = Depends(get_webhook_event_store)
) -> List[WebhookEventRecord]:
    try:
        return webhook_event_store.list_events(limit=limit)
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to list webhook events")


@router.post(
    "/jira/register-webhook",
    response_model=JiraWebhookRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register the Jira webhook receiver on a Jira site"
)
def register_webhook_on_jira(
    request: JiraWebhookRegistrationRequest,
    integration_store: SqlIntegrationStore = Depends(get_integration_store),
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> JiraWebhookRegistrationResponse:
    """
    Create a webhook on the user's Jira Cloud site pointing at ``/webhooks/jira``.

    Raises:
        HTTPException: 400 if credentials are missing; Jira's status code if it
            rejects the registration; 502 if Jira cannot be reached
    """
    try:
        stored = integration_store.get_config("jira") or {}
        domain = request.jira_domain.strip() or config_str(stored, "domain")
        email = request.jira_email.strip() or config_str(stored, "email")
        api_token = request.jira_api_token.strip() or config_str(stored, "api_token")
        if not domain or not email or not api_token:
            raise IntegrationError(
                "jira_domain, jira_email and jira_api_token are required "
                "when no Jira integration is configured",
                integration="jira",
                http_status=status.HTTP_400_BAD_REQUEST
            )

        registered = register_jira_webhook(
            domain,
            email,
            api_token,
            request.webhook_url,
            events=request.events,
            jql_filter=request.jql_filter,
            timeout=execution_engine.registry.context.jira_timeout
        )
        return JiraWebhookRegistrationResponse(message="Webhook registered on Jira successfully", **registered)
    except WorkflowEngineError as e:
        raise_http_error(e, "Failed to register Jira webhook")


@webhook_router.post("/jira", response_model=WebhookResponse, summary="Receive a Jira webhook event")
def receive_jira_webhook(
    payload: Dict[str, Any] = Body(...),
    execution_engine: ExecutionEngine = Depends(get_execution_engine),
    webhook_event_store: SqlWebhookEventStore = Depends(get_webhook_event_store)
) -> WebhookResponse:
    """Store the event, then start the first active workflow whose Jira trigger matches it."""
    event_type = payload.get("webhookEvent")
    if not isinstance(event_type, str) or not event_type:
        event_type = "unknown"

    # The event log is best effort; a delivery is still routed when it cannot be stored
    event_id: Optional[str] = None
    try:
        event_id = webhook_event_store.record_event("jira", event_type, payload).id
    except WorkflowEngineError as e:
        logger.error(f"Failed to store Jira webhook event {event_type}: {e.message}")
    logger.info(f"Jira webhook received: {event_type} (event_id={event_id})")

    try:
        run_id = execution_engine.trigger_webhook(event_type, payload)
    except WorkflowEngineError as e:
        raise_http_error(e, f"Failed to trigger workflow for Jira event {event_type}")

    if run_id is not None and event_id is not None:
        try:
            webhook_event_store.mark_processed(event_id, run_id)
        except WorkflowEngineError as e:
            logger.error(f"Failed to link webhook event {event_id} to run {run_id}: {e.message}")

    return WebhookResponse(status="received", event_id=event_id, event_type=event_type, run_id=run_id)
