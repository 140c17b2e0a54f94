"""Exceptions raised by the engine, the stores and the configuration layer.

Node handlers never raise these: a failing node reports an error string in
its NodeResult. These cover the engine's own failures, such as an unknown
workflow, broken storage or bad settings.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ErrorCategory(Enum):
    VALIDATION = "validation"
    EXECUTION = "execution"
    STORAGE = "storage"
    CONFIGURATION = "configuration"
    NOT_FOUND = "not_found"
    INTEGRATION = "integration"


class WorkflowEngineError(Exception):
    """Base class for Flowline errors.

    Keyword arguments become the error's ``context`` (ids, operation names);
    ``None`` values are dropped. Subclasses set ``severity``, ``category`` and
    the HTTP status the API answers with.
    """

    severity = ErrorSeverity.MEDIUM
    category = ErrorCategory.EXECUTION
    http_status = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.error_code = type(self).__name__
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class WorkflowNotFoundError(WorkflowEngineError):
    """No workflow with the given id."""
    severity = ErrorSeverity.LOW
    category = ErrorCategory.NOT_FOUND
    http_status = 404

    def __init__(self, message: str, workflow_id: Optional[str] = None, **context: Any):
        super().__init__(message, workflow_id=workflow_id, **context)


class RunNotFoundError(WorkflowEngineError):
    """No run with the given id."""
    severity = ErrorSeverity.LOW
    category = ErrorCategory.NOT_FOUND
    http_status = 404

    def __init__(self, message: str, run_id: Optional[str] = None, **context: Any):
        super().__init__(message, run_id=run_id, **context)


class NodeConfigurationError(WorkflowEngineError):
    """A node's raw configuration does not fit its typed model, or a handler is malformed."""
    category = ErrorCategory.VALIDATION
    http_status = 400

    def __init__(
        self,
        message: str,
        node_type: Optional[str] = None,
        node_id: Optional[str] = None,
        **context: Any
    ):
        super().__init__(message, node_type=node_type, node_id=node_id, **context)


class ExecutionEngineError(WorkflowEngineError):
    """The engine could not start or schedule a run."""
    severity = ErrorSeverity.HIGH

    def __init__(
        self,
        message: str,
        run_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        **context: Any
    ):
        super().__init__(message, run_id=run_id, workflow_id=workflow_id, **context)


class StorageError(WorkflowEngineError):
    """A database operation failed."""
    severity = ErrorSeverity.HIGH
    category = ErrorCategory.STORAGE

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **context: Any
    ):
        super().__init__(message, operation=operation, table=table, **context)


class ConfigurationError(WorkflowEngineError):
    """Settings are invalid or point at unusable paths."""
    severity = ErrorSeverity.HIGH
    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, config_key: Optional[str] = None, **context: Any):
        super().__init__(message, config_key=config_key, **context)


class IntegrationError(WorkflowEngineError):
    """A call to a third-party API made on the user's behalf failed.

    Answers 502 unless the upstream status or a request problem calls for another code.
    """
    category = ErrorCategory.INTEGRATION
    http_status = 502

    def __init__(
        self,
        message: str,
        integration: Optional[str] = None,
        http_status: Optional[int] = None,
        **context: Any
    ):
        super().__init__(message, integration=integration, **context)
        if http_status is not None:
            self.http_status = http_status


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Body of an API error response (the ``detail`` of an HTTPException)."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            "severity": error.severity.value,
            "category": error.category.value,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
