"""Core workflow engine components."""

from .exceptions import (
    WorkflowEngineError,
    WorkflowNotFoundError,
    RunNotFoundError,
    NodeConfigurationError,
    ExecutionEngineError,
    StorageError,
    ConfigurationError,
    IntegrationError,
)
from .logging import setup_logging, get_logger
from .templating import substitute, flatten_payload

__all__ = [
    "WorkflowEngineError",
    "WorkflowNotFoundError",
    "RunNotFoundError",
    "NodeConfigurationError",
    "ExecutionEngineError",
    "StorageError",
    "ConfigurationError",
    "IntegrationError",
    "setup_logging",
    "get_logger",
    "substitute",
    "flatten_payload",
]
