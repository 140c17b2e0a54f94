"""Pytest configuration and fixtures."""

import json
import os
import tempfile
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from flowline.config import get_testing_config
from flowline.core.execution_engine import ExecutionEngine
from flowline.models.core import WorkflowDefinition
from flowline.storage.database import Database
from flowline.storage.memory import InMemoryIntegrationStore, InMemoryRunRecorder, InMemoryWorkflowStore


def make_node(node_id: str, node_type: str, title: str = "", **data) -> Dict[str, Any]:
    """Build a raw node mapping the way the editor saves it."""
    if title:
        data["title"] = title
    return {"id": node_id, "type": node_type, "data": data}


def make_edge(source: str, target: str) -> Dict[str, Any]:
    return {"source": source, "target": target}


def make_workflow(
    nodes: List[Dict[str, Any]],
    edges: Optional[List[Dict[str, Any]]] = None,
    workflow_id: str = "wf-1",
    status: str = "draft",
    name: str = "Test workflow"
) -> WorkflowDefinition:
    return WorkflowDefinition(id=workflow_id, name=name, nodes=nodes, edges=edges or [], status=status)


def mock_response(status_code: int = 200, body: Any = None, text: Optional[str] = None) -> MagicMock:
    """Build a stand-in for ``requests.Response``.

    ``body`` is JSON-encoded into ``text`` unless ``text`` is given; ``json()``
    raises ValueError when the text is not JSON, like requests does.
    """
    response = MagicMock()
    response.status_code = status_code
    if text is None:
        text = json.dumps(body, separators=(",", ":")) if body is not None else ""
    response.text = text

    def parse_json():
        return json.loads(text)

    response.json.side_effect = parse_json
    return response


@pytest.fixture
def temp_db():
    """Create a temporary SQLite database with all tables."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)

    database = Database(f"sqlite:///{db_path}")
    database.create_tables()

    yield database

    database.dispose()
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def workflow_store():
    return InMemoryWorkflowStore()


@pytest.fixture
def run_recorder():
    return InMemoryRunRecorder()


@pytest.fixture
def integration_store():
    return InMemoryIntegrationStore()


@pytest.fixture
def engine(workflow_store, run_recorder, integration_store):
    """Create an ExecutionEngine over in-memory stores."""
    execution_engine = ExecutionEngine(
        workflow_store,
        run_recorder,
        integration_provider=integration_store,
        max_concurrent_runs=2
    )
    yield execution_engine
    execution_engine.shutdown(wait=True)


@pytest.fixture
def client(temp_db):
    """Create a test client backed by a temporary database."""
    from fastapi.testclient import TestClient
    from flowline.factory import create_app

    app = create_app(get_testing_config(), database=temp_db)
    with TestClient(app) as test_client:
        yield test_client
