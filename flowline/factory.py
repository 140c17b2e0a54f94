"""Builds the FastAPI application and wires the engine to its stores."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .api.endpoints import init_dependencies, router, webhook_router
from .config import AppConfig, get_config, validate_config
from .core.execution_engine import ExecutionEngine
from .core.logging import get_logger, setup_logging
from .handlers.base import HandlerContext
from .storage.database import Database
from .storage.repositories import SqlIntegrationStore, SqlRunRecorder, SqlWebhookEventStore, SqlWorkflowStore

logger = get_logger(__name__)


@dataclass
class FlowlineComponents:
    """Everything a running server holds on to, available as ``app.state.flowline``."""
    config: AppConfig
    database: Database
    workflow_store: SqlWorkflowStore
    run_recorder: SqlRunRecorder
    integration_store: SqlIntegrationStore
    webhook_event_store: SqlWebhookEventStore
    execution_engine: ExecutionEngine

    def close(self) -> None:
        """Wait for in-flight runs, then release database connections."""
        try:
            self.execution_engine.shutdown(wait=True)
        except Exception as e:
            logger.error(f"Execution engine shutdown failed: {e}")
        self.database.dispose()


def build_components(config: AppConfig, database: Optional[Database] = None) -> FlowlineComponents:
    """
    Create the tables, the SQL stores and the execution engine.

    Args:
        config: Application configuration
        database: Database to use instead of one built from ``config.database_url``
    """
    database = database or Database.from_config(config)
    database.create_tables()

    workflow_store = SqlWorkflowStore(database)
    run_recorder = SqlRunRecorder(database)
    integration_store = SqlIntegrationStore(database)
    webhook_event_store = SqlWebhookEventStore(database)
    engine = ExecutionEngine(
        workflow_store=workflow_store,
        run_recorder=run_recorder,
        max_concurrent_runs=config.max_concurrent_runs,
        handler_context=HandlerContext.from_config(config, integration_store)
    )
    return FlowlineComponents(
        config, database, workflow_store, run_recorder, integration_store, webhook_event_store, engine
    )


def create_lifespan_handler(config: AppConfig, database: Optional[Database] = None):
    """Return the lifespan that starts the components on startup and closes them on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.log_structured,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        components = build_components(config, database)
        app.state.flowline = components
        init_dependencies(
            execution_engine=components.execution_engine,
            workflow_store=components.workflow_store,
            run_recorder=components.run_recorder,
            integration_store=components.integration_store,
            webhook_event_store=components.webhook_event_store
        )
        logger.info(f"Ready: {config.max_concurrent_runs} run workers, database {components.database.engine.url.get_backend_name()}")

        try:
            yield
        finally:
            logger.info(f"Shutting down {config.app_name}")
            components.close()

    return lifespan


def create_app(config: Optional[AppConfig] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Application configuration; read from the environment if omitted
        database: Pre-built Database, e.g. a throwaway one in tests

    Returns:
        The configured application. Components are created by its lifespan.
    """
    config = config or get_config()
    validate_config(config)

    app = FastAPI(
        title=config.app_name,
        description="Workflow automation engine: run graphs of HTTP, Jira, Slack and delay nodes",
        version=config.app_version,
        debug=config.debug,
        lifespan=create_lifespan_handler(config, database)
    )

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=config.cors_methods,
            allow_headers=["*"],
        )

    app.include_router(router)
    app.include_router(webhook_router)
    add_health_endpoints(app, config)
    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Register ``/``, ``/health`` (liveness) and ``/health/ready`` (readiness)."""

    @app.get("/", include_in_schema=False)
    async def root():
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health", tags=["health"])
    async def health_check():
        return {"status": "ok", "service": config.app_name.lower(), "version": config.app_version}

    @app.get("/health/ready", tags=["health"])
    def readiness_check(request: Request):
        components: Optional[FlowlineComponents] = getattr(request.app.state, "flowline", None)
        checks = {"database": {"status": "unhealthy"}, "execution_engine": {"status": "unhealthy"}}

        if components is not None:
            try:
                with components.database.session() as db:
                    db.execute(text("SELECT 1"))
                checks["database"] = {"status": "healthy"}
            except Exception as e:
                logger.error(f"Readiness check: database unreachable: {e}")
                checks["database"]["error"] = str(e)

            checks["execution_engine"] = {
                "status": "healthy",
                "active_runs": len(components.execution_engine.get_active_runs())
            }

        ready = all(check["status"] == "healthy" for check in checks.values())
        return JSONResponse(
            status_code=200 if ready else 503,
            content={"ready": ready, "checks": checks, "timestamp": datetime.utcnow().isoformat()}
        )
