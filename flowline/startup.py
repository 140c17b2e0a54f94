"""``flowline`` command: serve the API, manage the database, inspect settings."""

import argparse
import sys
from typing import Callable, Dict, List, Optional

from .config import (
    AppConfig,
    LogLevel,
    get_development_config,
    get_testing_config,
    load_config,
    validate_config,
)
from .core.exceptions import WorkflowEngineError
from .core.logging import get_logger, setup_logging
from .storage.database import Database

# AppConfig fields that can be overridden from the command line
CLI_OVERRIDES = ("host", "port", "reload", "database_url", "log_level", "log_file", "debug", "max_concurrent_runs")

PRESETS: Dict[str, Callable[[], AppConfig]] = {
    "development": get_development_config,
    "testing": get_testing_config,
}


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="flowline", description="Flowline workflow automation engine")
    parser.add_argument("--env", choices=sorted(PRESETS), help="Start from a settings preset instead of the environment")
    parser.add_argument("--config", help="Path to a .env file")
    parser.add_argument("--host")
    parser.add_argument("--port", type=int)
    parser.add_argument("--reload", action="store_true", default=None, help="Auto-reload on code changes")
    parser.add_argument("--database-url", dest="database_url")
    parser.add_argument("--log-level", dest="log_level", choices=[level.value for level in LogLevel])
    parser.add_argument("--log-file", dest="log_file")
    parser.add_argument("--debug", action="store_true", default=None)
    parser.add_argument("--max-concurrent-runs", dest="max_concurrent_runs", type=int)

    commands = parser.add_subparsers(dest="command")
    commands.add_parser("run", help="Serve the HTTP API (default)").set_defaults(func=run_server)

    db = commands.add_parser("db", help="Database maintenance").add_subparsers(dest="db_command", required=True)
    db.add_parser("init", help="Create missing tables").set_defaults(func=init_database)
    db.add_parser("reset", help="Drop and recreate all tables").set_defaults(func=reset_database)

    cfg = commands.add_parser("config", help="Inspect settings").add_subparsers(dest="config_command", required=True)
    cfg.add_parser("show", help="Print effective settings").set_defaults(func=show_configuration)
    cfg.add_parser("validate", help="Check settings and exit").set_defaults(func=report_valid)

    return parser


def load_configuration(args: argparse.Namespace) -> AppConfig:
    """Settings from a preset or the environment, with command-line flags applied on top."""
    config = PRESETS[args.env]() if args.env else load_config(args.config)

    overrides = {name: getattr(args, name) for name in CLI_OVERRIDES if getattr(args, name, None) is not None}
    if overrides:
        config = AppConfig(**{**config.model_dump(), **overrides})
    return config


def run_server(config: AppConfig) -> None:
    import uvicorn

    from .factory import create_app

    uvicorn.run(create_app(config), **config.get_uvicorn_config())


def init_database(config: AppConfig) -> None:
    database = Database.from_config(config)
    try:
        database.create_tables()
    finally:
        database.dispose()
    get_logger(__name__).info("Database tables created")


def reset_database(config: AppConfig) -> None:
    """Drop every table and create them again. All workflows and runs are lost."""
    database = Database.from_config(config)
    try:
        database.drop_tables()
        database.create_tables()
    finally:
        database.dispose()
    get_logger(__name__).info("Database reset")


def show_configuration(config: AppConfig) -> None:
    for name, value in config.model_dump(mode="json").items():
        print(f"{name:22} {value}")


def report_valid(config: AppConfig) -> None:
    print("Configuration OK")


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the ``flowline`` console script."""
    args = create_argument_parser().parse_args(argv)

    try:
        config = load_configuration(args)
        validate_config(config)
    except (WorkflowEngineError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        level=config.log_level.value,
        log_file=config.log_file,
        log_format=config.log_format,
        structured=config.log_structured
    )

    command = getattr(args, "func", run_server)
    try:
        command(config)
    except WorkflowEngineError as e:
        get_logger(__name__).error(f"{args.command} failed: {e.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
