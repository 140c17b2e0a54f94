"""Tests for settings, logging setup and the command line."""

import json
import logging
import os

import pytest
from pydantic import ValidationError

from flowline.config import AppConfig, LogLevel, get_testing_config, validate_config
from flowline.core.exceptions import ConfigurationError, WorkflowNotFoundError, create_error_response
from flowline.core.logging import JsonFormatter, RunContextFilter, log_with_context, run_logging_context
from flowline.startup import create_argument_parser, load_configuration, main


@pytest.fixture(autouse=True)
def restore_root_logging():
    """The CLI reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestAppConfig:
    """Test cases for AppConfig."""

    def test_defaults(self):
        config = AppConfig()
        assert config.max_concurrent_runs == 10
        assert config.http_timeout == 30.0
        assert config.slack_timeout == 15.0
        assert config.log_level == LogLevel.INFO

    def test_from_env(self):
        config = AppConfig.from_env({
            "FLOWLINE_PORT": "9000",
            "FLOWLINE_DEBUG": "yes",
            "FLOWLINE_LOG_LEVEL": "debug",
            "FLOWLINE_JIRA_TIMEOUT": "12.5",
            "FLOWLINE_CORS_ORIGINS": "https://a.test, https://b.test,",
            "UNRELATED": "x",
        })
        assert config.port == 9000
        assert config.debug is True
        assert config.log_level == LogLevel.DEBUG
        assert config.jira_timeout == 12.5
        assert config.cors_origins == ["https://a.test", "https://b.test"]
        assert config.max_concurrent_runs == 10

    @pytest.mark.parametrize("field,value", [
        ("database_url", "oracle://scott@db/orcl"),
        ("database_url", "not a url"),
        ("port", 0),
        ("max_concurrent_runs", 0),
        ("http_timeout", 0),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            AppConfig(**{field: value})

    def test_sqlite_path(self):
        assert AppConfig(database_url="sqlite:///./data/app.db").sqlite_path == "./data/app.db"
        assert get_testing_config().sqlite_path is None
        assert AppConfig(database_url="postgresql://u@h/db").sqlite_path is None
        assert AppConfig(database_url="postgresql://u@h/db").get_database_connect_args() == {}

    def test_validate_creates_directories(self, tmp_path):
        db_file = tmp_path / "nested" / "flowline.db"
        log_file = tmp_path / "logs" / "flowline.log"
        validate_config(AppConfig(database_url=f"sqlite:///{db_file}", log_file=str(log_file)))
        assert db_file.parent.is_dir()
        assert log_file.parent.is_dir()

    def test_validate_reports_unusable_directory(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(ConfigurationError):
            validate_config(AppConfig(log_file=os.path.join(str(blocker), "sub", "app.log")))


class TestErrors:
    """Test cases for the exception hierarchy."""

    def test_context_and_status(self):
        error = WorkflowNotFoundError("Workflow x not found", workflow_id="x")
        assert error.http_status == 404
        assert error.context == {"workflow_id": "x"}
        body = create_error_response(error)
        assert body["error"] == "WorkflowNotFoundError"
        assert body["details"]["category"] == "not_found"

    def test_none_context_is_dropped(self):
        assert ConfigurationError("bad").context == {}


class TestLogging:
    """Test cases for run-context logging."""

    def make_record(self, **extra):
        record = logging.LogRecord("flowline.test", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_context_is_attached_and_cleared(self):
        context_filter = RunContextFilter()
        with run_logging_context(run_id="r1"):
            record = self.make_record(context_fields={"node_id": "n1"})
            context_filter.filter(record)
        assert record.flowline == {"run_id": "r1", "node_id": "n1"}

        after = self.make_record()
        context_filter.filter(after)
        assert after.flowline == {}

    def test_json_formatter(self):
        record = self.make_record(flowline={"run_id": "r1"})
        entry = json.loads(JsonFormatter().format(record))
        assert entry["msg"] == "hello"
        assert entry["run_id"] == "r1"
        assert entry["level"] == "INFO"

    def test_log_with_context(self, caplog):
        logger = logging.getLogger("flowline.test")
        with caplog.at_level(logging.INFO, logger="flowline.test"):
            log_with_context(logger, logging.INFO, "node done", node_id="n1")
        assert caplog.records[0].context_fields == {"node_id": "n1"}


class TestCommandLine:
    """Test cases for the flowline command."""

    def test_overrides_apply_on_preset(self):
        args = create_argument_parser().parse_args(
            ["--env", "testing", "--port", "9999", "--log-level", "ERROR", "config", "show"]
        )
        config = load_configuration(args)
        assert config.port == 9999
        assert config.log_level == LogLevel.ERROR
        assert config.database_url == "sqlite:///:memory:"

    def test_config_validate(self, capsys):
        assert main(["--env", "testing", "config", "validate"]) == 0
        assert "Configuration OK" in capsys.readouterr().out

    def test_config_show(self, capsys):
        assert main(["--env", "testing", "config", "show"]) == 0
        assert "max_concurrent_runs" in capsys.readouterr().out

    def test_db_init_and_reset(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'cli.db'}"
        assert main(["--env", "testing", "--database-url", url, "db", "init"]) == 0
        assert (tmp_path / "cli.db").exists()
        assert main(["--env", "testing", "--database-url", url, "db", "reset"]) == 0

    def test_invalid_override_is_reported(self, capsys):
        assert main(["--env", "testing", "--port", "70000", "config", "validate"]) == 1
        assert "Error" in capsys.readouterr().err
