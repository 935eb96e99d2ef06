import json

import pytest
import structlog
from structlog.contextvars import clear_contextvars

from deploy_runtime.core.exceptions import ConfigurationError
from deploy_runtime.utils.logging import bind_deploy_context, setup_logging


def test_structured_logs_include_deploy_context(capsys):
    setup_logging("INFO", "json")
    clear_contextvars()
    bind_deploy_context("/shop", "deploy")

    logger = structlog.get_logger()
    logger.info("test_event", foo="bar")
    out = capsys.readouterr().out.strip().splitlines()[-1]
    data = json.loads(out)
    assert data["event"] == "test_event"
    assert data["contextPath"] == "/shop"
    assert data["command"] == "deploy"
    assert data["foo"] == "bar"
    clear_contextvars()


def test_redaction(capsys):
    setup_logging("INFO", "json")
    clear_contextvars()
    logger = structlog.get_logger()
    logger.info("leak_test", runtime_secret="s3cret", authorization="Bearer abc")
    out = capsys.readouterr().out.strip().splitlines()[-1]
    data = json.loads(out)
    assert data["runtime_secret"] == "[REDACTED]"
    assert data["authorization"] == "[REDACTED]"


def test_level_filtering(capsys):
    setup_logging("WARNING", "json")
    logger = structlog.get_logger()
    logger.info("hidden")
    logger.warning("shown")
    lines = capsys.readouterr().out.strip().splitlines()
    events = [json.loads(line)["event"] for line in lines if line.startswith("{")]
    assert events == ["shown"]


def test_unknown_level_or_format_rejected():
    with pytest.raises(ConfigurationError):
        setup_logging("LOUD", "json")
    with pytest.raises(ConfigurationError):
        setup_logging("INFO", "xml")
