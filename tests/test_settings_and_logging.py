import io
import json
import logging

import pytest

from shipgate.config import ManagerSettings, load_manager_settings
from shipgate.config.env import parse_bool_env, parse_int_env
from shipgate.error_handling import StorageError, log_shipgate_error
from shipgate.logging_config import JsonLogFormatter, PlainTextFormatter, PLAIN_FORMAT, init_logging


def test_settings_defaults_without_environment():
    settings = load_manager_settings(env={})

    assert settings == ManagerSettings()
    assert settings.storage_root == ".shipgate"
    assert settings.history_limit == 100
    assert settings.configuration_key == "settings/quality-gates.json"


def test_settings_from_environment_and_overrides():
    env = {
        "SHIPGATE_STORAGE_ROOT": "/srv/gates",
        "SHIPGATE_HISTORY_LIMIT": "25",
        "SHIPGATE_WRITE_REPORTS": "false",
    }

    settings = load_manager_settings(env=env)
    assert settings.storage_root == "/srv/gates"
    assert settings.history_limit == 25
    assert settings.write_reports is False

    overridden = load_manager_settings({"history_limit": 7}, env=env)
    assert overridden.history_limit == 7
    assert overridden.storage_root == "/srv/gates"


def test_settings_reject_bad_values():
    with pytest.raises(ValueError):
        load_manager_settings({"history": 3}, env={})
    with pytest.raises(ValueError):
        load_manager_settings(env={"SHIPGATE_HISTORY_LIMIT": "0"})
    with pytest.raises(ValueError):
        load_manager_settings(env={"SHIPGATE_HISTORY_LIMIT": "many"})


def test_env_parsers():
    assert parse_bool_env("YES") is True
    assert parse_bool_env("off") is False
    assert parse_bool_env("maybe", default=True) is True
    assert parse_int_env(None, default=4) == 4
    assert parse_int_env(" 12 ") == 12


def _record(**extra):
    record = logging.LogRecord("shipgate.manager", logging.WARNING, __file__, 1, "gate %s failed", ("g1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_run_context_and_error():
    error = StorageError("disk full", key="reports/quality-gate-history.json")

    payload = json.loads(JsonLogFormatter().format(_record(run_id="run-1", shipgate_error=error.to_dict())))

    assert payload["message"] == "gate g1 failed"
    assert payload["run_id"] == "run-1"
    assert payload["gate_id"] == ""
    assert payload["error_category"] == "infrastructure"
    assert payload["shipgate_error"]["error_type"] == "StorageError"


def test_plain_formatter_fills_missing_context():
    line = PlainTextFormatter(PLAIN_FORMAT).format(_record(gate_id="quality-metrics"))

    assert "[run_id= gate_id=quality-metrics]" in line
    assert line.endswith("gate g1 failed")


def test_log_shipgate_error_attaches_taxonomy(caplog):
    logger = logging.getLogger("shipgate.tests")
    error = StorageError("disk full", key="k")

    with caplog.at_level(logging.ERROR, logger="shipgate.tests"):
        log_shipgate_error(error, "persist failed", logger=logger)

    record = caplog.records[-1]
    assert record.error_category == "infrastructure"
    assert record.shipgate_error["context"]["additional"]["key"] == "k"


def test_log_shipgate_error_lifts_run_context(caplog):
    logger = logging.getLogger("shipgate.tests")
    error = StorageError("disk full", key="reports/quality-gate-history.json")
    error.context.run_id = "run-0123456789ab"
    error.context.gate_id = "quality-metrics"

    with caplog.at_level(logging.ERROR, logger="shipgate.tests"):
        log_shipgate_error(error, "Failed to persist execution history", logger=logger)

    record = caplog.records[-1]
    assert record.getMessage() == "Failed to persist execution history: disk full"
    assert record.run_id == "run-0123456789ab"
    assert record.gate_id == "quality-metrics"
    line = PlainTextFormatter(PLAIN_FORMAT).format(record)
    assert "[run_id=run-0123456789ab gate_id=quality-metrics]" in line


def test_init_logging_json_stream():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    stream = io.StringIO()
    init_logging(level=logging.INFO, json_enabled=True, stream=stream)
    try:
        logging.getLogger("shipgate.tests").info("hello", extra={"run_id": "run-9"})
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

    payload = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert payload["message"] == "hello"
    assert payload["run_id"] == "run-9"
