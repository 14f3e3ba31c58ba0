"""Unit tests for EventLogger and the JSON log formatter."""
import sys
sys.path.insert(0, 'backend')

import json
import logging
import pytest
from pathlib import Path
from services.event_logger import EventLogger
from logger import JSONFormatter


@pytest.fixture
def temp_log_file(tmp_path):
    """Create a temporary log file path."""
    log_file = tmp_path / "logs" / "test_events.jsonl"
    return str(log_file)


@pytest.fixture
def event_logger(temp_log_file):
    """Create an EventLogger instance with temporary log file."""
    logger = EventLogger(log_file_path=temp_log_file)
    yield logger
    logger.close()


def read_entries(path):
    with open(path, 'r', encoding='utf-8') as f:
        return [json.loads(line) for line in f if line.strip()]


def test_emit_creates_file(event_logger, temp_log_file):
    """Test that emitting creates the log file and its directory."""
    event_logger.emit("turn_started", user_id="user-1")

    assert Path(temp_log_file).exists()


def test_emit_json_lines_format(event_logger, temp_log_file):
    """Test that each event becomes one JSON line with its fields."""
    event_logger.emit("action_executed", user_id="user-1", action="createTodo", status="success")
    event_logger.emit("turn_finished", user_id="user-1", state="DONE", iterations=3, actions=["createTodo"])

    entries = read_entries(temp_log_file)

    assert len(entries) == 2
    assert entries[0]["event"] == "action_executed"
    assert entries[0]["action"] == "createTodo"
    assert entries[0]["status"] == "success"
    assert entries[0]["timestamp"].endswith("Z")
    assert entries[1]["actions"] == ["createTodo"]


def test_emit_returns_entry_without_file():
    """Test that a logger without a file still returns the entry."""
    logger = EventLogger(log_file_path=None)

    entry = logger.emit("model_reply", user_id="user-1", shape="PlanReply")

    assert entry["event"] == "model_reply"
    assert entry["shape"] == "PlanReply"
    logger.close()


def test_failure_events_logged_as_warning(caplog):
    """Test that failed turns are logged at WARNING with structured extras."""
    logger = EventLogger(log_file_path=None)

    with caplog.at_level(logging.INFO, logger="services.event_logger"):
        logger.emit("turn_failed", user_id="user-1", reason="loop_exhausted")
        logger.emit("turn_started", user_id="user-1")

    failed, started = caplog.records
    assert failed.levelno == logging.WARNING
    assert failed.extra["reason"] == "loop_exhausted"
    assert started.levelno == logging.INFO


def test_emit_non_serializable_values(event_logger, temp_log_file):
    """Test that values json cannot encode are written as strings."""
    event_logger.emit("turn_finished", user_id="user-1", state=object())

    entry = read_entries(temp_log_file)[0]
    assert isinstance(entry["state"], str)


def test_json_formatter_merges_extras():
    """Test that JSONFormatter flattens event fields into the log line."""
    record = logging.LogRecord("services.agent_loop", logging.INFO, __file__, 1, "turn_finished", None, None)
    record.extra = {"event": "turn_finished", "user_id": "user-1", "iterations": 2}

    data = json.loads(JSONFormatter().format(record))

    assert data["level"] == "INFO"
    assert data["message"] == "turn_finished"
    assert data["user_id"] == "user-1"
    assert data["iterations"] == 2
