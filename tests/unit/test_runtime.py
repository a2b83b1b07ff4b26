"""
Unit tests for wiring the receiver from settings.
"""

import pytest

from records_client.errors import ConfigurationError
from records_receiver.consumers import HttpConsumer, LogConsumer
from receiverctl.config import load_settings
from receiverctl.runtime import build_consumer, build_scheduler

QUERIES = [
    {"queryid": "Q1", "query": "Select * from departments"},
    {
        "queryid": "Q2",
        "query": "Select * from dept_manager",
        "index_column_name": "emp_no",
        "index_column_type": "NUMBER",
    },
]


def _settings(**overrides):
    base = {"database": "employees", "username": "ro", "password": "s3cret", "db_queries": QUERIES}
    base.update(overrides)
    return load_settings(**base)


def test_build_consumer_by_kind():
    assert isinstance(build_consumer(_settings()), LogConsumer)
    http = build_consumer(_settings(consumer="http", http_endpoint="http://ingest.local/"))
    assert isinstance(http, HttpConsumer)
    assert http.endpoint == "http://ingest.local/"


def test_build_scheduler_wires_settings():
    sched = build_scheduler(_settings(setmaxnodatabaseworkers=4), LogConsumer())

    h = sched.health()
    assert [q.query_id for q in sched.queries] == ["Q1", "Q2"]
    assert h.max_workers == 4
    assert not h.pool_open
    assert not h.running
    assert h.checkpoints == {}


def test_encrypted_mode_without_key_is_fatal():
    settings = _settings(password_type="encrypted")
    with pytest.raises(ConfigurationError, match="encrypt_secret_path"):
        build_scheduler(settings, LogConsumer())
