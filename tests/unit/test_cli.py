"""CLI tests using click's CliRunner."""

import json

import pytest
from click.testing import CliRunner

from src import cli as cli_module
from src.core.models import OperationKind
from src.core.operation_queue import OperationQueue
from src.core.storage import DurableStore


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.setattr(cli_module, "setup_logging", lambda config: None)
    db_url = f"sqlite:///{tmp_path / 'offline.db'}"
    path = tmp_path / "offline.yaml"
    path.write_text(
        f"storage:\n  url: {db_url}\n"
        "queue:\n  max_attempts: 1\n"
        "logging:\n  file: null\n",
        encoding="utf-8"
    )
    return path, db_url


def _seed(db_url):
    store = DurableStore(db_url)
    queue = OperationQueue(store, max_attempts=1)
    ok = queue.enqueue(OperationKind.CREATE, "customers", {"id": "c1"})
    failed = queue.enqueue(OperationKind.DELETE, "expenses", {"id": "x1"})
    queue.ack(failed, success=False, error="HTTP 404")
    store.close()
    return ok, failed


def test_status_counts_pending_and_failed(config_file):
    path, db_url = config_file
    _seed(db_url)

    result = CliRunner().invoke(cli_module.cli, ["--config", str(path), "status"])

    assert result.exit_code == 0
    assert "Pending operations: 1" in result.output
    assert "Failed operations:  1" in result.output
    assert "web" in result.output


def test_queue_lists_operations_as_json(config_file):
    path, db_url = config_file
    ok, failed = _seed(db_url)

    result = CliRunner().invoke(cli_module.cli, ["--config", str(path), "queue", "--failed"])

    lines = [json.loads(line) for line in result.output.strip().splitlines()]
    assert [item["id"] for item in lines] == [failed]
    assert lines[0]["lastError"] == "HTTP 404"


def test_queue_empty(config_file):
    path, _ = config_file

    result = CliRunner().invoke(cli_module.cli, ["--config", str(path), "queue"])

    assert "Queue is empty" in result.output


def test_retry_failed_operation(config_file):
    path, db_url = config_file
    ok, failed = _seed(db_url)
    runner = CliRunner()

    result = runner.invoke(cli_module.cli, ["--config", str(path), "retry", failed])
    assert result.exit_code == 0

    result = runner.invoke(cli_module.cli, ["--config", str(path), "retry", ok])
    assert result.exit_code != 0
