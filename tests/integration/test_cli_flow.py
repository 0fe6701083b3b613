import json
import re
from pathlib import Path

import pytest
from typer.testing import CliRunner

from taskgate.infrastructure.config.settings import reset_configuration, set_config_for_testing
from taskgate.main import app, reset_dependencies

# These fixtures are defined in tests/conftest.py:
# runner: CliRunner

TASK_ID = re.compile(r"Created task (task_[0-9a-f]+)")


@pytest.fixture(autouse=True)
def mock_environment(tmp_path: Path):
    """Runs the CLI against a fresh simulated store without latency or faults."""
    set_config_for_testing({
        "environment": "mock",
        "mock.storage_dir": str(tmp_path / "store"),
        "mock.latency_scale": 0,
        "mock.fault_rate": 0,
        "logging.file": None,
    })
    reset_configuration()
    reset_dependencies()
    yield
    reset_dependencies()
    reset_configuration()


def invoke(runner: CliRunner, *args: str):
    result = runner.invoke(app, list(args))
    assert result.exit_code == 0, f"CLI command {args} failed: {result.output}"
    return result


def test_login_task_lifecycle_and_logout(runner: CliRunner):
    login = invoke(runner, "login", "+15550001", "--code", "123456")
    assert "Signed in as Demo User." in login.output

    status = invoke(runner, "status")
    assert "authenticated" in status.output

    added = invoke(runner, "tasks", "add", "Buy milk", "-p", "high", "--category", "cat_3")
    task_id = TASK_ID.search(added.output).group(1)

    listing = invoke(runner, "tasks", "list")
    assert "Buy milk" in listing.output
    assert "Shopping" in listing.output
    assert "Page 1 of 1" in listing.output

    done = invoke(runner, "tasks", "done", task_id)
    assert "Completed: Buy milk" in done.output

    pending = invoke(runner, "tasks", "list", "--pending")
    assert "No tasks found." in pending.output

    stats = invoke(runner, "stats")
    assert "100.0%" in stats.output

    logout = invoke(runner, "logout")
    assert "Logged out successfully" in logout.output


def test_wrong_code_fails(runner: CliRunner):
    result = runner.invoke(app, ["login", "+15550001", "--code", "000000"])

    assert result.exit_code == 1
    assert "Invalid OTP code" in result.output


def test_validation_errors_set_the_exit_code(runner: CliRunner):
    result = runner.invoke(app, ["tasks", "add", "   "])

    assert result.exit_code == 1
    assert "Task title is required" in result.output


def test_missing_task_is_reported(runner: CliRunner):
    result = runner.invoke(app, ["tasks", "show", "task_missing"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_categories_survive_task_deletion_and_vice_versa(runner: CliRunner):
    categories = invoke(runner, "categories", "list")
    for name in ("Work", "Personal", "Shopping"):
        assert name in categories.output

    added = invoke(runner, "tasks", "add", "Quarterly report", "--category", "cat_1")
    task_id = TASK_ID.search(added.output).group(1)

    invoke(runner, "categories", "rm", "cat_1")

    shown = invoke(runner, "tasks", "show", task_id)
    assert "Uncategorized" in shown.output

    removed = invoke(runner, "tasks", "rm", task_id, "--yes")
    assert "Task deleted successfully" in removed.output


def test_backup_export_and_import(runner: CliRunner, tmp_path: Path):
    invoke(runner, "tasks", "add", "Keep me safe")
    backup_file = tmp_path / "exports" / "backup.json"

    invoke(runner, "backup", "export", str(backup_file))

    document = json.loads(backup_file.read_text(encoding="utf-8"))
    assert document["version"] == "1.0.0"
    assert [task["title"] for task in document["tasks"]] == ["Keep me safe"]

    imported = invoke(runner, "backup", "import", str(backup_file))
    assert "Restored 1 tasks" in imported.output


def test_import_of_a_missing_file_fails(runner: CliRunner, tmp_path: Path):
    result = runner.invoke(app, ["backup", "import", str(tmp_path / "nope.json")])
    assert result.exit_code == 1


def test_mode_is_remembered_between_commands(runner: CliRunner):
    invoke(runner, "mode", "real")
    reset_dependencies()

    status = invoke(runner, "status")

    assert "Mode: real" in status.output


def test_feedback_round_trip(runner: CliRunner):
    invoke(runner, "feedback", "5", "Lovely")

    listed = invoke(runner, "feedback", "--list")

    assert "Lovely" in listed.output


def test_backup_clear_erases_tasks(runner: CliRunner):
    invoke(runner, "tasks", "add", "Short-lived")

    cleared = invoke(runner, "backup", "clear", "--yes")
    assert "All data erased" in cleared.output

    listing = invoke(runner, "tasks", "list")
    assert "No tasks found." in listing.output
    categories = invoke(runner, "categories", "list")
    assert "Work" in categories.output
