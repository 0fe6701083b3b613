"""Main entry point for the taskgate application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Coroutine, Dict, List, Optional

import typer
from typing_extensions import Annotated

# --- Core Layer ---
from taskgate.core.command_handler import MODE_PREFERENCE_KEY, CommandHandler
from taskgate.core.gateway import create_gateway

# --- Domain Layer ---
from taskgate.domain.models.common import DueBucket, GatewayMode, Priority, SortKey, SortOrder
from taskgate.domain.models.records import parse_datetime
from taskgate.domain.models.wire import CategoryDraft, FeedbackDraft, TaskDraft, TaskQuery

# --- Infrastructure Layer ---
from taskgate.infrastructure.cli.display import ConsoleDisplay
from taskgate.infrastructure.config.settings import (
    get_api_settings, get_config, get_environment, get_mock_settings, load_configuration,
)
from taskgate.infrastructure.filesystem.backup_files import BackupFileStore
from taskgate.infrastructure.monitoring.logger_setup import resolve_level, setup_logging
from taskgate.infrastructure.storage.disk_store import DiskKeyValueStore

logger = logging.getLogger(__name__)

# --- Dependency Injection Container (Manual) ---

_dependencies: Optional[Dict[str, Any]] = None


def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    # 1. Load Configuration First
    load_configuration()
    setup_logging(
        log_level=resolve_level(get_config('logging.level')),
        log_file=get_config('logging.file'),
        log_format=get_config('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
    )
    logger.info(f"Initializing application dependencies (environment: {get_environment()})...")

    dependencies: Dict[str, Any] = {}
    api_settings = get_api_settings()
    mock_settings = get_mock_settings()

    # 2. Instantiate Infrastructure Adapters
    dependencies['ui'] = ConsoleDisplay()
    dependencies['storage'] = DiskKeyValueStore(Path(mock_settings.storage_dir))
    dependencies['backup_files'] = BackupFileStore()

    # 3. Gateway (retry engine, both backends, credentials)
    dependencies['gateway'] = create_gateway(api_settings, mock_settings, storage=dependencies['storage'])

    # 4. Command Handler
    dependencies['command_handler'] = CommandHandler(
        gateway=dependencies['gateway'],
        ui=dependencies['ui'],
        backup_files=dependencies['backup_files'],
        preferences=dependencies['storage'],
    )
    logger.info("All dependencies initialized successfully.")
    return dependencies


def get_dependencies() -> Dict[str, Any]:
    """Returns the wired dependencies, creating them on first use."""
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies


def reset_dependencies() -> None:
    global _dependencies
    if _dependencies is not None:
        close = getattr(_dependencies.get('storage'), 'close', None)
        if close is not None:
            close()
    _dependencies = None


def get_handler() -> CommandHandler:
    return get_dependencies()['command_handler']


# --- Typer App Definition ---
app = typer.Typer(
    name="taskgate",
    help="taskgate: task management from the command line, against the live API or a local simulated backend.",
    add_completion=False,
)
tasks_app = typer.Typer(help="Create, list, complete and delete tasks.")
categories_app = typer.Typer(help="Manage task categories.")
backup_app = typer.Typer(help="Export, restore or erase mock-mode data.")
app.add_typer(tasks_app, name="tasks")
app.add_typer(categories_app, name="categories")
app.add_typer(backup_app, name="backup")


# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, bool]) -> None:
    """Runs a handler coroutine from a sync Typer command and sets the exit code."""
    gateway = get_dependencies()['gateway']

    async def runner() -> bool:
        try:
            return await coro
        finally:
            await gateway.close()

    if not asyncio.run(runner()):
        raise typer.Exit(code=1)


def _parse_due(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return parse_datetime(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid date '{value}'. Use ISO format, e.g. 2024-05-01 or 2024-05-01T17:00.")


# --- CLI Commands ---

@app.callback()
def main_callback(
    mode: Annotated[
        Optional[GatewayMode],
        typer.Option("--mode", "-m", help="Use the 'mock' or 'real' backend for this command only."),
    ] = None,
):
    """Main entry point. Applies the remembered or requested backend mode."""
    deps = get_dependencies()
    gateway = deps['gateway']
    if mode is not None:
        gateway.set_mode(mode)
        return
    remembered = asyncio.run(deps['storage'].get(MODE_PREFERENCE_KEY))
    if remembered:
        try:
            gateway.set_mode(remembered)
        except ValueError:
            logger.warning(f"Ignoring unknown remembered mode '{remembered}'")


@app.command()
def login(
    phone: Annotated[str, typer.Argument(help="Phone number to sign in with.")],
    code: Annotated[Optional[str], typer.Option("--code", "-c", help="Verification code (prompted if omitted).")] = None,
):
    """Sign in with a one-time verification code."""
    run_async(get_handler().handle_login(phone, code))


@app.command()
def logout():
    """Sign out and forget stored tokens."""
    run_async(get_handler().handle_logout())


@app.command()
def status():
    """Show the active mode and sign-in state."""
    run_async(get_handler().handle_status())


@app.command(name="mode")
def mode_command(
    mode: Annotated[GatewayMode, typer.Argument(help="'mock' or 'real'.")],
):
    """Switch between the simulated and the real backend (remembered)."""
    run_async(get_handler().handle_set_mode(mode.value))


@app.command()
def stats():
    """Show task statistics."""
    run_async(get_handler().handle_stats())


@app.command()
def feedback(
    rating: Annotated[Optional[int], typer.Argument(min=1, max=5, help="Rating from 1 to 5.")] = None,
    comment: Annotated[str, typer.Argument(help="Your comment.")] = "",
    category: Annotated[str, typer.Option("--category", help="Feedback category.")] = "general",
    show: Annotated[bool, typer.Option("--list", help="List submitted feedback instead.")] = False,
):
    """Send feedback, or list what was sent with --list."""
    handler = get_handler()
    if show:
        run_async(handler.handle_list_feedback())
        return
    if rating is None:
        raise typer.BadParameter("A rating is required (or use --list).")
    run_async(handler.handle_feedback(FeedbackDraft(rating=rating, comment=comment, category=category)))


# --- tasks ---

@tasks_app.command("list")
def tasks_list(
    page: Annotated[int, typer.Option(min=1, help="Page number.")] = 1,
    limit: Annotated[int, typer.Option(min=1, help="Tasks per page.")] = 20,
    priority: Annotated[Optional[Priority], typer.Option(help="Only this priority.")] = None,
    done: Annotated[Optional[bool], typer.Option("--done/--pending", help="Only completed or pending tasks.")] = None,
    category: Annotated[Optional[str], typer.Option(help="Only this category id.")] = None,
    search: Annotated[Optional[str], typer.Option(help="Text to look for in title/description.")] = None,
    due: Annotated[Optional[DueBucket], typer.Option(help="today, this-week or overdue.")] = None,
    sort_by: Annotated[Optional[SortKey], typer.Option("--sort-by", help="Sort key.")] = None,
    sort_order: Annotated[Optional[SortOrder], typer.Option("--order", help="asc or desc.")] = None,
):
    """List tasks with filters and pagination."""
    query = TaskQuery(
        page=page, limit=limit, priority=priority, completed=done, category_id=category,
        search=search, due=due, sort_by=sort_by, sort_order=sort_order,
    )
    run_async(get_handler().handle_list_tasks(query))


@tasks_app.command("add")
def tasks_add(
    title: Annotated[str, typer.Argument(help="Task title.")],
    description: Annotated[str, typer.Option("--description", "-d", help="Longer description.")] = "",
    priority: Annotated[Priority, typer.Option("--priority", "-p", help="low, medium or high.")] = Priority.MEDIUM,
    category: Annotated[Optional[str], typer.Option("--category", help="Category id.")] = None,
    due: Annotated[Optional[str], typer.Option("--due", help="Due date (ISO format).")] = None,
    tags: Annotated[Optional[List[str]], typer.Option("--tag", help="Tag (repeatable).")] = None,
):
    """Create a task."""
    draft = TaskDraft(
        title=title, description=description, priority=priority, category_id=category,
        due_date=_parse_due(due), tags=list(tags or []),
    )
    run_async(get_handler().handle_add_task(draft))


@tasks_app.command("show")
def tasks_show(task_id: Annotated[str, typer.Argument(help="Task id.")]):
    """Show one task."""
    run_async(get_handler().handle_show_task(task_id))


@tasks_app.command("done")
def tasks_done(task_ids: Annotated[List[str], typer.Argument(help="One or more task ids.")]):
    """Mark tasks as completed."""
    run_async(get_handler().handle_complete_tasks(task_ids))


@tasks_app.command("rm")
def tasks_rm(
    task_ids: Annotated[List[str], typer.Argument(help="One or more task ids.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
):
    """Delete tasks."""
    run_async(get_handler().handle_delete_tasks(task_ids, confirm=not yes))


@tasks_app.command("search")
def tasks_search(
    text: Annotated[str, typer.Argument(help="Text to search for.")],
    fuzzy: Annotated[bool, typer.Option("--fuzzy", help="Match all words in any order.")] = False,
):
    """Search tasks by title and description."""
    run_async(get_handler().handle_search(text, fuzzy=fuzzy))


# --- categories ---

@categories_app.command("list")
def categories_list():
    """List categories."""
    run_async(get_handler().handle_list_categories())


@categories_app.command("add")
def categories_add(
    name: Annotated[str, typer.Argument(help="Category name.")],
    color: Annotated[str, typer.Option(help="Color as #RRGGBB.")] = "#9E9E9E",
    icon: Annotated[str, typer.Option(help="Icon name.")] = "folder",
):
    """Create a category."""
    run_async(get_handler().handle_add_category(CategoryDraft(name=name, color=color, icon=icon)))


@categories_app.command("rm")
def categories_rm(category_id: Annotated[str, typer.Argument(help="Category id.")]):
    """Delete a category (its tasks are kept)."""
    run_async(get_handler().handle_delete_category(category_id))


# --- backup ---

@backup_app.command("export")
def backup_export(path: Annotated[Path, typer.Argument(help="File to write the backup to.")]):
    """Export mock-mode data to a JSON file."""
    run_async(get_handler().handle_export(path))


@backup_app.command("import")
def backup_import(path: Annotated[Path, typer.Argument(help="Backup file to restore.")]):
    """Replace mock-mode data with a backup file."""
    run_async(get_handler().handle_import(path))


@backup_app.command("clear")
def backup_clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
):
    """Erase all mock-mode data for the signed-in user."""
    run_async(get_handler().handle_clear_all(confirm=not yes))


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    try:
        app()
    finally:
        reset_dependencies()


if __name__ == "__main__":
    cli_entry_point()
