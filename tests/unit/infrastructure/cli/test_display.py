import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from taskgate.domain.models.common import Priority
from taskgate.domain.models.wire import Analytics, CategoryRef, CategoryView, Pagination, TaskPage, TaskView
from taskgate.infrastructure.cli.display import ConsoleDisplay, _color_style

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def make_view(title="Write report", completed=False, color="#FF5722"):
    return TaskView(
        id="task_1", title=title, description="", priority=Priority.HIGH,
        category=CategoryRef(id="cat_1", name="Work", color=color),
        completed=completed, created_at=NOW, updated_at=NOW,
    )


@pytest.fixture
def mock_console():
    """Fixture to create a mock rich Console object."""
    return MagicMock()


@pytest.fixture
def console_display(mock_console: MagicMock):
    """Fixture to create a ConsoleDisplay instance with a mocked console."""
    return ConsoleDisplay(console=mock_console)


def printed(mock_console: MagicMock, index: int = 0):
    return mock_console.print.call_args_list[index].args[0]


def test_display_output_uses_a_titled_panel(console_display: ConsoleDisplay, mock_console: MagicMock):
    console_display.display_output("Mode: mock", title="Status")

    panel = printed(mock_console)
    assert isinstance(panel, Panel)
    assert "Status" in panel.title
    assert panel.renderable.plain == "Mode: mock"


def test_display_output_does_not_interpret_markup(console_display: ConsoleDisplay, mock_console: MagicMock):
    console_display.display_output("[bold]not markup[/bold]")
    assert printed(mock_console).renderable.plain == "[bold]not markup[/bold]"


def test_get_prompt(console_display: ConsoleDisplay, mock_console: MagicMock):
    """Test that get_prompt calls console.input and returns the result."""
    mock_console.input.return_value = "123456"

    assert console_display.get_prompt("Code:") == "123456"
    mock_console.input.assert_called_once_with("[bold green]Code:[/bold green] ")


@pytest.mark.parametrize("method, title", [
    ("display_error", "Error"),
    ("display_info", "Info"),
    ("display_warning", "Warning"),
])
def test_message_panels(console_display: ConsoleDisplay, mock_console: MagicMock, method, title):
    getattr(console_display, method)("Something happened")

    panel = printed(mock_console)
    assert isinstance(panel, Panel)
    assert title in panel.title
    assert panel.renderable.plain == "Something happened"


def test_empty_task_page_shows_info(console_display: ConsoleDisplay, mock_console: MagicMock):
    console_display.display_task_page(TaskPage(tasks=[], pagination=Pagination(1, 20, 0, 0)))

    panel = printed(mock_console)
    assert panel.renderable.plain == "No tasks found."


def test_task_page_renders_a_table_and_footer(console_display: ConsoleDisplay, mock_console: MagicMock):
    page = TaskPage(tasks=[make_view(completed=True)], pagination=Pagination(2, 1, 3, 3))

    console_display.display_task_page(page)

    table = printed(mock_console, 0)
    assert isinstance(table, Table)
    assert table.row_count == 1
    title_cell = table.columns[2]._cells[0]
    assert isinstance(title_cell, Text)
    assert title_cell.style == "strike"
    assert "Page 2 of 3 · 3 task(s)" in printed(mock_console, 1)


def test_task_titles_are_not_parsed_as_markup(console_display: ConsoleDisplay, mock_console: MagicMock):
    console_display.display_task_page(TaskPage(tasks=[make_view(title="[red]x")], pagination=Pagination(1, 20, 1, 1)))

    title_cell = printed(mock_console).columns[2]._cells[0]
    assert title_cell.plain == "[red]x"


def test_color_style_accepts_only_hex_colors():
    assert _color_style("#4CAF50") == "#4CAF50"
    assert _color_style("red on blue]") == ""
    assert _color_style("") == ""


def test_display_categories(console_display: ConsoleDisplay, mock_console: MagicMock):
    categories = [CategoryView(id="cat_1", name="Work", color="#FF5722", created_at=NOW, icon="briefcase")]

    console_display.display_categories(categories)

    assert printed(mock_console).row_count == 1


def test_display_analytics(console_display: ConsoleDisplay, mock_console: MagicMock):
    analytics = Analytics(
        total=4, completed=1, pending=3, overdue=0,
        by_priority={"low": 1, "medium": 1, "high": 2}, completion_rate=25.0,
    )

    console_display.display_analytics(analytics)

    table = printed(mock_console)
    assert "25.0%" in table.columns[1]._cells
    assert table.row_count == 5 + 3


def test_ask_yes_no_question(console_display: ConsoleDisplay, mock_console: MagicMock):
    mock_console.input.return_value = " Yes "
    assert console_display.ask_yes_no_question("Delete 2 task(s)?") is True

    mock_console.input.return_value = "n"
    assert console_display.ask_yes_no_question("Delete 2 task(s)?") is False
