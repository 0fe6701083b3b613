import logging
from datetime import datetime
from typing import Any, List, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from taskgate.domain.interfaces.user_interface import UserInterface
from taskgate.domain.models.common import Priority
from taskgate.domain.models.wire import Analytics, CategoryView, TaskPage, TaskView

logger = logging.getLogger(__name__)

PRIORITY_STYLES = {
    Priority.HIGH: "bold red",
    Priority.MEDIUM: "yellow",
    Priority.LOW: "green",
}


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _color_style(color: str) -> str:
    # Only plain "#RRGGBB" values are handed to rich as a style
    if len(color) == 7 and color.startswith("#"):
        return color
    return ""


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console."""
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays output text inside a panel.

        Args:
            output: The text to display.
            **kwargs: ``title`` for the panel header (default: "taskgate").
        """
        title = kwargs.get("title", "taskgate")
        self.console.print(Panel(
            Text(str(output)),
            title=f"[bold white]{title}[/bold white]",
            title_align="left",
            border_style="blue",
            box=ROUNDED,
            padding=(0, 1),
        ))

    def get_prompt(self, prompt_message: str = "> ") -> str:
        return self.console.input(f"[bold green]{prompt_message}[/bold green] ")

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message in a distinct style."""
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.debug(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_task_page(self, page: TaskPage, **kwargs: Any) -> None:
        """Displays one page of tasks as a table with a pagination footer."""
        if not page.tasks:
            self.display_info("No tasks found.")
            return

        table = Table(show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("", justify="center")
        table.add_column("Title", style="white")
        table.add_column("Priority")
        table.add_column("Category")
        table.add_column("Due", style="dim")

        for task in page.tasks:
            priority_style = PRIORITY_STYLES.get(task.priority, "white")
            table.add_row(
                task.id,
                "[green]✓[/green]" if task.completed else " ",
                Text(task.title, style="strike" if task.completed else ""),
                f"[{priority_style}]{task.priority.value}[/{priority_style}]",
                Text(task.category.name, style=_color_style(task.category.color)),
                _format_date(task.due_date),
            )

        self.console.print(table)
        p = page.pagination
        self.console.print(f"[dim]Page {p.page} of {max(p.total_pages, 1)} · {p.total} task(s)[/dim]")

    def display_task(self, task: TaskView, **kwargs: Any) -> None:
        table = Table(show_header=False, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Field", style="bold cyan")
        table.add_column("Value", style="white")
        table.add_row("ID", task.id)
        table.add_row("Title", Text(task.title))
        table.add_row("Description", Text(task.description or "-"))
        table.add_row("Status", "completed" if task.completed else "pending")
        table.add_row("Priority", task.priority.value)
        table.add_row("Category", task.category.name)
        table.add_row("Due", _format_date(task.due_date))
        table.add_row("Tags", ", ".join(task.tags) or "-")
        table.add_row("Created", _format_date(task.created_at))
        table.add_row("Updated", _format_date(task.updated_at))
        self.console.print(table)

    def display_categories(self, categories: List[CategoryView], **kwargs: Any) -> None:
        if not categories:
            self.display_info("No categories found.")
            return
        table = Table(show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("ID", style="dim")
        table.add_column("Name", style="bold")
        table.add_column("Color")
        table.add_column("Icon", style="dim")
        for category in categories:
            table.add_row(category.id, category.name, category.color, category.icon)
        self.console.print(table)

    def display_analytics(self, analytics: Analytics, **kwargs: Any) -> None:
        table = Table(show_header=False, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Metric", style="bold cyan")
        table.add_column("Value", justify="right")
        table.add_row("Total", str(analytics.total))
        table.add_row("Completed", str(analytics.completed))
        table.add_row("Pending", str(analytics.pending))
        table.add_row("Overdue", f"[red]{analytics.overdue}[/red]" if analytics.overdue else "0")
        table.add_row("Completion rate", f"{analytics.completion_rate:.1f}%")
        for priority, count in analytics.by_priority.items():
            table.add_row(f"Priority: {priority}", str(count))
        for entry in analytics.by_category:
            table.add_row(f"Category: {entry.get('name', entry.get('categoryId', '?'))}", str(entry.get("count", 0)))
        self.console.print(table)

    def ask_yes_no_question(self, question: str) -> bool:
        """Asks a yes/no question and returns the answer.

        Args:
            question: The question to ask

        Returns:
            True if the answer is yes, False otherwise
        """
        panel = Panel(
            Text(f"{question} (y/n)", style="white"),
            title="[bold yellow]Question[/bold yellow]",
            border_style="yellow",
            box=ROUNDED,
            padding=(0, 1)
        )
        self.console.print(panel)
        response = self.console.input("[bold yellow]> [/bold yellow]").strip().lower()
        return response in ('y', 'yes')
