"""Interface for interacting with the user (input/output).

Defines the contract for displaying tasks, information, errors and warnings,
and for getting input from the user, allowing different UI implementations.
"""

import abc
from typing import Any, List

from taskgate.domain.models.wire import Analytics, CategoryView, TaskPage, TaskView


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays standard output to the user.

        Args:
            output: The text to display.
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

    @abc.abstractmethod
    def get_prompt(self, prompt_message: str = "Input: ") -> str:
        """Gets input from the user synchronously.

        Args:
            prompt_message: The message to display before the input prompt.

        Returns:
            The user's input.
        """
        pass

    @abc.abstractmethod
    def display_task_page(self, page: TaskPage, **kwargs: Any) -> None:
        """Displays one page of tasks with its pagination footer."""
        pass

    def display_task(self, task: TaskView, **kwargs: Any) -> None:
        """Displays a single task in detail."""
        pass

    def display_categories(self, categories: List[CategoryView], **kwargs: Any) -> None:
        """Displays the list of categories."""
        pass

    def display_analytics(self, analytics: Analytics, **kwargs: Any) -> None:
        """Displays task statistics."""
        pass

    def ask_yes_no_question(self, question: str) -> bool:
        """Asks a yes/no question and returns the answer.

        Args:
            question: The question to ask

        Returns:
            True if the answer is yes, False otherwise
        """
        pass
