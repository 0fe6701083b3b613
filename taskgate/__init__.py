"""taskgate: resilient data-access layer for a task-management client.

Routes task, category and feedback operations either to a locally simulated
backend or to a real HTTP API, with retry/backoff and token-refresh recovery.
"""

__version__ = "1.0.0"
