"""API Resilience Implementations.

Contains the retry policy engine: error classification, exponential/linear
backoff and terminal-failure reporting.
Bounded Context: API Resilience
"""
