"""Domain Events related to backend calls and resilience.

Examples include events for when calls are initiated, retried, fail, succeed,
or trigger a token refresh.
"""

from dataclasses import dataclass, field
import time
from typing import Any, Callable, Optional

# Base Event Class
@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass

# --- Specific API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when a gateway operation is about to be issued."""
    mode: str # 'mock' or 'real'
    operation: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when a gateway operation succeeds."""
    mode: str
    operation: str
    attempts: int
    latency_ms: float
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a gateway operation fails definitively (after retries)."""
    mode: str
    operation: str
    error_kind: str
    error_message: str
    attempts: int = 1
    timestamp: float = field(default_factory=time.time)

@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed attempt."""
    operation: str
    attempt_number: int
    delay_seconds: float
    error_kind: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class TokenRefreshTriggered(DomainEvent):
    """Event triggered when a 401 causes a token refresh."""
    operation: str
    succeeded: Optional[bool] = None # None while in flight
    timestamp: float = field(default_factory=time.time)

@dataclass
class ModeSwitched(DomainEvent):
    """Event triggered when the gateway switches between mock and real mode."""
    previous: str
    current: str
    timestamp: float = field(default_factory=time.time)


EventListener = Callable[[DomainEvent], Any]
