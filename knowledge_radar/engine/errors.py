"""Error taxonomy and the observability sink for recovered failures.

Every component of the engine recovers locally from upstream failures and
hands the caller a degraded-but-valid value instead of an exception. Those
recovered failures are never dropped silently: they are recorded here so
that systemic problems stay visible in logs and health summaries.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from loguru import logger


class RadarError(Exception):
    """Base class for engine errors."""


class TransientNetworkError(RadarError):
    """Transport failure or non-success HTTP status from an upstream service."""


class ServiceMisconfigured(RadarError):
    """A required credential or endpoint is not configured."""


class MalformedUpstreamResponse(RadarError):
    """Upstream replied, but the body could not be decoded into the expected shape."""


class EmptyInputCorpus(RadarError):
    """Nothing to scan. A legitimate terminal case rather than a failure."""


class ServiceState(Enum):
    """Component health states."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3


@dataclass
class ErrorEvent:
    """Represents a recovered error."""
    timestamp: datetime
    component: str
    error_type: str
    message: str
    severity: ErrorSeverity
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'timestamp': self.timestamp.isoformat(),
            'component': self.component,
            'error_type': self.error_type,
            'message': self.message,
            'severity': self.severity.value,
            'context': self.context
        }


@dataclass
class ComponentHealth:
    """Tracks health of a component."""
    name: str
    state: ServiceState = ServiceState.HEALTHY
    error_count: int = 0
    success_count: int = 0
    consecutive_failures: int = 0
    last_error: Optional[ErrorEvent] = None
    last_success: Optional[datetime] = None

    @property
    def error_rate(self) -> float:
        total = self.error_count + self.success_count
        if total == 0:
            return 0.0
        return self.error_count / total


def classify_severity(error: BaseException) -> ErrorSeverity:
    """Map an exception onto a severity level."""
    if isinstance(error, EmptyInputCorpus):
        return ErrorSeverity.LOW
    if isinstance(error, (TransientNetworkError, MalformedUpstreamResponse)):
        return ErrorSeverity.MEDIUM
    return ErrorSeverity.HIGH


class ErrorSink:
    """Single sink for every error the engine recovers from."""

    def __init__(self, window_size: int = 100, degraded_after: int = 3):
        """
        Initialize error sink.

        Args:
            window_size: Number of error events to keep
            degraded_after: Consecutive failures before a component is degraded
        """
        self.window_size = window_size
        self.degraded_after = degraded_after
        self.errors: deque = deque(maxlen=window_size)
        self.error_counts: Dict[str, int] = {}
        self.health: Dict[str, ComponentHealth] = {}

    def _health_for(self, component: str) -> ComponentHealth:
        if component not in self.health:
            self.health[component] = ComponentHealth(name=component)
        return self.health[component]

    def record(self, component: str, error: BaseException, **context: Any) -> ErrorEvent:
        """Record a recovered error and log it."""
        severity = classify_severity(error)
        event = ErrorEvent(
            timestamp=datetime.now(),
            component=component,
            error_type=type(error).__name__,
            message=str(error),
            severity=severity,
            context=context
        )
        self.errors.append(event)

        key = f"{component}:{event.error_type}"
        self.error_counts[key] = self.error_counts.get(key, 0) + 1

        health = self._health_for(component)
        health.error_count += 1
        health.consecutive_failures += 1
        health.last_error = event
        if health.consecutive_failures >= self.degraded_after:
            health.state = ServiceState.DEGRADED

        if severity == ErrorSeverity.LOW:
            logger.debug(f"[{component}] {event.error_type}: {event.message}")
        else:
            logger.warning(f"[{component}] recovered from {event.error_type}: {event.message}")
        return event

    def record_success(self, component: str) -> None:
        """Record a successful operation."""
        health = self._health_for(component)
        health.success_count += 1
        health.consecutive_failures = 0
        health.last_success = datetime.now()
        health.state = ServiceState.HEALTHY

    def get_summary(self) -> Dict[str, Any]:
        """Get error summary."""
        return {
            'total_errors': len(self.errors),
            'error_counts': dict(self.error_counts),
            'components': {
                name: {
                    'state': h.state.value,
                    'error_rate': round(h.error_rate, 3),
                    'consecutive_failures': h.consecutive_failures,
                    'last_error': h.last_error.to_dict() if h.last_error else None
                }
                for name, h in self.health.items()
            },
            'recent': [e.to_dict() for e in list(self.errors)[-10:]]
        }
