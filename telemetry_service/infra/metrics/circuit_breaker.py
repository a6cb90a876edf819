# telemetry_service/infra/metrics/circuit_breaker.py
"""Circuit Breaker metrics."""

from prometheus_client import Counter, Gauge

# Numeric gauge values per state name
STATE_VALUES = {
    "CLOSED": 0,
    "OPEN": 1,
    "HALF_OPEN": 2,
}

circuit_breaker_state = Gauge(
    'circuit_breaker_state',
    'Current state (0=closed, 1=open, 2=half_open)',
    ['name']
)

circuit_breaker_transitions = Counter(
    'circuit_breaker_transitions_total',
    'Circuit breaker state transitions',
    ['name', 'from_state', 'to_state']
)

circuit_breaker_rejected = Counter(
    'circuit_breaker_rejected_total',
    'Calls rejected without reaching the protected dependency',
    ['name']
)
