# =============================================================================
# Custom exceptions for the Telemetry Service
# =============================================================================


class TelemetryException(Exception):
    """Base exception for the telemetry service"""
    pass


class ValidationError(TelemetryException):
    """Raised when validation fails"""
    pass


class NotFoundError(TelemetryException):
    """Raised when a resource is not found"""
    pass


class ConflictError(TelemetryException):
    """Raised when there's a conflict (e.g., duplicate)"""
    pass


class InfrastructureError(TelemetryException):
    """Raised for infrastructure errors"""
    pass


class DatabaseUnavailableError(InfrastructureError):
    """Raised when PostgreSQL cannot be reached or the pool is not initialized"""
    pass


class StreamUnavailableError(InfrastructureError):
    """Raised when the event stream rejects, fails or times out a publish"""
    pass
