# =============================================================================
# File: telemetry_service/api/models/telemetry_api_models.py
# Description: Telemetry API models (Pydantic v2)
# =============================================================================

from __future__ import annotations

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from decimal import Decimal

from telemetry_service.telemetry.read_models import DeadLetterMessage, DeviceProjection


# =============================================================================
# Request Models
# =============================================================================

class TelemetryRequest(BaseModel):
    """
    One device reading.

    Fields are optional at this layer so that a missing field is reported by
    the command handler as a 400 with a readable message; wrong types are
    still rejected by FastAPI with a 422.
    """
    model_config = ConfigDict(populate_by_name=True)

    device_id: Optional[int] = Field(None, alias="deviceId")
    measurement: Optional[Decimal] = Field(None)
    date: Optional[datetime] = Field(None, description="ISO-8601 time the reading was taken")


# =============================================================================
# Response Models
# =============================================================================

class TelemetryAcceptedResponse(BaseModel):
    status: str = "accepted"
    duplicate: bool = False


class DeviceResponse(BaseModel):
    """Latest reading of one device"""
    model_config = ConfigDict(populate_by_name=True)

    device_id: int = Field(..., alias="deviceId")
    measurement: float
    date: datetime

    @classmethod
    def from_projection(cls, projection: DeviceProjection) -> 'DeviceResponse':
        return cls(
            device_id=projection.device_id,
            measurement=float(projection.latest_measurement),
            date=projection.latest_timestamp,
        )


class FallbackReplayResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    replayed_count: int = Field(..., alias="replayedCount")


class DlqMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event: Optional[Dict[str, Any]] = None
    raw_value: Optional[str] = Field(None, alias="rawValue")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    exception_type: Optional[str] = Field(None, alias="exceptionType")
    retry_count: int = Field(0, alias="retryCount")
    timestamp: Optional[datetime] = None
    original_topic: Optional[str] = Field(None, alias="originalTopic")
    original_timestamp: Optional[datetime] = Field(None, alias="originalTimestamp")
    partition: int
    offset: int

    @classmethod
    def from_dead_letter(cls, message: DeadLetterMessage) -> 'DlqMessageResponse':
        return cls(
            event=message.event,
            raw_value=message.raw_value,
            error_message=message.error_message,
            exception_type=message.exception_type,
            retry_count=message.retry_count,
            timestamp=message.timestamp,
            original_topic=message.original_topic,
            original_timestamp=message.original_timestamp,
            partition=message.partition,
            offset=message.offset,
        )


class DlqReprocessResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    reprocessed_count: int = Field(..., alias="reprocessedCount")


class CircuitBreakerStatusResponse(BaseModel):
    name: str
    state: str
    failure_rate: float
    buffered_calls: int
    failed_calls: int
    window_size: int
    failure_rate_threshold: float
    half_open_permits_used: int
    half_open_successes: int
    open_for_seconds: Optional[float] = None
    pending_fallback_events: Optional[int] = None
