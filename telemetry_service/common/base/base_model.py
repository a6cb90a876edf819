# =============================================================================
# File: telemetry_service/common/base/base_model.py
# Description: Base Pydantic model for all domain events
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Final

from pydantic import BaseModel, ConfigDict, Field

# Default schema version for events if not overridden by specific event types
_DEFAULT_DOMAIN_EVENT_VERSION: Final[int] = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseEvent(BaseModel):
    """
    Base Pydantic model for all domain events.
    Ensures common metadata fields are present in every event.
    """
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: str  # To be overridden by Literal in specific event types
    recorded_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=_DEFAULT_DOMAIN_EVENT_VERSION, description="Version of this event model's schema")

    model_config = ConfigDict(
        frozen=True,  # Events are immutable facts
        from_attributes=True,
        populate_by_name=True,
        extra='allow'  # Tolerate fields added by newer producers
    )

    def to_dict_for_bus(self) -> Dict[str, Any]:
        """
        Serializes the event to a dictionary suitable for publishing to the
        event stream, converting UUID, datetime and Decimal to strings.
        """
        event_dict = self.model_dump(by_alias=True)
        for key, value in event_dict.items():
            if isinstance(value, uuid.UUID):
                event_dict[key] = str(value)
            elif isinstance(value, datetime):
                event_dict[key] = value.isoformat()
            elif isinstance(value, Decimal):
                # str keeps the exact decimal scale across the wire
                event_dict[key] = str(value)
        return event_dict
