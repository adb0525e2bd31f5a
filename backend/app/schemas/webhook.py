"""Payment processor webhook envelope. `data.object` is event-specific and read by processor_events."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ProcessorEventData(BaseModel):
    object: Dict[str, Any] = Field(default_factory=dict)


class ProcessorEvent(BaseModel):
    id: str
    type: str
    # Connected account that originated the event, when applicable
    account: Optional[str] = None
    data: ProcessorEventData = Field(default_factory=ProcessorEventData)


class ProcessorEventAck(BaseModel):
    received: bool = True
    action: str
