from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum

class EventType(str, Enum):
    STATUS_CHANGE = "status_change"
    ITEM_APPROVED = "item_approved"
    ITEM_REJECTED = "item_rejected"
    LINE_QTY_UPDATE = "line_qty_update"
    LINE_PHOTO_UPLOAD = "line_photo_upload"
    STOCKED = "stocked"

class WorkflowEventBase(BaseModel):
    request_id: str
    item_id: Optional[str] = None
    performed_by: str
    event_type: EventType
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    comment: Optional[str] = None

class WorkflowEvent(WorkflowEventBase):
    id: str
    created_at: datetime
