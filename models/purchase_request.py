from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date as date_type
from enum import Enum

from models.project import Project

class RequestStatus(str, Enum):
    SUBMITTED = "submitted"
    PM_APPROVED = "pm_approved"
    PRESIDENT_APPROVED = "president_approved"
    PURCHASED = "purchased"
    DELIVERED = "delivered"
    RECEIVED = "received"
    REJECTED = "rejected"

STATUS_LABEL = {
    RequestStatus.SUBMITTED: "Submitted",
    RequestStatus.PM_APPROVED: "PM Approved",
    RequestStatus.PRESIDENT_APPROVED: "President Approved",
    RequestStatus.PURCHASED: "Purchased",
    RequestStatus.DELIVERED: "Delivered",
    RequestStatus.RECEIVED: "Received",
    RequestStatus.REJECTED: "Rejected",
}

class LineItemStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class LineItemCreate(BaseModel):
    description: str
    quantity: float
    unit: str = "ea"
    application_location: Optional[str] = None
    est_unit_price: Optional[float] = Field(None, ge=0)

class LineItem(BaseModel):
    id: str
    request_id: str
    item_id: Optional[str] = None
    description: str
    quantity: float
    unit: Optional[str] = "ea"
    application_location: Optional[str] = None
    est_unit_price: Optional[float] = None
    status: LineItemStatus = LineItemStatus.PENDING
    approved_qty: Optional[float] = None
    purchased_qty: Optional[float] = None
    delivered_qty: Optional[float] = None
    received_qty: Optional[float] = None
    reject_comment: Optional[str] = None
    resubmit_comment: Optional[str] = None
    received_photo_url_1: Optional[str] = None
    received_photo_url_2: Optional[str] = None
    stocked_at: Optional[datetime] = None
    stocked_qty: Optional[float] = None
    version: int = 1
    created_at: datetime

class PurchaseRequestCreate(BaseModel):
    project_id: str
    needed_by: Optional[date_type] = None
    notes: Optional[str] = None
    items: List[LineItemCreate]

class PurchaseRequest(BaseModel):
    id: str
    project_id: Optional[str] = None
    requested_by: Optional[str] = None
    status: RequestStatus
    needed_by: Optional[date_type] = None
    notes: Optional[str] = None
    pm_approved_by: Optional[str] = None
    pm_approved_at: Optional[datetime] = None
    president_approved_by: Optional[str] = None
    president_approved_at: Optional[datetime] = None
    purchased_by: Optional[str] = None
    purchased_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    received_by: Optional[str] = None
    received_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_comment: Optional[str] = None
    stocked_by: Optional[str] = None
    stocked_at: Optional[datetime] = None
    version: int = 1
    created_at: datetime

class PurchaseRequestDetail(PurchaseRequest):
    project: Optional[Project] = None
    items: List[LineItem] = []
    total_estimated_requested: float = 0
    total_estimated_approved: float = 0

class StatusChange(BaseModel):
    comment: Optional[str] = None

class Rejection(BaseModel):
    comment: str

class ItemApproval(BaseModel):
    approved_qty: Optional[float] = None
    comment: Optional[str] = None

class ItemRejection(BaseModel):
    comment: str

class LineQuantityUpdate(BaseModel):
    approved_qty: Optional[float] = Field(None, ge=0)
    purchased_qty: Optional[float] = Field(None, ge=0)
    delivered_qty: Optional[float] = Field(None, ge=0)
    received_qty: Optional[float] = Field(None, ge=0)

class ReceiveToStockResult(BaseModel):
    request_id: str
    created: List[str] = []
    updated: List[str] = []
    skipped: List[str] = []
    failed: List[str] = []
    complete: bool
    message: str
