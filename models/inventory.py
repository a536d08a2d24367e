from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, date as date_type

class InventoryItemBase(BaseModel):
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    te_number: Optional[str] = None
    quantity: float = Field(..., gt=0)
    unit: Optional[str] = None
    purchase_price: Optional[float] = None
    purchase_date: Optional[date_type] = None

class InventoryItemCreate(InventoryItemBase):
    pass

class InventoryItem(InventoryItemBase):
    id: str
    # Stocked quantities can legitimately drop to zero after verification
    quantity: float
    image_url: Optional[str] = None
    image_url_2: Optional[str] = None
    created_by: Optional[str] = None
    source_request_id: Optional[str] = None
    created_at: datetime

class StockVerificationCreate(BaseModel):
    verified_qty: float = Field(..., ge=0)
    verified_at: date_type = Field(default_factory=date_type.today)
    notes: Optional[str] = None

class StockVerification(StockVerificationCreate):
    id: str
    item_id: str
    verified_by: str
    created_at: datetime
