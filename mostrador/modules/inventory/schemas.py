from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from enum import Enum

class MovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJ = "ADJ"

# Stock schemas
class StockOut(BaseModel):
    id: UUID
    product_id: UUID
    location_id: UUID
    quantity: int
    reorder_threshold: int
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    location_name: Optional[str] = None

    model_config = {"from_attributes": True}

class StockReplenish(BaseModel):
    product_id: UUID
    location_id: UUID
    quantity: int = Field(..., gt=0, description="Units received")
    reorder_threshold: Optional[int] = Field(None, ge=0, description="New reorder threshold")
    notes: Optional[str] = Field(None, max_length=255, description="Replenishment notes")

# Movement schemas
class InventoryMovementOut(BaseModel):
    id: UUID
    product_id: UUID
    location_id: UUID
    quantity: int
    movement_type: str
    reference: Optional[str]
    notes: Optional[str]
    created_by: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}

class ProductStockSummary(BaseModel):
    product_id: UUID
    total_quantity: int
    locations: List[StockOut]
