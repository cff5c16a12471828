"""
Eventos enviados a otros locales por el canal de notificaciones.
"""
from pydantic import BaseModel, Field
from typing import Literal, Optional
from uuid import UUID
from decimal import Decimal


class RemoteSaleCreated(BaseModel):
    """Venta registrada en un local que descontó stock de otro."""
    type: Literal["RemoteSaleCreated"] = "RemoteSaleCreated"
    fulfilling_location_id: UUID = Field(..., description="Local que entrega la mercadería")
    selling_location_id: UUID = Field(..., description="Local donde se registró la venta")
    sale_id: UUID
    buyer_name: Optional[str] = None
    sale_total: Decimal

    @property
    def target_location_id(self) -> UUID:
        return self.fulfilling_location_id


class LowStockAlert(BaseModel):
    """Stock de un producto por debajo del punto de reposición."""
    type: Literal["LowStockAlert"] = "LowStockAlert"
    location_id: UUID
    product_id: UUID
    product_name: Optional[str] = None
    quantity: int
    reorder_threshold: int

    @property
    def target_location_id(self) -> UUID:
        return self.location_id
