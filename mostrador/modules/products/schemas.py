from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from decimal import Decimal

class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Nombre del producto")
    sku: str = Field(..., min_length=1, max_length=50, description="Código interno único")
    description: Optional[str] = Field(None, max_length=255)
    bar_code: Optional[str] = Field(None, max_length=50, description="Código de barras")
    price: Decimal = Field(..., ge=0, decimal_places=2, description="Precio de venta")
    is_active: bool = True

    @field_validator("price", mode="before")
    @classmethod
    def reject_float(cls, v):
        if isinstance(v, float):
            raise ValueError("Los montos deben enviarse como texto decimal, no como número flotante")
        return v

class ProductOut(BaseModel):
    id: UUID
    name: str
    sku: str
    description: Optional[str] = None
    bar_code: Optional[str] = None
    price: Decimal
    is_active: bool

    model_config = {"from_attributes": True}

    @field_validator("price", mode="before")
    @classmethod
    def money_to_decimal(cls, v):
        return getattr(v, "amount", v)

class ProductList(BaseModel):
    items: List[ProductOut]
    total: int
    limit: int
    offset: int
