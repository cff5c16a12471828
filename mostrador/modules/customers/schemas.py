"""
Schemas Pydantic para el módulo de Clientes
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from decimal import Decimal


def _reject_float(v):
    if isinstance(v, float):
        raise ValueError("Los montos deben enviarse como texto decimal, no como número flotante")
    return v


def _money_to_decimal(v):
    return getattr(v, "amount", v)


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150, description="Nombre del cliente")
    document: Optional[str] = Field(None, max_length=30, description="Documento de identidad")
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    initial_credit: Decimal = Field(Decimal("0"), ge=0, decimal_places=2, description="Crédito inicial a favor")

    @field_validator("initial_credit", mode="before")
    @classmethod
    def validate_initial_credit(cls, v):
        return _reject_float(v)


class CustomerUpdate(BaseModel):
    """Datos de contacto; el saldo de crédito no se edita por acá"""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    document: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    is_active: Optional[bool] = None

    model_config = {"extra": "forbid"}


class CustomerOut(BaseModel):
    id: UUID
    name: str
    document: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    credit_balance: Decimal
    is_active: bool

    model_config = {"from_attributes": True}

    @field_validator("credit_balance", mode="before")
    @classmethod
    def validate_credit_balance(cls, v):
        return _money_to_decimal(v)


class CustomerList(BaseModel):
    items: List[CustomerOut]
    total: int
    limit: int
    offset: int


class CreditBalanceOut(BaseModel):
    customer_id: UUID
    available: Decimal = Field(..., description="Crédito disponible")


class CreditDeposit(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Monto a acreditar")
    notes: Optional[str] = Field(None, max_length=255)

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        return _reject_float(v)
