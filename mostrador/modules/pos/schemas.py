"""
Esquemas Pydantic para el módulo POS (Point of Sale)

Define la validación de datos de entrada y salida para:
- DrawerSession: Apertura, cierre y estado de caja
- Sale: Cobro de ventas (local, con crédito, remota)

Los montos viajan como texto decimal con dos decimales; los números
flotantes se rechazan en la entrada.
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import datetime

from mostrador.modules.pos.settlement import PaymentMethod
from mostrador.modules.pos.models import DrawerState, SaleState


def _reject_float(v):
    if isinstance(v, float):
        raise ValueError("Los montos deben enviarse como texto decimal, no como número flotante")
    return v


def _money_to_decimal(v):
    return getattr(v, "amount", v)


# ===== DRAWER SCHEMAS =====

class DrawerOpen(BaseModel):
    """Esquema para abrir caja"""
    opening_float: Decimal = Field(..., ge=0, decimal_places=2, description="Fondo inicial de apertura")
    opening_notes: Optional[str] = Field(None, max_length=500, description="Notas de apertura")

    @field_validator("opening_float", mode="before")
    @classmethod
    def validate_opening_float(cls, v):
        return _reject_float(v)


class DrawerClose(BaseModel):
    """Esquema para cerrar caja con arqueo"""
    counted_amount: Decimal = Field(..., ge=0, decimal_places=2, description="Efectivo contado al cierre")
    closing_notes: Optional[str] = Field(None, max_length=500, description="Notas de cierre")

    @field_validator("counted_amount", mode="before")
    @classmethod
    def validate_counted_amount(cls, v):
        return _reject_float(v)


class DrawerSessionOut(BaseModel):
    """Esquema de salida para caja"""
    id: UUID = Field(description="ID único de la caja")
    cashier_id: UUID = Field(description="Cajero responsable")
    location_id: UUID = Field(description="Local de la caja")
    state: DrawerState = Field(description="Estado de la caja")
    opening_float: Decimal = Field(description="Fondo de apertura")
    opened_at: datetime = Field(description="Fecha y hora de apertura")
    closed_at: Optional[datetime] = Field(None, description="Fecha y hora de cierre")
    counted_close: Optional[Decimal] = Field(None, description="Efectivo contado")
    expected_close: Optional[Decimal] = Field(None, description="Efectivo esperado al cierre")
    variance: Optional[Decimal] = Field(None, description="Contado menos esperado")
    expected_cash: Decimal = Field(description="Efectivo esperado en este momento")
    sale_count: int = Field(description="Cantidad de ventas")
    sales_total: Decimal = Field(description="Total vendido")
    totals_by_method: Dict[PaymentMethod, Decimal] = Field(description="Cobrado por método de pago")
    opening_notes: Optional[str] = None
    closing_notes: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator(
        "opening_float", "counted_close", "expected_close", "variance", "expected_cash", "sales_total",
        mode="before"
    )
    @classmethod
    def validate_money(cls, v):
        return _money_to_decimal(v)

    @field_validator("totals_by_method", mode="before")
    @classmethod
    def validate_totals(cls, v):
        return {method: _money_to_decimal(amount) for method, amount in v.items()}


class DrawerSummaryOut(BaseModel):
    """Resultado del cierre de caja"""
    session: DrawerSessionOut
    sale_count: int
    sales_total: Decimal
    expected_close: Decimal
    counted_close: Decimal
    variance: Decimal
    totals_by_method: Dict[PaymentMethod, Decimal]


class DrawerSessionList(BaseModel):
    items: List[DrawerSessionOut]
    total: int
    limit: int
    offset: int


# ===== SALE SCHEMAS =====

class SaleItemIn(BaseModel):
    product_id: UUID = Field(..., description="ID del producto")
    quantity: int = Field(..., gt=0, description="Cantidad")


class SaleCreate(BaseModel):
    """Esquema para cobrar una venta"""
    items: List[SaleItemIn] = Field(..., min_length=1, description="Productos del carrito")
    method: PaymentMethod = Field(PaymentMethod.CASH, description="Método de pago")
    customer_id: Optional[UUID] = Field(None, description="Cliente (requerido para usar crédito)")
    use_credit: bool = Field(False, description="Aplicar crédito del cliente")
    credit_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Crédito a usar; por defecto todo el disponible")
    cash_tendered: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Efectivo recibido")
    other_tendered: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Monto cobrado con tarjeta/QR/transferencia")
    deposit_change_to_credit: bool = Field(False, description="Depositar el vuelto como crédito del cliente")
    drawer_session_id: Optional[UUID] = Field(None, description="Caja; por defecto la caja abierta del cajero")
    fulfilling_location_id: Optional[UUID] = Field(None, description="Local del que sale la mercadería (venta remota)")
    buyer_name: Optional[str] = Field(None, max_length=150, description="Nombre del comprador (venta remota)")

    @field_validator("credit_amount", "cash_tendered", "other_tendered", mode="before")
    @classmethod
    def validate_amounts(cls, v):
        return _reject_float(v)


class SaleLineOut(BaseModel):
    product_id: UUID
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    model_config = {"from_attributes": True}

    @field_validator("unit_price", "subtotal", mode="before")
    @classmethod
    def validate_money(cls, v):
        return _money_to_decimal(v)


class SaleOut(BaseModel):
    """Venta confirmada con el desglose del cobro"""
    id: UUID
    location_id: UUID
    fulfilling_location_id: Optional[UUID] = None
    is_remote: bool
    buyer_name: Optional[str] = None
    cashier_id: UUID
    customer_id: Optional[UUID] = None
    drawer_session_id: UUID
    method: PaymentMethod
    state: SaleState
    total: Decimal
    credit_applied: Decimal
    net_due: Decimal
    tendered_cash: Decimal
    tendered_other: Decimal
    change_due: Decimal
    credit_top_up: Decimal
    overpayment: Decimal
    created_at: datetime
    lines: List[SaleLineOut]

    model_config = {"from_attributes": True}

    @field_validator(
        "total", "credit_applied", "net_due", "tendered_cash", "tendered_other",
        "change_due", "credit_top_up", "overpayment",
        mode="before"
    )
    @classmethod
    def validate_money(cls, v):
        return _money_to_decimal(v)


class SaleList(BaseModel):
    items: List[SaleOut]
    total: int
    limit: int
    offset: int
