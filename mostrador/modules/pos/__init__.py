"""
Módulo POS (Point of Sale)

Cobro de ventas en mostrador y turnos de caja:
- settlement.py: cálculo del cobro (crédito, vuelto, sobrepago), sin efectos
- models.py: DrawerSession, Sale, SaleLine
- schemas.py: Pydantic schemas para validación y serialización
- services.py: DrawerService y SaleOrchestrator (importar desde el submódulo)
- routers.py: Endpoints REST API
"""

from .settlement import (
    PaymentMethod, OverpaymentPolicy, CartItem, Cart, RemoteSaleRequest,
    SettlementRequest, SettlementPlan, SettlementCalculator, calculate_settlement
)
from .models import DrawerSession, DrawerState, Sale, SaleLine, SaleState

__all__ = [
    # Settlement
    "PaymentMethod",
    "OverpaymentPolicy",
    "CartItem",
    "Cart",
    "RemoteSaleRequest",
    "SettlementRequest",
    "SettlementPlan",
    "SettlementCalculator",
    "calculate_settlement",

    # Models
    "DrawerSession",
    "DrawerState",
    "Sale",
    "SaleLine",
    "SaleState",
]
