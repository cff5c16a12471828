"""
Routers FastAPI para el módulo POS (Point of Sale)

Define los endpoints REST para:
- Drawers: Apertura/cierre de caja, estado actual e historial
- Sales: Cobro de ventas, consulta y listado

El cajero y su local llegan como contexto confiable (X-Cashier-ID,
X-Location-ID) desde CashierContextMiddleware.
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import datetime

from mostrador.core.config import settings
from mostrador.common.exceptions import DrawerNotFound
from mostrador.common.money import Money
from mostrador.database.database import get_db
from mostrador.dependencies.contextDependencies import CashierId, LocationId, NotifierDep
from mostrador.modules.pos.models import DrawerState
from mostrador.modules.pos.services import DrawerService, SaleOrchestrator
from mostrador.modules.pos.settlement import PaymentMethod
from mostrador.modules.pos.schemas import (
    DrawerOpen, DrawerClose, DrawerSessionOut, DrawerSummaryOut, DrawerSessionList,
    SaleCreate, SaleOut, SaleList
)


# ===== DRAWERS ROUTER =====

drawers_router = APIRouter(prefix="/drawers", tags=["POS"])


@drawers_router.post("/open", response_model=DrawerSessionOut, status_code=status.HTTP_201_CREATED)
def open_drawer(
    drawer_data: DrawerOpen,
    cashier_id: CashierId,
    location_id: LocationId,
    db: Session = Depends(get_db)
):
    """
    Abrir caja para el cajero en su local.

    - **opening_float**: Fondo inicial en efectivo
    - **opening_notes**: Notas opcionales de apertura

    Validaciones:
    - Solo una caja abierta por cajero simultáneamente
    - El local debe existir y estar activo
    """
    service = DrawerService(db)
    return service.open(
        cashier_id=cashier_id,
        location_id=location_id,
        opening_float=Money.of(drawer_data.opening_float),
        notes=drawer_data.opening_notes
    )


@drawers_router.get("/current", response_model=DrawerSessionOut)
def get_current_drawer(
    cashier_id: CashierId,
    db: Session = Depends(get_db)
):
    """
    Devuelve la caja abierta del cajero con sus acumulados en curso.

    - 404 si no hay caja abierta
    """
    service = DrawerService(db)
    session = service.get_status(cashier_id)
    if not session:
        raise DrawerNotFound("No hay caja abierta", details={"cashier_id": str(cashier_id)})
    return session


@drawers_router.post("/{session_id}/close", response_model=DrawerSummaryOut)
def close_drawer(
    session_id: UUID,
    close_data: DrawerClose,
    cashier_id: CashierId,
    db: Session = Depends(get_db)
):
    """
    Cerrar caja con arqueo.

    - **counted_amount**: Efectivo contado en la caja

    Se calcula el efectivo esperado (fondo + efectivo cobrado) y la
    diferencia contra lo contado. La diferencia sólo se informa.
    """
    service = DrawerService(db)
    summary = service.close(
        session_id,
        Money.of(close_data.counted_amount),
        notes=close_data.closing_notes,
        cashier_id=cashier_id
    )
    return DrawerSummaryOut(
        session=DrawerSessionOut.model_validate(summary.session),
        sale_count=summary.sale_count,
        sales_total=summary.sales_total.amount,
        expected_close=summary.expected_close.amount,
        counted_close=summary.counted_close.amount,
        variance=summary.variance.amount,
        totals_by_method={method: amount.amount for method, amount in summary.totals_by_method.items()}
    )


@drawers_router.get("/", response_model=DrawerSessionList)
def list_drawers(
    cashier_id: Optional[UUID] = Query(None, description="Filtrar por cajero"),
    location_id: Optional[UUID] = Query(None, description="Filtrar por local"),
    state: Optional[DrawerState] = Query(None, description="Filtrar por estado"),
    date_from: Optional[datetime] = Query(None, description="Abiertas desde"),
    date_to: Optional[datetime] = Query(None, description="Abiertas hasta"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    """Historial de cajas"""
    service = DrawerService(db)
    return service.list_sessions(
        cashier_id=cashier_id,
        location_id=location_id,
        state=state,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset
    )


# ===== SALES ROUTER =====

sales_router = APIRouter(prefix="/sales", tags=["POS"])


@sales_router.post("/", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    sale_data: SaleCreate,
    cashier_id: CashierId,
    notifier: NotifierDep,
    db: Session = Depends(get_db)
):
    """
    Cobrar una venta.

    - **items**: Productos y cantidades; el precio se toma del catálogo
    - **method**: CASH, CREDIT, CARD_DEBIT, CARD_CREDIT, QR, TRANSFER o MIXED
    - **use_credit** / **credit_amount**: Aplicar crédito del cliente
    - **cash_tendered** / **other_tendered**: Montos entregados
    - **deposit_change_to_credit**: Depositar el vuelto como crédito
    - **fulfilling_location_id** / **buyer_name**: Venta remota

    La venta es todo-o-nada: si falta crédito o stock no queda ningún
    cambio aplicado.
    """
    orchestrator = SaleOrchestrator(db, notifier)
    return orchestrator.create_sale(sale_data, cashier_id)


@sales_router.get("/", response_model=SaleList)
def list_sales(
    notifier: NotifierDep,
    location_id: Optional[UUID] = Query(None, description="Local de la venta"),
    cashier_id: Optional[UUID] = Query(None, description="Cajero"),
    drawer_session_id: Optional[UUID] = Query(None, description="Caja"),
    customer_id: Optional[UUID] = Query(None, description="Cliente"),
    method: Optional[PaymentMethod] = Query(None, description="Método de pago"),
    is_remote: Optional[bool] = Query(None, description="Solo ventas remotas / locales"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    orchestrator = SaleOrchestrator(db, notifier)
    return orchestrator.list_sales(
        location_id=location_id,
        cashier_id=cashier_id,
        drawer_session_id=drawer_session_id,
        customer_id=customer_id,
        method=method,
        is_remote=is_remote,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset
    )


@sales_router.get("/{sale_id}", response_model=SaleOut)
def get_sale(
    sale_id: UUID,
    notifier: NotifierDep,
    db: Session = Depends(get_db)
):
    orchestrator = SaleOrchestrator(db, notifier)
    return orchestrator.get_sale(sale_id)
