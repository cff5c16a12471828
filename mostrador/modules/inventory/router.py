from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from uuid import UUID

from mostrador.database.database import get_db
from mostrador.dependencies.contextDependencies import CashierId, NotifierDep
from mostrador.modules.inventory.service import StockDispatcher
from mostrador.modules.inventory.schemas import StockOut, StockReplenish, ProductStockSummary

stock_router = APIRouter(prefix="/stock", tags=["Inventory"])


@stock_router.get("/{product_id}", response_model=ProductStockSummary)
def get_product_stock(
    product_id: UUID,
    notifier: NotifierDep,
    db: Session = Depends(get_db)
):
    """
    Stock del producto en cada local.

    Útil para ofrecer una venta remota cuando el local de la caja no tiene stock.
    """
    dispatcher = StockDispatcher(db, notifier)
    return dispatcher.get_stock_by_product(product_id)


@stock_router.post("/replenish", response_model=StockOut, status_code=status.HTTP_201_CREATED)
def replenish_stock(
    data: StockReplenish,
    cashier_id: CashierId,
    notifier: NotifierDep,
    db: Session = Depends(get_db)
):
    """
    Ingreso de mercadería a un local.

    - **quantity**: Unidades recibidas (mayor a 0)
    - **reorder_threshold**: Nuevo punto de reposición (opcional)
    """
    dispatcher = StockDispatcher(db, notifier)
    dispatcher.increment(
        data.product_id, data.location_id, data.quantity,
        reference="REPOSICION", created_by=cashier_id, notes=data.notes
    )
    if data.reorder_threshold is not None:
        dispatcher.set_reorder_threshold(data.product_id, data.location_id, data.reorder_threshold)

    summary = dispatcher.get_stock_by_product(data.product_id)
    return next(entry for entry in summary.locations if entry.location_id == data.location_id)
