import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mostrador.core.config import settings
from mostrador.common.exceptions import (
    ValidationError, InsufficientStock, ProductNotFound, LocationNotFound, PersistenceFailure
)
from mostrador.modules.products.models import StockEntry, Product, InventoryMovement
from mostrador.modules.locations.models import Location
from mostrador.modules.inventory.schemas import StockOut, ProductStockSummary, MovementType
from mostrador.modules.notifications.events import LowStockAlert
from mostrador.modules.notifications.service import Notifier
from mostrador.modules.pos.settlement import Fulfillment, RemoteSaleRequest

logger = logging.getLogger(__name__)


class StockDispatcher:
    """
    Único escritor de StockEntry.quantity.

    decrement/increment son un UPDATE condicional por (producto, local) más
    el movimiento de inventario, confirmados juntos. La condición
    quantity >= solicitado vive en la misma sentencia, así que ventas
    concurrentes del mismo producto nunca dejan stock negativo.
    """

    def __init__(self, db: Session, notifier: Optional[Notifier] = None,
                 low_stock_alerts: Optional[bool] = None):
        self.db = db
        self.notifier = notifier
        self.low_stock_alerts = settings.LOW_STOCK_ALERTS_ENABLED if low_stock_alerts is None else low_stock_alerts

    def _validate_quantity(self, quantity: int) -> int:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                "La cantidad debe ser un entero positivo",
                details={"quantity": quantity}
            )
        return quantity

    def get_entry(self, product_id: UUID, location_id: UUID) -> Optional[StockEntry]:
        return self.db.query(StockEntry).filter(
            StockEntry.product_id == product_id,
            StockEntry.location_id == location_id
        ).first()

    def get_stock_by_product(self, product_id: UUID) -> ProductStockSummary:
        """Stock de un producto en todos los locales."""
        entries = self.db.query(StockEntry).options(
            selectinload(StockEntry.product),
            selectinload(StockEntry.location)
        ).filter(StockEntry.product_id == product_id).all()

        locations = [self._to_out(entry) for entry in entries]
        return ProductStockSummary(
            product_id=product_id,
            total_quantity=sum(entry.quantity for entry in entries),
            locations=locations
        )

    def _to_out(self, entry: StockEntry) -> StockOut:
        return StockOut(
            id=entry.id,
            product_id=entry.product_id,
            location_id=entry.location_id,
            quantity=entry.quantity,
            reorder_threshold=entry.reorder_threshold,
            product_name=entry.product.name if entry.product else None,
            product_sku=entry.product.sku if entry.product else None,
            location_name=entry.location.name if entry.location else None
        )

    def available_elsewhere(self, product_id: UUID, exclude_location_id: UUID, quantity: int) -> List[dict]:
        """Locales activos con stock suficiente, sugeridos para una venta remota."""
        rows = self.db.query(StockEntry.location_id, Location.name, StockEntry.quantity).join(
            Location, Location.id == StockEntry.location_id
        ).filter(
            StockEntry.product_id == product_id,
            StockEntry.location_id != exclude_location_id,
            StockEntry.quantity >= quantity,
            Location.is_active == True
        ).order_by(StockEntry.quantity.desc()).all()

        return [
            {"location_id": str(location_id), "location_name": name, "quantity": qty}
            for location_id, name, qty in rows
        ]

    def resolve_fulfillment(self, selling_location_id: UUID,
                            remote: Optional[RemoteSaleRequest]) -> Fulfillment:
        """Local del que se descuenta el stock: el de la caja o el de origen en venta remota."""
        fulfillment = Fulfillment.resolve(selling_location_id, remote)
        if fulfillment.is_remote:
            location = self.db.query(Location).filter(
                Location.id == fulfillment.fulfilling_location_id,
                Location.is_active == True
            ).first()
            if not location:
                raise LocationNotFound(
                    "Local de origen no encontrado o inactivo",
                    details={"location_id": str(fulfillment.fulfilling_location_id)}
                )
        return fulfillment

    def decrement(self, product_id: UUID, location_id: UUID, quantity: int,
                  reference: Optional[str] = None, created_by: Optional[UUID] = None,
                  alert: bool = True) -> int:
        """
        Descuenta stock del local indicado. Devuelve la cantidad resultante.

        Con alert=False no se avisa stock bajo; quien llama decide cuándo
        hacerlo con alert_if_low (el cobro lo hace recién al confirmar la venta).
        """
        quantity = self._validate_quantity(quantity)

        stmt = (
            update(StockEntry)
            .where(
                StockEntry.product_id == product_id,
                StockEntry.location_id == location_id,
                StockEntry.quantity >= quantity
            )
            .values(quantity=StockEntry.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                raise self._insufficient(product_id, location_id, quantity)

            remaining, threshold = self.db.query(
                StockEntry.quantity, StockEntry.reorder_threshold
            ).filter(
                StockEntry.product_id == product_id,
                StockEntry.location_id == location_id
            ).one()

            self.db.add(InventoryMovement(
                product_id=product_id,
                location_id=location_id,
                quantity=-quantity,
                movement_type=MovementType.OUT.value,
                reference=reference,
                created_by=created_by
            ))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"No se pudo descontar stock: {exc}") from exc

        logger.info(f"Stock OUT {quantity} of product {product_id} at location {location_id} ({reference})")

        if alert and remaining <= threshold:
            self._alert_low_stock(product_id, location_id, remaining, threshold)
        return remaining

    def alert_if_low(self, product_id: UUID, location_id: UUID) -> None:
        """Avisa stock bajo según la cantidad actual. Nunca lanza."""
        if not self.low_stock_alerts or self.notifier is None:
            return
        try:
            row = self.db.query(StockEntry.quantity, StockEntry.reorder_threshold).filter(
                StockEntry.product_id == product_id,
                StockEntry.location_id == location_id
            ).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(f"Low stock check for product {product_id} at location {location_id} failed: {exc}")
            return
        if row is not None and row.quantity <= row.reorder_threshold:
            self._alert_low_stock(product_id, location_id, row.quantity, row.reorder_threshold)

    def increment(self, product_id: UUID, location_id: UUID, quantity: int,
                  reference: Optional[str] = None, created_by: Optional[UUID] = None,
                  movement_type: MovementType = MovementType.IN, notes: Optional[str] = None) -> int:
        """Suma stock (reposición o reversión). Crea la entrada si no existe."""
        quantity = self._validate_quantity(quantity)

        stmt = (
            update(StockEntry)
            .where(StockEntry.product_id == product_id, StockEntry.location_id == location_id)
            .values(quantity=StockEntry.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        # Un segundo intento cubre la creación concurrente de la misma entrada
        for attempt in range(2):
            try:
                result = self.db.execute(stmt)
                if result.rowcount == 0:
                    self._require_product_and_location(product_id, location_id)
                    self.db.add(StockEntry(product_id=product_id, location_id=location_id, quantity=quantity))
                    self.db.flush()

                self.db.add(InventoryMovement(
                    product_id=product_id,
                    location_id=location_id,
                    quantity=quantity,
                    movement_type=movement_type.value,
                    reference=reference,
                    notes=notes,
                    created_by=created_by
                ))
                remaining = self.db.query(StockEntry.quantity).filter(
                    StockEntry.product_id == product_id,
                    StockEntry.location_id == location_id
                ).scalar()
                self.db.commit()
                break
            except IntegrityError as exc:
                self.db.rollback()
                if attempt == 1:
                    raise PersistenceFailure(f"No se pudo sumar stock: {exc}") from exc
            except SQLAlchemyError as exc:
                self.db.rollback()
                raise PersistenceFailure(f"No se pudo sumar stock: {exc}") from exc
            except (ProductNotFound, LocationNotFound):
                self.db.rollback()
                raise

        logger.info(f"Stock {movement_type.value} {quantity} of product {product_id} at location {location_id} ({reference})")
        return remaining

    def set_reorder_threshold(self, product_id: UUID, location_id: UUID, threshold: int) -> None:
        entry = self.get_entry(product_id, location_id)
        if entry is None:
            raise ValidationError(
                "No existe stock para el producto en el local",
                details={"product_id": str(product_id), "location_id": str(location_id)}
            )
        entry.reorder_threshold = threshold
        self.db.commit()

    def _require_product_and_location(self, product_id: UUID, location_id: UUID):
        if not self.db.query(Product.id).filter(Product.id == product_id).first():
            raise ProductNotFound(details={"product_id": str(product_id)})
        if not self.db.query(Location.id).filter(Location.id == location_id).first():
            raise LocationNotFound(details={"location_id": str(location_id)})

    def _insufficient(self, product_id: UUID, location_id: UUID, requested: int) -> InsufficientStock:
        entry = self.get_entry(product_id, location_id)
        available = entry.quantity if entry else 0
        product_name = self.db.query(Product.name).filter(Product.id == product_id).scalar()
        logger.warning(
            f"Stock decrement rejected for product {product_id} at location {location_id}: "
            f"available {available}, requested {requested}"
        )
        return InsufficientStock(
            f"Stock insuficiente para {product_name or product_id}. Disponible: {available}, Solicitado: {requested}",
            details={
                "product_id": str(product_id),
                "product_name": product_name,
                "location_id": str(location_id),
                "available": available,
                "requested": requested,
                "available_elsewhere": self.available_elsewhere(product_id, location_id, requested),
            }
        )

    def _alert_low_stock(self, product_id: UUID, location_id: UUID, quantity: int, threshold: int):
        if not self.low_stock_alerts or self.notifier is None:
            return
        try:
            product_name = self.db.query(Product.name).filter(Product.id == product_id).scalar()
            self.notifier.publish(LowStockAlert(
                location_id=location_id,
                product_id=product_id,
                product_name=product_name,
                quantity=quantity,
                reorder_threshold=threshold
            ))
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(f"Low stock alert for product {product_id} at location {location_id} failed: {exc}")
        except Exception as exc:
            logger.warning(f"Low stock alert for product {product_id} at location {location_id} failed: {exc}")
