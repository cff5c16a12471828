from mostrador.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from mostrador.common.mixins import TimestampMixin
from mostrador.common.money import Money, MoneyType

class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    sku = Column(String(50), nullable=False, unique=True)
    description = Column(String(255), nullable=True)
    bar_code = Column(String(50), nullable=True, index=True)  # Código de barras
    price = Column(MoneyType, nullable=False, default=Money.zero())  # Precio de venta vigente
    is_active = Column(Boolean, default=True)

    # Relationships
    stocks = relationship("StockEntry", back_populates="product", cascade="all, delete-orphan")
    movements = relationship("InventoryMovement", back_populates="product")

class InventoryMovement(Base, TimestampMixin):
    __tablename__ = "inventory_movements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, index=True)
    location_id = Column(Uuid, ForeignKey("locations.id"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)  # Can be positive or negative
    movement_type = Column(String(20), nullable=False)  # IN, OUT, ADJ
    reference = Column(String(100), nullable=True)  # Venta, reposición, reversión
    notes = Column(String(255), nullable=True)

    created_by = Column(Uuid, nullable=True)

    # Relationships
    product = relationship("Product", back_populates="movements")
    location = relationship("Location")

class StockEntry(Base, TimestampMixin):
    __tablename__ = "stocks"

    id = Column(Uuid, primary_key=True, default=uuid4)
    quantity = Column(Integer, nullable=False, default=0)
    reorder_threshold = Column(Integer, nullable=False, default=0)  # Cantidad mínima para alertas

    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)
    location_id = Column(Uuid, ForeignKey("locations.id"), nullable=False)

    # Relationships
    product = relationship("Product", back_populates="stocks")
    location = relationship("Location")

    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
        CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
    )
