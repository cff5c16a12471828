"""
Catálogo de productos.

CatalogService resuelve los ítems pedidos en un carrito con el precio
vigente de cada producto; ese precio queda fijado en la línea de venta.
"""

from typing import Iterable, Tuple, Dict, Any
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from mostrador.common.exceptions import ProductNotFound, ValidationError
from mostrador.common.money import Money
from mostrador.modules.products.models import Product
from mostrador.modules.products.schemas import ProductCreate
from mostrador.modules.pos.settlement import Cart, CartItem


class CatalogService:
    """Servicio de consulta y alta de productos"""

    def __init__(self, db: Session):
        self.db = db

    def create_product(self, data: ProductCreate) -> Product:
        product = Product(
            name=data.name,
            sku=data.sku,
            description=data.description,
            bar_code=data.bar_code,
            price=Money.of(data.price),
            is_active=data.is_active
        )
        try:
            self.db.add(product)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError(
                f"Ya existe un producto con SKU '{data.sku}'",
                details={"sku": data.sku}
            )
        self.db.refresh(product)
        return product

    def get_product(self, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFound(details={"product_id": str(product_id)})
        return product

    def list_products(self, limit: int = 20, offset: int = 0, search: str = None) -> Dict[str, Any]:
        query = self.db.query(Product).filter(Product.is_active == True)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                Product.name.ilike(pattern) | Product.sku.ilike(pattern) | (Product.bar_code == search)
            )
        total = query.count()
        items = query.order_by(Product.name).offset(offset).limit(limit).all()
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def resolve_cart(self, lines: Iterable[Tuple[UUID, int]]) -> Cart:
        """
        Convierte pares (product_id, cantidad) en un Cart inmutable con el
        precio vigente. Productos inexistentes o inactivos se rechazan.
        """
        lines = list(lines)
        product_ids = {product_id for product_id, _ in lines}
        products = {
            p.id: p for p in self.db.query(Product).filter(
                Product.id.in_(product_ids),
                Product.is_active == True
            ).all()
        } if product_ids else {}

        items = []
        for product_id, quantity in lines:
            product = products.get(product_id)
            if product is None:
                raise ProductNotFound(
                    f"Producto {product_id} no encontrado o inactivo",
                    details={"product_id": str(product_id)}
                )
            items.append(CartItem(product_id=product.id, quantity=quantity, unit_price=product.price))

        return Cart(items=tuple(items))
