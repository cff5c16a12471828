from fastapi import APIRouter, status, Query
from typing import Optional
from uuid import UUID

from mostrador.core.config import settings
from mostrador.dependencies.dbDependencies import db_dependency
from mostrador.modules.products.service import CatalogService
from mostrador.modules.products.schemas import ProductCreate, ProductOut, ProductList

product_router = APIRouter(prefix="/products", tags=["Products"])


@product_router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    product: ProductCreate,
    db: db_dependency
):
    """
    Crear producto en el catálogo.

    - **price**: Precio de venta como texto decimal (ej. "1250.50")
    """
    return CatalogService(db).create_product(product)


@product_router.get("/", response_model=ProductList)
def list_products(
    db: db_dependency,
    search: Optional[str] = Query(None, description="Nombre, SKU o código de barras"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    return CatalogService(db).list_products(limit=limit, offset=offset, search=search)


@product_router.get("/{product_id}", response_model=ProductOut)
def get_product(
    product_id: UUID,
    db: db_dependency
):
    return CatalogService(db).get_product(product_id)
