"""
Router para el módulo de Clientes

Endpoints REST para:
- Alta, edición y búsqueda de clientes
- Consulta de crédito disponible
- Carga de crédito en mostrador
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from mostrador.core.config import settings
from mostrador.common.money import Money
from mostrador.database.database import get_db
from mostrador.modules.customers.service import CustomerService, CreditLedger
from mostrador.modules.customers.schemas import (
    CustomerCreate, CustomerUpdate, CustomerOut, CustomerList, CreditBalanceOut, CreditDeposit
)

router = APIRouter(
    prefix="/customers",
    tags=["Customers"],
    responses={404: {"description": "Not found"}}
)


@router.post("/", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(
    customer_data: CustomerCreate,
    db: Session = Depends(get_db)
):
    """
    Crear un nuevo cliente

    - **name**: Nombre del cliente (requerido)
    - **document**: Documento de identidad (único)
    - **initial_credit**: Crédito a favor inicial, como texto decimal
    """
    service = CustomerService(db)
    return service.create_customer(customer_data)


@router.get("/", response_model=CustomerList)
def list_customers(
    search: Optional[str] = Query(None, description="Buscar por nombre, documento o email"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    service = CustomerService(db)
    return service.list_customers(search=search, limit=limit, offset=offset)


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: UUID,
    db: Session = Depends(get_db)
):
    service = CustomerService(db)
    return service.get_customer(customer_id)


@router.put("/{customer_id}", response_model=CustomerOut)
def update_customer(
    customer_id: UUID,
    customer_data: CustomerUpdate,
    db: Session = Depends(get_db)
):
    """
    Actualizar datos de un cliente

    Sólo se modifican los campos enviados. El crédito se mueve con
    /credit/deposit o al cobrar, nunca desde este endpoint.
    """
    service = CustomerService(db)
    return service.update_customer(customer_id, customer_data)


@router.get("/{customer_id}/credit", response_model=CreditBalanceOut)
def get_credit_balance(
    customer_id: UUID,
    db: Session = Depends(get_db)
):
    """Crédito disponible del cliente para usar en una venta."""
    ledger = CreditLedger(db)
    available = ledger.get_available(customer_id)
    return CreditBalanceOut(customer_id=customer_id, available=available.amount)


@router.post("/{customer_id}/credit/deposit", response_model=CreditBalanceOut)
def deposit_credit(
    customer_id: UUID,
    deposit: CreditDeposit,
    db: Session = Depends(get_db)
):
    """
    Cargar crédito a favor del cliente.

    - **amount**: Monto a acreditar (mayor a 0)
    """
    service = CustomerService(db)
    balance = service.deposit_credit(customer_id, Money.of(deposit.amount))
    return CreditBalanceOut(customer_id=customer_id, available=balance.amount)
