"""
Módulo de Clientes

Gestiona los clientes del comercio y su crédito a favor.

Componentes:
- models.py: Customer con saldo de crédito
- schemas.py: Pydantic schemas para validación y serialización
- service.py: CustomerService y CreditLedger (débito/crédito atómicos)
- router.py: Endpoints REST API
- tests.py: Pruebas del ledger, incluida concurrencia
"""

from .models import Customer
from .schemas import CustomerCreate, CustomerOut, CustomerList, CreditBalanceOut, CreditDeposit
from .service import CustomerService, CreditLedger

__all__ = [
    # Models
    "Customer",

    # Schemas
    "CustomerCreate",
    "CustomerOut",
    "CustomerList",
    "CreditBalanceOut",
    "CreditDeposit",

    # Services
    "CustomerService",
    "CreditLedger"
]
