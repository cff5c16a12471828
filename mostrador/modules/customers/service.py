"""
Servicios de negocio para el módulo de Clientes

Implementa:
- CustomerService: alta, consulta, edición y búsqueda de clientes
- CreditLedger: saldo de crédito a favor con débitos/créditos atómicos

Cada operación del ledger es un único UPDATE condicional confirmado en su
propia transacción. La condición (credit_balance >= monto) se evalúa en la
misma sentencia que descuenta, así que dos débitos concurrentes sobre el
mismo cliente nunca pueden dejar el saldo negativo ni perder una
actualización; clientes distintos no se bloquean entre sí.
"""

import logging
from typing import Optional, Dict, Any
from uuid import UUID

from sqlalchemy import update, or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mostrador.common.exceptions import (
    ValidationError, InsufficientCredit, CustomerNotFound, PersistenceFailure
)
from mostrador.common.money import Money
from mostrador.modules.customers.models import Customer
from mostrador.modules.customers.schemas import CustomerCreate, CustomerUpdate

logger = logging.getLogger(__name__)


class CreditLedger:
    """Fuente de verdad del crédito disponible de cada cliente"""

    def __init__(self, db: Session):
        self.db = db

    def _validate_amount(self, amount: Money) -> Money:
        if not isinstance(amount, Money):
            raise TypeError("El monto del ledger debe ser Money")
        if amount.is_negative():
            raise ValidationError(
                "El monto no puede ser negativo",
                details={"amount": str(amount)}
            )
        return amount

    def get_available(self, customer_id: UUID) -> Money:
        balance = self.db.query(Customer.credit_balance).filter(Customer.id == customer_id).scalar()
        if balance is None:
            raise CustomerNotFound(
                f"Cliente {customer_id} no encontrado",
                details={"customer_id": str(customer_id)}
            )
        return balance

    def debit(self, customer_id: UUID, amount: Money) -> None:
        """Descuenta crédito. Falla con InsufficientCredit si el saldo no alcanza."""
        amount = self._validate_amount(amount)
        if amount.is_zero():
            self.get_available(customer_id)
            return

        stmt = (
            update(Customer)
            .where(Customer.id == customer_id, Customer.credit_balance >= amount)
            .values(credit_balance=Customer.credit_balance - amount)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                available = self.get_available(customer_id)
                logger.warning(
                    f"Credit debit rejected for customer {customer_id}: available {available}, requested {amount}"
                )
                raise InsufficientCredit(
                    f"Crédito insuficiente. Disponible: ${available}, Solicitado: ${amount}",
                    details={
                        "customer_id": str(customer_id),
                        "available": str(available),
                        "requested": str(amount),
                    }
                )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"No se pudo debitar crédito: {exc}") from exc

        logger.info(f"Credit debit of {amount} applied to customer {customer_id}")

    def credit(self, customer_id: UUID, amount: Money) -> None:
        """Acredita saldo. Siempre procede para montos no negativos."""
        amount = self._validate_amount(amount)
        if amount.is_zero():
            self.get_available(customer_id)
            return

        stmt = (
            update(Customer)
            .where(Customer.id == customer_id)
            .values(credit_balance=Customer.credit_balance + amount)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                raise CustomerNotFound(
                    f"Cliente {customer_id} no encontrado",
                    details={"customer_id": str(customer_id)}
                )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"No se pudo acreditar saldo: {exc}") from exc

        logger.info(f"Credit of {amount} added to customer {customer_id}")


class CustomerService:
    """Servicio para gestión de clientes"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = CreditLedger(db)

    def create_customer(self, data: CustomerCreate) -> Customer:
        """Crear cliente; el crédito inicial entra por el ledger."""
        customer = Customer(
            name=data.name,
            document=data.document,
            email=data.email,
            phone=data.phone,
            credit_balance=Money.zero()
        )
        try:
            self.db.add(customer)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError(
                f"Ya existe un cliente con el documento {data.document}",
                details={"document": data.document}
            )

        initial_credit = Money.of(data.initial_credit)
        if initial_credit.is_positive():
            self.ledger.credit(customer.id, initial_credit)

        self.db.refresh(customer)
        return customer

    def get_customer(self, customer_id: UUID) -> Customer:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise CustomerNotFound(
                f"Cliente {customer_id} no encontrado",
                details={"customer_id": str(customer_id)}
            )
        return customer

    def update_customer(self, customer_id: UUID, data: CustomerUpdate) -> Customer:
        """Actualizar datos de contacto. Email o teléfono vacíos se borran."""
        customer = self.get_customer(customer_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("name") is None:
            changes.pop("name", None)
        if changes.get("is_active") is None:
            changes.pop("is_active", None)
        for field in ("document", "email", "phone"):
            if field in changes and not changes[field]:
                changes[field] = None

        document = changes.get("document")
        if document and document != customer.document:
            existing = self.db.query(Customer.id).filter(
                Customer.document == document,
                Customer.id != customer_id
            ).first()
            if existing:
                raise ValidationError(
                    f"Ya existe otro cliente con el documento {document}",
                    details={"document": document}
                )

        for field, value in changes.items():
            setattr(customer, field, value)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError(
                f"Ya existe otro cliente con el documento {document}",
                details={"document": document}
            )

        self.db.refresh(customer)
        logger.info(f"Customer {customer_id} updated: {sorted(changes)}")
        return customer

    def list_customers(self, search: Optional[str] = None, limit: int = 20, offset: int = 0) -> Dict[str, Any]:
        query = self.db.query(Customer).filter(Customer.is_active == True)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Customer.name.ilike(pattern),
                Customer.document.ilike(pattern),
                Customer.email.ilike(pattern)
            ))
        total = query.count()
        items = query.order_by(Customer.name).offset(offset).limit(limit).all()
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def deposit_credit(self, customer_id: UUID, amount: Money) -> Money:
        """Carga de crédito en mostrador. Devuelve el saldo resultante."""
        self.ledger.credit(customer_id, amount)
        return self.ledger.get_available(customer_id)
