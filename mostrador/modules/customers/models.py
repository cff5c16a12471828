"""
Modelos SQLAlchemy para el módulo de Clientes

- Customer: cliente del comercio con saldo de crédito a favor

El saldo de crédito sólo se modifica a través de CreditLedger
(ver service.py); ningún otro módulo escribe credit_balance.
"""

from mostrador.database.database import Base
from sqlalchemy import Column, String, Boolean, CheckConstraint, Uuid
from uuid import uuid4
from mostrador.common.mixins import TimestampMixin
from mostrador.common.money import Money, MoneyType


class Customer(Base, TimestampMixin):
    """Cliente con crédito en la tienda"""
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(150), nullable=False, index=True)
    document = Column(String(30), nullable=True, unique=True)  # DNI / CUIT / NIT
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    credit_balance = Column(MoneyType, nullable=False, default=Money.zero())
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("credit_balance >= 0", name="ck_customer_credit_non_negative"),
    )
