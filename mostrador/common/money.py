"""
Tipo monetario exacto del sistema.

Money guarda un entero de centavos; nunca un float. Las conversiones desde
texto o Decimal ocurren sólo en los bordes (schemas, consultas) y rechazan
valores con más de dos decimales en lugar de redondearlos.

MoneyType persiste Money como BIGINT de centavos.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Union

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator

from mostrador.common.exceptions import ValidationError

CENT = Decimal("0.01")

MoneyInput = Union["Money", Decimal, str, int]


@dataclass(frozen=True, order=True)
class Money:
    cents: int

    def __post_init__(self):
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError(f"Money requiere centavos enteros, recibió {type(self.cents).__name__}")

    @classmethod
    def of(cls, value: MoneyInput) -> "Money":
        """Convierte Decimal, texto o unidades enteras a Money sin perder precisión."""
        if isinstance(value, Money):
            return value
        if isinstance(value, float):
            raise TypeError("Money no acepta float; use Decimal o texto")
        if isinstance(value, bool):
            raise TypeError("Money no acepta bool")
        if isinstance(value, int):
            return cls(value * 100)
        if isinstance(value, str):
            try:
                value = Decimal(value.strip())
            except InvalidOperation:
                raise ValidationError(f"Monto inválido: '{value}'", details={"value": value})
        if isinstance(value, Decimal):
            if not value.is_finite():
                raise ValidationError("Monto inválido", details={"value": str(value)})
            quantized = value.quantize(CENT)
            if quantized != value:
                raise ValidationError(
                    f"El monto {value} tiene más de dos decimales",
                    details={"value": str(value)}
                )
            return cls(int(quantized * 100))
        raise TypeError(f"No se puede convertir {type(value).__name__} a Money")

    @classmethod
    def from_cents(cls, cents: int) -> "Money":
        return cls(cents)

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @property
    def amount(self) -> Decimal:
        return (Decimal(self.cents) / 100).quantize(CENT)

    def is_zero(self) -> bool:
        return self.cents == 0

    def is_positive(self) -> bool:
        return self.cents > 0

    def is_negative(self) -> bool:
        return self.cents < 0

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents + other.cents)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents - other.cents)

    def __mul__(self, factor: int) -> "Money":
        if isinstance(factor, bool) or not isinstance(factor, int):
            return NotImplemented
        return Money(self.cents * factor)

    __rmul__ = __mul__

    def __neg__(self) -> "Money":
        return Money(-self.cents)

    def __str__(self) -> str:
        return str(self.amount)

    def __repr__(self) -> str:
        return f"Money('{self.amount}')"


def money_sum(values) -> Money:
    total = Money.zero()
    for value in values:
        total = total + value
    return total


class MoneyType(TypeDecorator):
    """Columna BIGINT de centavos expuesta como Money."""

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, Money):
            return value.cents
        return Money.of(value).cents

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Money(int(value))
