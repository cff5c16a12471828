"""
Cálculo de cobro de una venta POS.

Dado un carrito, la intención de usar crédito del cliente y los montos
entregados por cada medio de pago, produce un SettlementPlan inmutable:
cuánto cubre el crédito, cuánto se debe, el vuelto y el crédito a depositar.

Este módulo no toca la base de datos. Las reglas variables se modelan como
objetos intercambiables:
- TenderRule: validación de montos según el método de pago
- ChangePolicy: devolver el vuelto o depositarlo como crédito del cliente
- OverpaymentPolicy: aceptar o rechazar excedentes en medios no efectivo
- Fulfillment: local que vende vs. local que entrega (venta remota)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from mostrador.common.exceptions import (
    ValidationError, InvalidSettlement, InsufficientCredit,
    OverpaymentNotAllowedWithFullCredit
)
from mostrador.common.money import Money, money_sum

# Un faltante menor a un centavo se considera cubierto. Con montos en
# centavos enteros sólo la cobertura exacta cumple.
TOLERANCE = Money.from_cents(1)


# ===== ENUMS =====

class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT = "CREDIT"
    CARD_DEBIT = "CARD_DEBIT"
    CARD_CREDIT = "CARD_CREDIT"
    QR = "QR"
    TRANSFER = "TRANSFER"
    MIXED = "MIXED"  # Efectivo + un medio no efectivo


NON_CASH_METHODS = frozenset({
    PaymentMethod.CARD_DEBIT,
    PaymentMethod.CARD_CREDIT,
    PaymentMethod.QR,
    PaymentMethod.TRANSFER,
})


class OverpaymentPolicy(str, Enum):
    ACCEPT = "ACCEPT"  # El excedente se registra como propina/sobrepago
    REJECT = "REJECT"


# ===== CARRITO =====

@dataclass(frozen=True)
class CartItem:
    product_id: UUID
    quantity: int
    unit_price: Money

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError(
                "La cantidad debe ser un entero positivo",
                details={"product_id": str(self.product_id), "quantity": self.quantity}
            )
        if not isinstance(self.unit_price, Money) or self.unit_price.is_negative():
            raise ValidationError(
                "Precio unitario inválido",
                details={"product_id": str(self.product_id)}
            )

    @property
    def subtotal(self) -> Money:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Cart:
    items: Tuple[CartItem, ...]

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        if not self.items:
            raise ValidationError("El carrito está vacío")

    @property
    def total(self) -> Money:
        return money_sum(item.subtotal for item in self.items)


# ===== VENTA REMOTA =====

@dataclass(frozen=True)
class RemoteSaleRequest:
    selling_location_id: UUID
    fulfilling_location_id: UUID
    buyer_name: Optional[str] = None


@dataclass(frozen=True)
class Fulfillment:
    """Dónde se registra la venta y de qué local sale la mercadería."""
    selling_location_id: UUID
    fulfilling_location_id: UUID
    buyer_name: Optional[str] = None

    @property
    def is_remote(self) -> bool:
        return self.fulfilling_location_id != self.selling_location_id

    @classmethod
    def resolve(cls, selling_location_id: UUID, remote: Optional[RemoteSaleRequest]) -> "Fulfillment":
        if remote is None:
            return cls(selling_location_id, selling_location_id)
        if remote.selling_location_id != selling_location_id:
            raise InvalidSettlement(
                "La venta remota debe registrarse en el local de la caja",
                details={
                    "selling_location_id": str(remote.selling_location_id),
                    "drawer_location_id": str(selling_location_id),
                }
            )
        return cls(selling_location_id, remote.fulfilling_location_id, remote.buyer_name)


# ===== SOLICITUD Y PLAN =====

@dataclass(frozen=True)
class SettlementRequest:
    cart: Cart
    method: PaymentMethod
    customer_id: Optional[UUID] = None
    use_credit: bool = False
    credit_amount_requested: Optional[Money] = None
    cash_tendered: Optional[Money] = None
    other_tendered: Optional[Money] = None
    deposit_change_to_credit: bool = False
    remote: Optional[RemoteSaleRequest] = None


@dataclass(frozen=True)
class SettlementPlan:
    method: PaymentMethod
    gross_total: Money
    credit_applied: Money
    net_due: Money
    tendered_cash: Money
    tendered_other: Money
    change_due: Money
    credit_top_up: Money
    overpayment: Money

    def __post_init__(self):
        if self.credit_applied + self.net_due != self.gross_total:
            raise InvalidSettlement(
                "Crédito aplicado más saldo no coincide con el total",
                details={
                    "gross_total": str(self.gross_total),
                    "credit_applied": str(self.credit_applied),
                    "net_due": str(self.net_due),
                }
            )

    @property
    def cash_retained(self) -> Money:
        """Efectivo que queda en la caja (incluye el vuelto depositado como crédito)."""
        return self.tendered_cash - self.change_due


@dataclass(frozen=True)
class TenderOutcome:
    tendered_cash: Money
    tendered_other: Money
    change_due: Money
    overpayment: Money


ZERO = Money.zero()
NO_TENDER = TenderOutcome(ZERO, ZERO, ZERO, ZERO)


def _covers(due: Money, tendered: Money) -> bool:
    return due - tendered < TOLERANCE


def _present(amount: Optional[Money]) -> bool:
    return amount is not None and not amount.is_zero()


def _check_overpayment(overpayment: Money, policy: OverpaymentPolicy, method: PaymentMethod):
    if overpayment.is_positive() and policy == OverpaymentPolicy.REJECT:
        raise InvalidSettlement(
            f"El monto para {method.value} excede el saldo y no se aceptan sobrepagos",
            details={"overpayment": str(overpayment)}
        )


# ===== REGLAS POR MÉTODO DE PAGO =====

class TenderRule:
    def apply(self, net_due: Money, cash: Optional[Money], other: Optional[Money],
              policy: OverpaymentPolicy) -> TenderOutcome:
        raise NotImplementedError


class CashTender(TenderRule):
    def apply(self, net_due, cash, other, policy):
        if _present(other):
            raise ValidationError("Para pago en efectivo no se debe especificar otro monto")
        if net_due.is_zero():
            if _present(cash):
                raise OverpaymentNotAllowedWithFullCredit(details={"cash_tendered": str(cash)})
            return NO_TENDER
        if not _present(cash):
            raise ValidationError("Debes especificar el monto recibido en efectivo")
        if not _covers(net_due, cash):
            raise ValidationError(
                "El monto recibido no puede ser menor al saldo de la venta",
                details={"net_due": str(net_due), "cash_tendered": str(cash)}
            )
        change = cash - net_due if cash > net_due else ZERO
        return TenderOutcome(cash, ZERO, change, ZERO)


class SingleInstrumentTender(TenderRule):
    """Tarjeta de débito o crédito, QR o transferencia."""

    def __init__(self, method: PaymentMethod):
        self.method = method

    def apply(self, net_due, cash, other, policy):
        if _present(cash):
            raise ValidationError(
                f"Para el método de pago {self.method.value}, no se debe especificar monto en efectivo"
            )
        if net_due.is_zero():
            overpayment = other or ZERO
            _check_overpayment(overpayment, policy, self.method)
            return TenderOutcome(ZERO, overpayment, ZERO, overpayment)
        if other is None:
            raise ValidationError(f"Para el método de pago {self.method.value}, el monto debe ser especificado")
        if not _covers(net_due, other):
            raise ValidationError(
                f"El monto para {self.method.value} no puede ser menor al saldo de la venta",
                details={"net_due": str(net_due), "other_tendered": str(other)}
            )
        overpayment = other - net_due if other > net_due else ZERO
        _check_overpayment(overpayment, policy, self.method)
        return TenderOutcome(ZERO, other, ZERO, overpayment)


class MixedTender(TenderRule):
    """Efectivo + un medio no efectivo. El excedente se devuelve del efectivo."""

    def apply(self, net_due, cash, other, policy):
        if net_due.is_zero():
            if _present(cash) or _present(other):
                raise OverpaymentNotAllowedWithFullCredit(
                    details={"cash_tendered": str(cash or ZERO), "other_tendered": str(other or ZERO)}
                )
            return NO_TENDER
        if not _present(cash) or not _present(other):
            raise ValidationError("Para pago mixto debes especificar monto en efectivo y otro monto")
        tendered = cash + other
        if not _covers(net_due, tendered):
            raise ValidationError(
                "La suma de los montos no puede ser menor al saldo de la venta",
                details={"net_due": str(net_due), "tendered": str(tendered)}
            )
        excess = tendered - net_due if tendered > net_due else ZERO
        change = min(excess, cash)
        overpayment = excess - change
        _check_overpayment(overpayment, policy, PaymentMethod.MIXED)
        return TenderOutcome(cash, other, change, overpayment)


class CreditOnlyTender(TenderRule):
    def apply(self, net_due, cash, other, policy):
        if _present(cash) or _present(other):
            raise ValidationError("El pago con crédito no admite otros montos")
        if not net_due.is_zero():
            raise InvalidSettlement(
                "Para pago con crédito, el crédito usado debe cubrir el total",
                details={"net_due": str(net_due)}
            )
        return NO_TENDER


TENDER_RULES = {
    PaymentMethod.CASH: CashTender(),
    PaymentMethod.MIXED: MixedTender(),
    PaymentMethod.CREDIT: CreditOnlyTender(),
    **{method: SingleInstrumentTender(method) for method in NON_CASH_METHODS},
}


# ===== POLÍTICA DE VUELTO =====

class ChangePolicy:
    def apply(self, change_due: Money) -> Tuple[Money, Money]:
        """Devuelve (vuelto, crédito a depositar)."""
        raise NotImplementedError


class ReturnChange(ChangePolicy):
    def apply(self, change_due):
        return change_due, ZERO


class DepositChangeToCredit(ChangePolicy):
    def apply(self, change_due):
        return ZERO, change_due


def change_policy_for(request: SettlementRequest) -> ChangePolicy:
    if request.deposit_change_to_credit:
        return DepositChangeToCredit()
    return ReturnChange()


# ===== CALCULADORA =====

class SettlementCalculator:
    def __init__(self, overpayment_policy: OverpaymentPolicy = OverpaymentPolicy.ACCEPT):
        self.overpayment_policy = overpayment_policy

    def _validate_request(self, request: SettlementRequest):
        for field in ("credit_amount_requested", "cash_tendered", "other_tendered"):
            amount = getattr(request, field)
            if amount is not None and amount.is_negative():
                raise ValidationError(f"El monto {field} no puede ser negativo", details={field: str(amount)})

        if request.use_credit and request.customer_id is None:
            raise InvalidSettlement("credit requires customer")
        if request.credit_amount_requested is not None and not request.use_credit:
            raise InvalidSettlement("Se indicó un monto de crédito sin activar el uso de crédito")
        if request.deposit_change_to_credit and request.customer_id is None:
            raise InvalidSettlement("Depositar el vuelto como crédito requiere un cliente")
        if request.method == PaymentMethod.CREDIT and not request.use_credit:
            raise InvalidSettlement("El método CREDIT requiere usar el crédito del cliente")

    def _credit_to_apply(self, request: SettlementRequest, available: Money, gross: Money) -> Money:
        if not request.use_credit:
            return ZERO
        requested = request.credit_amount_requested
        if requested is not None and requested > available:
            raise InsufficientCredit(
                f"Crédito insuficiente. Disponible: ${available}, Solicitado: ${requested}",
                details={"available": str(available), "requested": str(requested)}
            )
        if request.method == PaymentMethod.CREDIT and requested is None and available < gross:
            raise InsufficientCredit(
                f"Crédito insuficiente. Disponible: ${available}, Solicitado: ${gross}",
                details={"available": str(available), "requested": str(gross)}
            )
        wanted = requested if requested is not None else available
        return min(wanted, available, gross)

    def calculate(self, request: SettlementRequest, available_credit: Money) -> SettlementPlan:
        self._validate_request(request)

        gross = request.cart.total
        credit_applied = self._credit_to_apply(request, available_credit, gross)
        net_due = gross - credit_applied

        rule = TENDER_RULES[request.method]
        outcome = rule.apply(net_due, request.cash_tendered, request.other_tendered, self.overpayment_policy)
        change_due, credit_top_up = change_policy_for(request).apply(outcome.change_due)

        return SettlementPlan(
            method=request.method,
            gross_total=gross,
            credit_applied=credit_applied,
            net_due=net_due,
            tendered_cash=outcome.tendered_cash,
            tendered_other=outcome.tendered_other,
            change_due=change_due,
            credit_top_up=credit_top_up,
            overpayment=outcome.overpayment,
        )


def calculate_settlement(request: SettlementRequest, available_credit: Money,
                         overpayment_policy: OverpaymentPolicy = OverpaymentPolicy.ACCEPT) -> SettlementPlan:
    return SettlementCalculator(overpayment_policy).calculate(request, available_credit)
