"""
Errores de negocio del punto de venta.

Cada error lleva un código estable, un mensaje legible y detalles
estructurados (crédito o stock disponible, restricción violada) para que la
interfaz pueda explicar el rechazo sin exponer detalles de la base de datos.
El handler registrado en main los traduce a JSON {code, message, details}.
"""

from typing import Any, Dict, Optional


class POSError(Exception):
    code = "POS_ERROR"
    status_code = 400
    default_message = "Error en la operación"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


# ===== VALIDACIÓN =====

class ValidationError(POSError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Solicitud inválida"


class InvalidSettlement(ValidationError):
    code = "INVALID_SETTLEMENT"
    default_message = "Cobro inconsistente"


class OverpaymentNotAllowedWithFullCredit(ValidationError):
    code = "OVERPAYMENT_NOT_ALLOWED_WITH_FULL_CREDIT"
    default_message = "La venta está cubierta con crédito; no se deben registrar montos pagados"


# ===== REGLAS DE NEGOCIO =====

class InsufficientCredit(POSError):
    code = "INSUFFICIENT_CREDIT"
    status_code = 409
    default_message = "Crédito insuficiente"


class InsufficientStock(POSError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409
    default_message = "Stock insuficiente"


class DrawerAlreadyOpen(POSError):
    code = "DRAWER_ALREADY_OPEN"
    status_code = 409
    default_message = "El cajero ya tiene una caja abierta"


class DrawerClosed(POSError):
    code = "DRAWER_CLOSED"
    status_code = 409
    default_message = "La caja está cerrada"


# ===== NO ENCONTRADOS =====

class NotFoundError(POSError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Recurso no encontrado"


class DrawerNotFound(NotFoundError):
    code = "DRAWER_NOT_FOUND"
    default_message = "Caja no encontrada"


class CustomerNotFound(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"
    default_message = "Cliente no encontrado"


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"
    default_message = "Producto no encontrado"


class LocationNotFound(NotFoundError):
    code = "LOCATION_NOT_FOUND"
    default_message = "Local no encontrado"


class SaleNotFound(NotFoundError):
    code = "SALE_NOT_FOUND"
    default_message = "Venta no encontrada"


# ===== INFRAESTRUCTURA =====

class PersistenceFailure(POSError):
    code = "PERSISTENCE_FAILURE"
    status_code = 503
    default_message = "Error de persistencia"


class CompensationFailure(POSError):
    """Un paso de reversión falló: el estado requiere intervención manual."""
    code = "COMPENSATION_FAILURE"
    status_code = 500
    default_message = "Falló la reversión de la venta; se requiere intervención"
