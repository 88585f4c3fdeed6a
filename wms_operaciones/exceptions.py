# wms_operaciones/exceptions.py
"""
Excepciones de negocio del motor de operaciones de almacén.
Todas heredan de WMSBaseException para manejo centralizado en la API.
"""

from typing import Dict, Any, Optional


class WMSBaseException(Exception):
    """Excepción base para todos los errores de negocio del WMS."""

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(WMSBaseException):
    """Error de validación de datos de entrada."""
    pass


class NotFoundError(WMSBaseException):
    """Operación o item inexistente."""
    pass


class InvalidTransitionError(WMSBaseException):
    """Acción no permitida en el estado actual de la operación."""
    pass


class OverQuantityError(WMSBaseException):
    """La cantidad procesada superaría la cantidad solicitada."""
    pass


class AlreadyChainedError(WMSBaseException):
    """La operación ya tiene una operación siguiente."""
    pass


class PermissionDeniedError(WMSBaseException):
    """Usuario sin permisos suficientes."""
    pass


class ErrorCodes:
    """Códigos de error centralizados."""

    # Errores de Operación (OP_xxx)
    OPERATION_NOT_FOUND = "OP_001"
    INVALID_TRANSITION = "OP_002"
    OPERATION_TERMINAL = "OP_003"
    INVALID_OPERATION_TYPE = "OP_004"
    OPERATION_INCOMPLETE = "OP_005"
    ALREADY_CHAINED = "OP_006"
    MOTIVO_REQUIRED = "OP_007"

    # Errores de Item (ITEM_xxx)
    ITEM_NOT_FOUND = "ITEM_001"
    OVER_QUANTITY = "ITEM_002"
    ITEM_CANCELLED = "ITEM_003"
    ITEM_ALREADY_PROCESSED = "ITEM_004"
    ITEM_NOT_IN_OPERATION = "ITEM_005"

    # Errores de Validación (VAL_xxx)
    INVALID_QUANTITY = "VAL_001"
    MISSING_REQUIRED_FIELD = "VAL_002"
    INVALID_FIELD = "VAL_003"
    INVALID_USER = "VAL_004"
    INVALID_PRIORITY = "VAL_005"
    INVALID_TOPOLOGY = "VAL_006"

    # Errores de Permisos (PERM_xxx)
    PERMISSION_DENIED = "PERM_001"
