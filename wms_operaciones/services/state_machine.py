# wms_operaciones/services/state_machine.py
"""
Máquina de estados de las operaciones de almacén.
Compartida por el registro, el procesador de items y la asignación.
"""

from typing import Dict, Any

from wms_operaciones.exceptions import InvalidTransitionError, ValidationError, ErrorCodes


class OperationStateMachine:

    # ==========================================================================
    # CONSTANTES - TIPOS DE OPERACIÓN
    # ==========================================================================

    TIPO_RECEPCION = 'recepcion'
    TIPO_CONTROL_CALIDAD = 'control_calidad'
    TIPO_ALMACENAMIENTO = 'almacenamiento'
    TIPO_PICKING = 'picking'
    TIPO_EMPAQUE = 'empaque'
    TIPO_ENVIO = 'envio'
    TIPO_TRANSFERENCIA_INTERNA = 'transferencia_interna'

    VALID_TIPOS = (
        TIPO_RECEPCION, TIPO_CONTROL_CALIDAD, TIPO_ALMACENAMIENTO,
        TIPO_PICKING, TIPO_EMPAQUE, TIPO_ENVIO, TIPO_TRANSFERENCIA_INTERNA,
    )

    # ==========================================================================
    # CONSTANTES - ESTADOS
    # ==========================================================================

    BORRADOR = 'borrador'
    ASIGNADA = 'asignada'
    EN_PROCESO = 'en_proceso'
    PARCIAL = 'parcial'
    COMPLETADA = 'completada'
    CANCELADA = 'cancelada'

    VALID_ESTADOS = (BORRADOR, ASIGNADA, EN_PROCESO, PARCIAL, COMPLETADA, CANCELADA)
    ESTADOS_TERMINALES = frozenset({COMPLETADA, CANCELADA})
    ESTADOS_ACTIVOS = (BORRADOR, ASIGNADA, EN_PROCESO, PARCIAL)
    ESTADOS_PROCESABLES = frozenset({EN_PROCESO, PARCIAL})

    ALLOWED_TRANSITIONS = {
        BORRADOR: {ASIGNADA, EN_PROCESO, CANCELADA},
        ASIGNADA: {ASIGNADA, EN_PROCESO, CANCELADA},
        EN_PROCESO: {PARCIAL, COMPLETADA, CANCELADA},
        PARCIAL: {COMPLETADA, CANCELADA},
        COMPLETADA: set(),  # Estado final
        CANCELADA: set(),  # Estado final
    }

    # ==========================================================================
    # CONSTANTES - ITEMS
    # ==========================================================================

    ITEM_PENDIENTE = 'pendiente'
    ITEM_PROCESADO = 'procesado'
    ITEM_CANCELADO = 'cancelado'

    @staticmethod
    def validate_tipo(tipo_operacion: str) -> str:
        if tipo_operacion not in OperationStateMachine.VALID_TIPOS:
            raise ValidationError(
                f"Tipo de operación '{tipo_operacion}' no es válido",
                ErrorCodes.INVALID_OPERATION_TYPE,
                {"tipo_operacion": tipo_operacion, "validos": list(OperationStateMachine.VALID_TIPOS)}
            )
        return tipo_operacion

    @staticmethod
    def is_terminal(operacion: Dict[str, Any]) -> bool:
        return operacion['estado'] in OperationStateMachine.ESTADOS_TERMINALES

    @staticmethod
    def validate_transition(operacion: Dict[str, Any], nuevo_estado: str, accion: str) -> None:
        """
        Valida que la operación pueda pasar a nuevo_estado.
        Debe llamarse con la fila ya bloqueada.

        Raises:
            InvalidTransitionError: con operacion_id, estado_actual y accion en details
        """
        estado_actual = operacion['estado']
        allowed = OperationStateMachine.ALLOWED_TRANSITIONS.get(estado_actual, set())

        if nuevo_estado not in allowed:
            code = (ErrorCodes.OPERATION_TERMINAL
                    if estado_actual in OperationStateMachine.ESTADOS_TERMINALES
                    else ErrorCodes.INVALID_TRANSITION)
            raise InvalidTransitionError(
                f"No se puede '{accion}' la operación {operacion.get('folio') or operacion['id']}: "
                f"estado '{estado_actual}' no permite pasar a '{nuevo_estado}'",
                code,
                {
                    "operacion_id": operacion['id'],
                    "estado_actual": estado_actual,
                    "accion": accion,
                }
            )

    @staticmethod
    def ensure_not_terminal(operacion: Dict[str, Any], accion: str) -> None:
        if OperationStateMachine.is_terminal(operacion):
            raise InvalidTransitionError(
                f"La operación {operacion.get('folio') or operacion['id']} está '{operacion['estado']}' y no admite cambios",
                ErrorCodes.OPERATION_TERMINAL,
                {
                    "operacion_id": operacion['id'],
                    "estado_actual": operacion['estado'],
                    "accion": accion,
                }
            )
