# wms_operaciones/services/assignment_service.py
"""
Asignación de operaciones a operarios.
Se permite reasignar mientras el trabajo no haya empezado.
"""

import logging
from typing import Dict, Any

from wms_operaciones.database.store import PostgresStore
from wms_operaciones.exceptions import ValidationError, InvalidTransitionError, ErrorCodes
from wms_operaciones.services.operation_service import OperationService
from wms_operaciones.services.state_machine import OperationStateMachine as SM

logger = logging.getLogger(__name__)


class AssignmentService:

    ESTADOS_ASIGNABLES = frozenset({SM.BORRADOR, SM.ASIGNADA})

    def __init__(self, store=None):
        self.store = store or PostgresStore()

    @staticmethod
    def validar_usuario(usuario_id) -> int:
        if isinstance(usuario_id, bool) or not isinstance(usuario_id, int) or usuario_id <= 0:
            raise ValidationError(
                "usuario_id inválido",
                ErrorCodes.INVALID_USER,
                {"usuario_id": usuario_id}
            )
        return usuario_id

    def asignar(self, operacion_id: int, usuario_id: int) -> Dict[str, Any]:
        """
        Asigna (o reasigna) la operación. borrador -> asignada; asignada se mantiene.
        No toca los items.
        """
        self.validar_usuario(usuario_id)

        with self.store.transaccion() as repo:
            operacion = OperationService._lock_or_404(repo, operacion_id)

            if operacion['estado'] not in self.ESTADOS_ASIGNABLES:
                raise InvalidTransitionError(
                    f"No se puede asignar la operación {operacion['folio']} en estado '{operacion['estado']}'",
                    ErrorCodes.OPERATION_TERMINAL if SM.is_terminal(operacion) else ErrorCodes.INVALID_TRANSITION,
                    {"operacion_id": operacion_id, "estado_actual": operacion['estado'], "accion": "asignar"}
                )
            SM.validate_transition(operacion, SM.ASIGNADA, "asignar")

            anterior = operacion.get('asignado_a')
            operacion = repo.update_operacion(operacion_id, {'asignado_a': usuario_id, 'estado': SM.ASIGNADA})
            resultado = OperationService._con_items(repo, operacion)

        if anterior and anterior != usuario_id:
            logger.info("[ASIGNACION] %s reasignada %s -> %s", resultado['folio'], anterior, usuario_id)
        else:
            logger.info("[ASIGNACION] %s asignada a %s", resultado['folio'], usuario_id)
        return resultado
