# wms_operaciones/services/item_service.py
"""
Service Layer para items de operación (líneas de producto).
Lleva la contabilidad de cantidades parciales y recalcula los totales
de la operación padre dentro de la misma transacción.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, List, Any, Tuple

from wms_operaciones.database.store import PostgresStore
from wms_operaciones.exceptions import (
    WMSBaseException,
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    OverQuantityError,
    ErrorCodes
)
from wms_operaciones.services.state_machine import OperationStateMachine as SM

logger = logging.getLogger(__name__)


def to_decimal(value, field: str = "cantidad") -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(
            f"'{field}' debe ser numérico",
            ErrorCodes.INVALID_QUANTITY,
            {"campo": field, "valor": value}
        )


class ItemService:
    """
    Procesamiento de items: cantidades parciales, cancelación y totales.
    """

    def __init__(self, store=None):
        self.store = store or PostgresStore()

    # ==========================================================================
    # REGLAS PURAS
    # ==========================================================================

    @staticmethod
    def calcular_totales(items: List[Dict[str, Any]]) -> Tuple[Decimal, Decimal]:
        """
        Totales de la operación sobre items no cancelados.

        Returns:
            Tuple[Decimal, Decimal]: (total_items, total_procesados)
            total_items es la cantidad solicitada acumulada.
        """
        total_items = Decimal("0")
        total_procesados = Decimal("0")
        for item in items:
            if item['estado'] == SM.ITEM_CANCELADO:
                continue
            total_items += to_decimal(item['cantidad_solicitada'])
            total_procesados += to_decimal(item['cantidad_procesada'])
        return total_items, total_procesados

    @staticmethod
    def derivar_estado(estado_actual: str, items: List[Dict[str, Any]]) -> str:
        """
        'en_proceso' pasa a 'parcial' cuando hay avance pero no todo está procesado.
        Un avance completo NO cierra la operación: eso es completar().
        """
        if estado_actual != SM.EN_PROCESO:
            return estado_actual

        activos = [i for i in items if i['estado'] != SM.ITEM_CANCELADO]
        hay_avance = any(to_decimal(i['cantidad_procesada']) > 0 for i in activos)
        todo_procesado = all(i['estado'] == SM.ITEM_PROCESADO for i in activos)

        if hay_avance and not todo_procesado:
            return SM.PARCIAL
        return estado_actual

    @staticmethod
    def validar_cantidad(item: Dict[str, Any], cantidad) -> Decimal:
        cantidad = to_decimal(cantidad, "cantidad_procesada")
        if cantidad <= 0:
            raise ValidationError(
                "La cantidad procesada debe ser mayor a cero",
                ErrorCodes.INVALID_QUANTITY,
                {"item_id": item['id'], "cantidad_procesada": str(cantidad)}
            )

        solicitada = to_decimal(item['cantidad_solicitada'])
        procesada = to_decimal(item['cantidad_procesada'])
        if procesada + cantidad > solicitada:
            raise OverQuantityError(
                f"El item {item['id']} solo admite {solicitada - procesada} unidades más "
                f"(solicitada {solicitada}, procesada {procesada}, intento {cantidad})",
                ErrorCodes.OVER_QUANTITY,
                {
                    "item_id": item['id'],
                    "operacion_id": item['operacion_id'],
                    "cantidad_solicitada": str(solicitada),
                    "cantidad_procesada": str(procesada),
                    "cantidad_intento": str(cantidad),
                }
            )
        return cantidad

    # ==========================================================================
    # PASOS DENTRO DE UNA TRANSACCIÓN (el llamador ya bloqueó la operación)
    # ==========================================================================

    @staticmethod
    def _check_item(item: Optional[Dict[str, Any]], item_id: int, operacion: Dict[str, Any]) -> None:
        if not item:
            raise NotFoundError(
                f"Item {item_id} no encontrado",
                ErrorCodes.ITEM_NOT_FOUND,
                {"item_id": item_id}
            )
        if item['operacion_id'] != operacion['id']:
            raise ValidationError(
                f"El item {item_id} no pertenece a la operación {operacion['id']}",
                ErrorCodes.ITEM_NOT_IN_OPERATION,
                {"item_id": item_id, "operacion_id": operacion['id']}
            )

    def aplicar_procesamiento(self, repo, operacion, item, cantidad, ubicacion_destino_id=None, usuario_id=None):
        if item['estado'] == SM.ITEM_CANCELADO:
            raise InvalidTransitionError(
                f"El item {item['id']} está cancelado",
                ErrorCodes.ITEM_CANCELLED,
                {"item_id": item['id'], "operacion_id": operacion['id'],
                 "estado_actual": item['estado'], "accion": "procesar_item"}
            )

        cantidad = self.validar_cantidad(item, cantidad)
        nueva = to_decimal(item['cantidad_procesada']) + cantidad
        completo = nueva == to_decimal(item['cantidad_solicitada'])

        campos = {
            'cantidad_procesada': nueva,
            'estado': SM.ITEM_PROCESADO if completo else SM.ITEM_PENDIENTE,
            'procesado_en': datetime.now(),
        }
        if ubicacion_destino_id is not None:
            campos['ubicacion_destino_id'] = ubicacion_destino_id
        if usuario_id is not None:
            campos['procesado_por'] = usuario_id

        return repo.update_item(item['id'], campos)

    def recalcular(self, repo, operacion):
        """Recalcula totales y deriva 'parcial'. Devuelve la operación actualizada."""
        items = repo.get_items(operacion['id'])
        total_items, total_procesados = self.calcular_totales(items)
        campos = {'total_items': total_items, 'total_procesados': total_procesados}

        nuevo_estado = self.derivar_estado(operacion['estado'], items)
        if nuevo_estado != operacion['estado']:
            SM.validate_transition(operacion, nuevo_estado, "procesar_item")
            campos['estado'] = nuevo_estado

        return repo.update_operacion(operacion['id'], campos)

    def _lock_parent(self, repo, item_id, accion):
        item = repo.get_item(item_id)
        if not item:
            raise NotFoundError(
                f"Item {item_id} no encontrado",
                ErrorCodes.ITEM_NOT_FOUND,
                {"item_id": item_id}
            )

        operacion = repo.lock_operacion(item['operacion_id'])
        if not operacion:
            raise NotFoundError(
                f"Operación {item['operacion_id']} no encontrada",
                ErrorCodes.OPERATION_NOT_FOUND,
                {"operacion_id": item['operacion_id'], "item_id": item_id}
            )
        SM.ensure_not_terminal(operacion, accion)

        # Releer con el lock tomado: otra sesión pudo modificarlo mientras esperábamos
        return operacion, repo.get_item(item_id)

    # ==========================================================================
    # OPERACIONES EXPUESTAS
    # ==========================================================================

    def procesar_item(self, item_id: int, cantidad_procesada, ubicacion_destino_id: Optional[int] = None,
                      usuario_id: Optional[int] = None, operacion_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Suma cantidad_procesada al item y recalcula la operación padre.

        Raises:
            NotFoundError: item u operación inexistente
            InvalidTransitionError: operación terminal o no iniciada
            OverQuantityError: se superaría la cantidad solicitada
        """
        with self.store.transaccion() as repo:
            operacion, item = self._lock_parent(repo, item_id, "procesar_item")
            if operacion_id is not None:
                self._check_item(item, item_id, {"id": operacion_id})

            if operacion['estado'] not in SM.ESTADOS_PROCESABLES:
                raise InvalidTransitionError(
                    f"La operación {operacion['folio']} debe iniciarse antes de procesar items",
                    ErrorCodes.INVALID_TRANSITION,
                    {"operacion_id": operacion['id'], "item_id": item_id,
                     "estado_actual": operacion['estado'], "accion": "procesar_item"}
                )

            item = self.aplicar_procesamiento(repo, operacion, item, cantidad_procesada,
                                              ubicacion_destino_id, usuario_id)
            operacion = self.recalcular(repo, operacion)

        logger.info("[ITEM] %s procesado +%s (op %s: %s/%s, %s)", item_id, cantidad_procesada,
                    operacion['folio'], operacion['total_procesados'], operacion['total_items'],
                    operacion['estado'])
        return dict(item)

    def procesar_items(self, operacion_id: int, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Procesa varios items, cada uno en su propia transacción.
        Reporta éxito/fallo por item en lugar de fallar el lote completo.
        """
        resultados = []
        for payload in items:
            item_id = payload.get('item_id')
            try:
                item = self.procesar_item(
                    item_id,
                    payload.get('cantidad_procesada'),
                    payload.get('ubicacion_destino_id'),
                    usuario_id=payload.get('usuario_id'),
                    operacion_id=operacion_id,
                )
                resultados.append({"item_id": item_id, "ok": True, "item": item})
            except WMSBaseException as e:
                logger.info("[ITEM] Lote op %s: item %s rechazado (%s)", operacion_id, item_id, e.code)
                resultados.append({"item_id": item_id, "ok": False, "error": e.message,
                                   "code": e.code, "details": e.details})
        return resultados

    def cancelar_item(self, item_id: int) -> Dict[str, Any]:
        """
        Marca el item como cancelado y lo excluye de los totales.
        Cancelar todos los items NO cancela la operación.
        """
        with self.store.transaccion() as repo:
            operacion, item = self._lock_parent(repo, item_id, "cancelar_item")

            if item['estado'] == SM.ITEM_CANCELADO:
                return dict(item)

            if item['estado'] == SM.ITEM_PROCESADO:
                raise InvalidTransitionError(
                    f"El item {item_id} ya fue procesado y no puede cancelarse",
                    ErrorCodes.ITEM_ALREADY_PROCESSED,
                    {"item_id": item_id, "operacion_id": operacion['id'],
                     "estado_actual": item['estado'], "accion": "cancelar_item"}
                )

            item = repo.update_item(item_id, {'estado': SM.ITEM_CANCELADO})
            self.recalcular(repo, operacion)

        logger.info("[ITEM] %s cancelado (op %s)", item_id, operacion['folio'])
        return dict(item)
