# wms_operaciones/services/chain_service.py
"""
Encadenamiento multi-etapa:
Recepción -> QC -> Almacenamiento -> Picking -> Empaque -> Envío.
Al completar una operación se materializa la siguiente etapa con lo que
realmente se procesó, no con lo solicitado.
"""

import logging
from typing import Optional, Dict, List, Any, Callable

from wms_operaciones.exceptions import AlreadyChainedError, ValidationError, ErrorCodes
from wms_operaciones.services.item_service import to_decimal
from wms_operaciones.services.state_machine import OperationStateMachine as SM

logger = logging.getLogger(__name__)

# Tabla de etapas: tipo -> tipo siguiente (None = fin de cadena)
SIGUIENTE_ETAPA = {
    SM.TIPO_RECEPCION: SM.TIPO_CONTROL_CALIDAD,
    SM.TIPO_CONTROL_CALIDAD: SM.TIPO_ALMACENAMIENTO,
    SM.TIPO_ALMACENAMIENTO: SM.TIPO_PICKING,
    SM.TIPO_PICKING: SM.TIPO_EMPAQUE,
    SM.TIPO_EMPAQUE: SM.TIPO_ENVIO,
    SM.TIPO_ENVIO: None,
    SM.TIPO_TRANSFERENCIA_INTERNA: None,
}

# Datos del item que viajan a la siguiente etapa
CAMPOS_HEREDADOS_ITEM = ('producto_id', 'variante_id', 'numero_serie_id', 'lote', 'fecha_vencimiento')


class ChainService:

    def __init__(self, topologia: Optional[Dict[str, Optional[str]]] = None):
        self.topologia = dict(SIGUIENTE_ETAPA)
        if topologia:
            self.topologia.update(topologia)
        self.validar_topologia(self.topologia)

    @staticmethod
    def validar_topologia(topologia: Dict[str, Optional[str]]) -> None:
        for origen, destino in topologia.items():
            if origen not in SM.VALID_TIPOS or (destino is not None and destino not in SM.VALID_TIPOS):
                raise ValidationError(
                    f"Etapa inválida en la topología: {origen} -> {destino}",
                    ErrorCodes.INVALID_TOPOLOGY,
                    {"origen": origen, "destino": destino}
                )

    def siguiente_tipo(self, tipo_operacion: str) -> Optional[str]:
        return self.topologia.get(tipo_operacion)

    @staticmethod
    def planificar_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Un item nuevo por cada item origen con avance, solicitando lo procesado.
        El destino de esta etapa es el origen de la siguiente.
        """
        nuevos = []
        for item in items:
            if item['estado'] == SM.ITEM_CANCELADO:
                continue
            procesada = to_decimal(item['cantidad_procesada'])
            if procesada <= 0:
                continue
            nuevo = {campo: item.get(campo) for campo in CAMPOS_HEREDADOS_ITEM}
            nuevo['cantidad_solicitada'] = procesada
            nuevo['ubicacion_origen_id'] = item.get('ubicacion_destino_id')
            nuevos.append(nuevo)
        return nuevos

    def avanzar(self, repo, operacion: Dict[str, Any], items: List[Dict[str, Any]],
                crear: Callable, exigir_creacion: bool = False) -> Optional[int]:
        """
        Crea la operación siguiente y enlaza ambas.
        Debe ejecutarse en la misma transacción (y bajo el mismo lock) que completar().

        Args:
            crear: callable(repo, datos, items) -> operación insertada
            exigir_creacion: si True y ya existe siguiente, lanza AlreadyChainedError

        Returns:
            id de la operación siguiente (nueva o existente), o None si no aplica
        """
        existente = operacion.get('operacion_siguiente_id')
        if existente:
            if exigir_creacion:
                raise AlreadyChainedError(
                    f"La operación {operacion['folio']} ya tiene operación siguiente ({existente})",
                    ErrorCodes.ALREADY_CHAINED,
                    {"operacion_id": operacion['id'], "operacion_siguiente_id": existente,
                     "estado_actual": operacion['estado'], "accion": "completar"}
                )
            logger.info("[CADENA] %s ya encadenada a %s, sin cambios", operacion['folio'], existente)
            return existente

        tipo_siguiente = self.siguiente_tipo(operacion['tipo_operacion'])
        if not tipo_siguiente:
            return None

        nuevos_items = self.planificar_items(items)
        if not nuevos_items:
            logger.info("[CADENA] %s completada sin cantidades procesadas, no se genera %s",
                        operacion['folio'], tipo_siguiente)
            return None

        datos = {
            'tipo_operacion': tipo_siguiente,
            'sucursal_id': operacion['sucursal_id'],
            'origen_tipo': operacion['origen_tipo'],
            'origen_id': operacion.get('origen_id'),
            'origen_folio': operacion.get('origen_folio'),
            'prioridad': operacion.get('prioridad') or 5,
            'ubicacion_origen_id': operacion.get('ubicacion_destino_id'),
            'operacion_anterior_id': operacion['id'],
        }
        siguiente = crear(repo, datos, nuevos_items)
        repo.update_operacion(operacion['id'], {'operacion_siguiente_id': siguiente['id']})

        logger.info("[CADENA] %s -> %s (%s, %d items)", operacion['folio'], siguiente['folio'],
                    tipo_siguiente, len(nuevos_items))
        return siguiente['id']
