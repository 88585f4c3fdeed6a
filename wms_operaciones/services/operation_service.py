# wms_operaciones/services/operation_service.py
"""
Service Layer para Operaciones de Almacén (registro).
Crea, actualiza, inicia, completa y cancela operaciones.
Cada mutación bloquea la fila de la operación y revalida el estado
DESPUÉS de obtener el lock.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, List, Any

from wms_operaciones.database.store import PostgresStore
from wms_operaciones.exceptions import (
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    ErrorCodes
)
from wms_operaciones.services.chain_service import ChainService
from wms_operaciones.services.item_service import ItemService, to_decimal
from wms_operaciones.services.state_machine import OperationStateMachine as SM

logger = logging.getLogger(__name__)


class OperationService:
    """
    Registro de operaciones: ciclo de vida y máquina de estados.
    """

    # ==========================================================================
    # CONSTANTES
    # ==========================================================================

    ORIGEN_MANUAL = 'manual'

    PREFIJOS_FOLIO = {
        SM.TIPO_RECEPCION: 'REC',
        SM.TIPO_CONTROL_CALIDAD: 'QC',
        SM.TIPO_ALMACENAMIENTO: 'ALM',
        SM.TIPO_PICKING: 'PICK',
        SM.TIPO_EMPAQUE: 'EMP',
        SM.TIPO_ENVIO: 'ENV',
        SM.TIPO_TRANSFERENCIA_INTERNA: 'TRF',
    }

    PRIORIDAD_DEFAULT = 5
    PRIORIDAD_MIN = 1
    PRIORIDAD_MAX = 10

    # Campos que el usuario puede editar mientras la operación no es terminal
    ALLOWED_FIELDS_TO_UPDATE = {
        'nombre', 'prioridad', 'fecha_programada', 'notas',
        'ubicacion_origen_id', 'ubicacion_destino_id',
    }

    # Campos opcionales de cabecera aceptados en crear()
    CAMPOS_CABECERA = {
        'nombre', 'prioridad', 'fecha_programada', 'notas',
        'ubicacion_origen_id', 'ubicacion_destino_id', 'origen_folio',
    }

    CAMPOS_ITEM = (
        'producto_id', 'variante_id', 'numero_serie_id', 'cantidad_solicitada',
        'ubicacion_origen_id', 'ubicacion_destino_id', 'lote', 'fecha_vencimiento', 'notas',
    )

    def __init__(self, store=None, item_service: Optional[ItemService] = None,
                 chain_service: Optional[ChainService] = None):
        self.store = store or PostgresStore()
        self.items = item_service or ItemService(self.store)
        self.cadena = chain_service or ChainService()

    # ==========================================================================
    # VALIDACIONES
    # ==========================================================================

    @staticmethod
    def validar_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Normaliza los items de creación. Cantidades estrictamente positivas.

        Raises:
            ValidationError: producto faltante o cantidad no positiva
        """
        normalizados = []
        for idx, item in enumerate(items or [], start=1):
            if not item.get('producto_id'):
                raise ValidationError(
                    f"Línea {idx}: producto_id es obligatorio",
                    ErrorCodes.MISSING_REQUIRED_FIELD,
                    {"linea": idx, "campo": "producto_id"}
                )
            cantidad = to_decimal(item.get('cantidad_solicitada'), "cantidad_solicitada")
            if cantidad <= 0:
                raise ValidationError(
                    f"Línea {idx}: la cantidad solicitada debe ser mayor a cero",
                    ErrorCodes.INVALID_QUANTITY,
                    {"linea": idx, "cantidad_solicitada": str(cantidad)}
                )
            limpio = {k: item.get(k) for k in OperationService.CAMPOS_ITEM if item.get(k) is not None}
            limpio['cantidad_solicitada'] = cantidad
            normalizados.append(limpio)
        return normalizados

    @staticmethod
    def validar_prioridad(prioridad) -> int:
        try:
            prioridad = int(prioridad)
        except (TypeError, ValueError):
            prioridad = None
        if prioridad is None or not OperationService.PRIORIDAD_MIN <= prioridad <= OperationService.PRIORIDAD_MAX:
            raise ValidationError(
                f"La prioridad debe estar entre {OperationService.PRIORIDAD_MIN} y {OperationService.PRIORIDAD_MAX}",
                ErrorCodes.INVALID_PRIORITY,
                {"prioridad": prioridad}
            )
        return prioridad

    @staticmethod
    def formatear_folio(sucursal_id: int, tipo_operacion: str, secuencia: int) -> str:
        return f"{OperationService.prefijo_folio(sucursal_id, tipo_operacion)}{str(secuencia).zfill(5)}"

    @staticmethod
    def prefijo_folio(sucursal_id: int, tipo_operacion: str) -> str:
        return f"S{sucursal_id}/{OperationService.PREFIJOS_FOLIO[tipo_operacion]}/"

    @staticmethod
    def _lock_or_404(repo, operacion_id: int) -> Dict[str, Any]:
        operacion = repo.lock_operacion(operacion_id)
        if not operacion:
            raise NotFoundError(
                f"Operación {operacion_id} no encontrada",
                ErrorCodes.OPERATION_NOT_FOUND,
                {"operacion_id": operacion_id}
            )
        return operacion

    @staticmethod
    def _con_items(repo, operacion: Dict[str, Any]) -> Dict[str, Any]:
        resultado = dict(operacion)
        resultado['items'] = [dict(i) for i in repo.get_items(operacion['id'])]
        return resultado

    # ==========================================================================
    # CREACIÓN
    # ==========================================================================

    def _insertar_operacion(self, repo, datos: Dict[str, Any], items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Inserta cabecera + items en la transacción abierta. Usado también por la cadena."""
        tipo = datos['tipo_operacion']
        prefijo = self.prefijo_folio(datos['sucursal_id'], tipo)
        folio = self.formatear_folio(datos['sucursal_id'], tipo, repo.siguiente_secuencia_folio(prefijo))

        total_items = sum((i['cantidad_solicitada'] for i in items), to_decimal(0))
        cabecera = dict(datos)
        cabecera.update({
            'folio': folio,
            'nombre': datos.get('nombre') or f"{tipo} {folio}",
            'estado': SM.BORRADOR,
            'total_items': total_items,
            'total_procesados': to_decimal(0),
        })
        operacion = repo.insert_operacion(cabecera)

        for item in items:
            repo.insert_item(operacion['id'], dict(item, estado=SM.ITEM_PENDIENTE, cantidad_procesada=to_decimal(0)))
        return operacion

    def crear(self, tipo_operacion: str, sucursal_id: int, items: List[Dict[str, Any]],
              origen_tipo: Optional[str] = None, origen_id: Optional[int] = None,
              creado_por: Optional[int] = None, **cabecera) -> Dict[str, Any]:
        """
        Crea una operación en 'borrador' con sus items.

        Args:
            tipo_operacion: uno de OperationStateMachine.VALID_TIPOS
            sucursal_id: sucursal dueña de la operación
            items: [{producto_id, cantidad_solicitada, variante_id?, numero_serie_id?, ...}]
            origen_tipo/origen_id: documento que la originó (orden de compra, venta, ...)
            **cabecera: nombre, prioridad, fecha_programada, notas, ubicaciones, origen_folio

        Returns:
            Operación con 'items'
        """
        SM.validate_tipo(tipo_operacion)
        if not sucursal_id:
            raise ValidationError(
                "sucursal_id es obligatorio",
                ErrorCodes.MISSING_REQUIRED_FIELD,
                {"campo": "sucursal_id"}
            )

        desconocidos = set(cabecera) - self.CAMPOS_CABECERA
        if desconocidos:
            raise ValidationError(
                f"Campos no permitidos: {', '.join(sorted(desconocidos))}",
                ErrorCodes.INVALID_FIELD,
                {"campos": sorted(desconocidos)}
            )

        items_limpios = self.validar_items(items)
        datos = {k: v for k, v in cabecera.items() if v is not None}
        datos['prioridad'] = self.validar_prioridad(datos.get('prioridad', self.PRIORIDAD_DEFAULT))
        datos.update({
            'tipo_operacion': tipo_operacion,
            'sucursal_id': sucursal_id,
            'origen_tipo': origen_tipo or self.ORIGEN_MANUAL,
            'origen_id': origen_id,
            'creado_por': creado_por,
        })

        with self.store.transaccion() as repo:
            operacion = self._insertar_operacion(repo, datos, items_limpios)
            resultado = self._con_items(repo, operacion)

        logger.info("[OPERACION] Creada %s (%s, sucursal %s, %d items)",
                    resultado['folio'], tipo_operacion, sucursal_id, len(items_limpios))
        return resultado

    # ==========================================================================
    # MUTACIONES
    # ==========================================================================

    def actualizar(self, operacion_id: int, campos: Dict[str, Any]) -> Dict[str, Any]:
        """
        Edita campos de cabecera. Solo mientras la operación no sea terminal.
        Estado, asignación y enlaces de cadena no se editan por aquí.
        """
        campos = {k: v for k, v in (campos or {}).items()}
        no_permitidos = set(campos) - self.ALLOWED_FIELDS_TO_UPDATE
        if no_permitidos:
            raise ValidationError(
                f"Campos no editables: {', '.join(sorted(no_permitidos))}",
                ErrorCodes.INVALID_FIELD,
                {"operacion_id": operacion_id, "campos": sorted(no_permitidos)}
            )
        if 'prioridad' in campos:
            campos['prioridad'] = self.validar_prioridad(campos['prioridad'])

        with self.store.transaccion() as repo:
            operacion = self._lock_or_404(repo, operacion_id)
            SM.ensure_not_terminal(operacion, "actualizar")
            if campos:
                operacion = repo.update_operacion(operacion_id, campos)
            resultado = self._con_items(repo, operacion)

        logger.info("[OPERACION] %s actualizada: %s", resultado['folio'], sorted(campos))
        return resultado

    def iniciar(self, operacion_id: int, usuario_id: Optional[int] = None) -> Dict[str, Any]:
        """borrador/asignada -> en_proceso. Si no hay responsable, queda el que inicia."""
        with self.store.transaccion() as repo:
            operacion = self._lock_or_404(repo, operacion_id)
            SM.validate_transition(operacion, SM.EN_PROCESO, "iniciar")

            campos = {'estado': SM.EN_PROCESO}
            if not operacion.get('fecha_inicio'):
                campos['fecha_inicio'] = datetime.now()
            if not operacion.get('asignado_a') and usuario_id:
                campos['asignado_a'] = usuario_id

            operacion = repo.update_operacion(operacion_id, campos)
            resultado = self._con_items(repo, operacion)

        logger.info("[OPERACION] %s iniciada", resultado['folio'])
        return resultado

    def completar(self, operacion_id: int, items: Optional[List[Dict[str, Any]]] = None,
                  forzar: bool = False, usuario_id: Optional[int] = None,
                  exigir_creacion: bool = False) -> Dict[str, Any]:
        """
        Cierra la operación y genera la siguiente etapa, todo en una transacción.

        Args:
            items: procesamiento final opcional [{item_id, cantidad_procesada, ubicacion_destino_id}]
            forzar: cerrar aunque queden items pendientes
            exigir_creacion: el llamador espera una operación siguiente nueva;
                si ya existía se lanza AlreadyChainedError

        Returns:
            Operación con 'items' y 'operacion_siguiente_id'
        """
        with self.store.transaccion() as repo:
            operacion = self._lock_or_404(repo, operacion_id)

            # Reintento de una petición ya atendida: la cadena decide si devuelve
            # el enlace existente o lanza AlreadyChainedError
            if operacion['estado'] == SM.COMPLETADA:
                self.cadena.avanzar(repo, operacion, repo.get_items(operacion_id),
                                    self._insertar_operacion, exigir_creacion)
                return self._con_items(repo, repo.get_operacion(operacion_id))

            SM.validate_transition(operacion, SM.COMPLETADA, "completar")

            for payload in items or []:
                item_id = payload.get('item_id')
                item = repo.get_item(item_id)
                ItemService._check_item(item, item_id, operacion)
                cantidad = to_decimal(payload.get('cantidad_procesada') or 0, "cantidad_procesada")
                if cantidad:
                    self.items.aplicar_procesamiento(
                        repo, operacion, item, cantidad,
                        payload.get('ubicacion_destino_id'), usuario_id
                    )

            items_actuales = repo.get_items(operacion_id)
            activos = [i for i in items_actuales if i['estado'] != SM.ITEM_CANCELADO]
            pendientes = [i for i in activos if i['estado'] != SM.ITEM_PROCESADO]

            if not forzar and (pendientes or not activos):
                raise InvalidTransitionError(
                    f"La operación {operacion['folio']} tiene {len(pendientes)} items sin procesar"
                    if activos else f"La operación {operacion['folio']} no tiene items activos",
                    ErrorCodes.OPERATION_INCOMPLETE,
                    {"operacion_id": operacion_id, "estado_actual": operacion['estado'],
                     "accion": "completar", "items_pendientes": [i['id'] for i in pendientes]}
                )

            total_items, total_procesados = ItemService.calcular_totales(items_actuales)
            operacion = repo.update_operacion(operacion_id, {
                'estado': SM.COMPLETADA,
                'fecha_fin': datetime.now(),
                'total_items': total_items,
                'total_procesados': total_procesados,
            })

            siguiente_id = self.cadena.avanzar(repo, operacion, items_actuales,
                                               self._insertar_operacion, exigir_creacion)
            if siguiente_id:
                operacion = repo.get_operacion(operacion_id)
            resultado = self._con_items(repo, operacion)

        logger.info("[OPERACION] %s completada (%s/%s)%s", resultado['folio'],
                    resultado['total_procesados'], resultado['total_items'],
                    f" -> siguiente {siguiente_id}" if siguiente_id else "")
        return resultado

    def cancelar(self, operacion_id: int, motivo: str) -> Dict[str, Any]:
        """
        Cancela la operación y todos sus items pendientes.
        Cancelar una operación ya cancelada es un no-op (reintentos).
        """
        if not motivo or not str(motivo).strip():
            raise ValidationError(
                "El motivo de cancelación es obligatorio",
                ErrorCodes.MOTIVO_REQUIRED,
                {"operacion_id": operacion_id, "campo": "motivo"}
            )
        motivo = str(motivo).strip()

        with self.store.transaccion() as repo:
            operacion = self._lock_or_404(repo, operacion_id)

            if operacion['estado'] == SM.CANCELADA:
                return self._con_items(repo, operacion)

            SM.validate_transition(operacion, SM.CANCELADA, "cancelar")

            cancelados = repo.cancelar_items_pendientes(operacion_id)
            notas = operacion.get('notas_internas')
            nota = f"Cancelada: {motivo}"
            items_actuales = repo.get_items(operacion_id)
            total_items, total_procesados = ItemService.calcular_totales(items_actuales)

            operacion = repo.update_operacion(operacion_id, {
                'estado': SM.CANCELADA,
                'notas_internas': f"{notas}\n{nota}" if notas else nota,
                'total_items': total_items,
                'total_procesados': total_procesados,
            })
            resultado = self._con_items(repo, operacion)

        logger.info("[OPERACION] %s cancelada (%s items pendientes cancelados): %s",
                    resultado['folio'], cancelados, motivo)
        return resultado

    # ==========================================================================
    # CONSULTAS
    # ==========================================================================

    def listar(self, filtros: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filtros = {k: v for k, v in (filtros or {}).items() if v is not None and v != ""}
        if 'tipo_operacion' in filtros:
            SM.validate_tipo(filtros['tipo_operacion'])
        with self.store.lectura() as repo:
            return [dict(o) for o in repo.list_operaciones(filtros)]

    def obtener_por_id(self, operacion_id: int) -> Dict[str, Any]:
        with self.store.lectura() as repo:
            operacion = repo.get_operacion(operacion_id)
            if not operacion:
                raise NotFoundError(
                    f"Operación {operacion_id} no encontrada",
                    ErrorCodes.OPERATION_NOT_FOUND,
                    {"operacion_id": operacion_id}
                )
            return self._con_items(repo, operacion)

    def obtener_cadena(self, operacion_id: int) -> List[Dict[str, Any]]:
        """Cadena completa (de la primera etapa a la última) a la que pertenece la operación."""
        with self.store.lectura() as repo:
            operacion = repo.get_operacion(operacion_id)
            if not operacion:
                raise NotFoundError(
                    f"Operación {operacion_id} no encontrada",
                    ErrorCodes.OPERATION_NOT_FOUND,
                    {"operacion_id": operacion_id}
                )

            visitados = {operacion['id']}
            # 1. Retroceder hasta la raíz
            while operacion.get('operacion_anterior_id') and operacion['operacion_anterior_id'] not in visitados:
                anterior = repo.get_operacion(operacion['operacion_anterior_id'])
                if not anterior:
                    break
                visitados.add(anterior['id'])
                operacion = anterior

            # 2. Avanzar hasta el final
            cadena = [dict(operacion)]
            vistos = {operacion['id']}
            while operacion.get('operacion_siguiente_id') and operacion['operacion_siguiente_id'] not in vistos:
                operacion = repo.get_operacion(operacion['operacion_siguiente_id'])
                if not operacion:
                    break
                vistos.add(operacion['id'])
                cadena.append(dict(operacion))
            return cadena
