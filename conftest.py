# conftest.py
"""
Fixtures compartidas. MemoryStore cumple el mismo contrato que PostgresStore:
lock por fila de operación hasta el fin de la transacción y rollback completo
ante cualquier excepción.
"""
import contextlib
import copy
import itertools
import threading
from datetime import datetime

import pytest

from wms_operaciones.services import (
    OperationService, ItemService, AssignmentService, AggregationService, ChainService
)

TERMINALES = ('completada', 'cancelada')


class MemoryRepository:

    def __init__(self, store, tx=None):
        self.store = store
        self.tx = tx

    # --- helpers ---

    def _log(self, tabla, row_id):
        if self.tx is None:
            raise RuntimeError("Escritura fuera de transacción")
        filas = getattr(self.store, tabla)
        self.tx['undo'].append((tabla, row_id, copy.deepcopy(filas.get(row_id))))

    # --- OperacionRepository ---

    def get_operacion(self, operacion_id):
        row = self.store.operaciones.get(operacion_id)
        return dict(row) if row else None

    def lock_operacion(self, operacion_id):
        if operacion_id not in self.store.operaciones:
            return None
        lock = self.store.row_lock(operacion_id)
        if operacion_id not in self.tx['locks']:
            lock.acquire()
            self.tx['locks'].append(operacion_id)
        return self.get_operacion(operacion_id)

    def get_items(self, operacion_id):
        return [dict(i) for i in sorted(self.store.items.values(), key=lambda i: i['id'])
                if i['operacion_id'] == operacion_id]

    def get_item(self, item_id):
        row = self.store.items.get(item_id)
        return dict(row) if row else None

    def list_operaciones(self, filtros):
        ops = list(self.store.operaciones.values())
        for key in ('sucursal_id', 'tipo_operacion', 'estado', 'asignado_a', 'origen_tipo', 'origen_id'):
            if filtros.get(key) is not None:
                ops = [o for o in ops if o[key] == filtros[key]]
        if filtros.get('estados'):
            ops = [o for o in ops if o['estado'] in filtros['estados']]
        ops.sort(key=lambda o: o['id'], reverse=True)
        ops.sort(key=lambda o: o['prioridad'])
        offset = filtros.get('offset') or 0
        limit = filtros.get('limit')
        ops = ops[offset:offset + limit] if limit else ops[offset:]
        return [dict(o) for o in ops]

    def siguiente_secuencia_folio(self, prefijo):
        with self.store.folio_lock:
            folios = [o['folio'] for o in self.store.operaciones.values() if o['folio'].startswith(prefijo)]
            return max((int(f.rsplit('/', 1)[-1]) for f in folios), default=0) + 1

    def insert_operacion(self, data):
        now = datetime.now()
        row = {
            'id': next(self.store.ids), 'nombre': None, 'origen_id': None, 'origen_folio': None,
            'ubicacion_origen_id': None, 'ubicacion_destino_id': None, 'asignado_a': None,
            'prioridad': 5, 'fecha_programada': None, 'notas': None, 'notas_internas': None,
            'operacion_anterior_id': None, 'operacion_siguiente_id': None, 'creado_por': None,
            'fecha_inicio': None, 'fecha_fin': None, 'origen_tipo': 'manual',
            'creado_en': now, 'actualizado_en': now,
        }
        row.update(data)
        with self.store.folio_lock:
            if any(o['folio'] == row['folio'] for o in self.store.operaciones.values()):
                raise RuntimeError(f"folio duplicado {row['folio']}")
            self._log('operaciones', row['id'])
            self.store.operaciones[row['id']] = row
        return dict(row)

    def insert_item(self, operacion_id, data):
        now = datetime.now()
        row = {
            'id': next(self.store.ids), 'operacion_id': operacion_id, 'variante_id': None,
            'numero_serie_id': None, 'cantidad_procesada': 0, 'ubicacion_origen_id': None,
            'ubicacion_destino_id': None, 'lote': None, 'fecha_vencimiento': None, 'notas': None,
            'estado': 'pendiente', 'procesado_por': None, 'procesado_en': None,
            'creado_en': now, 'actualizado_en': now,
        }
        row.update(data)
        self._log('items', row['id'])
        self.store.items[row['id']] = row
        return dict(row)

    def update_operacion(self, operacion_id, campos):
        self._log('operaciones', operacion_id)
        row = self.store.operaciones[operacion_id]
        row.update(campos)
        row['actualizado_en'] = datetime.now()
        return dict(row)

    def update_item(self, item_id, campos):
        self._log('items', item_id)
        row = self.store.items[item_id]
        row.update(campos)
        row['actualizado_en'] = datetime.now()
        return dict(row)

    def cancelar_items_pendientes(self, operacion_id):
        count = 0
        for item in self.get_items(operacion_id):
            if item['estado'] == 'pendiente':
                self.update_item(item['id'], {'estado': 'cancelado'})
                count += 1
        return count

    # --- ReportRepository ---

    def get_operaciones_activas(self, sucursal_id):
        ops = [o for o in self.store.operaciones.values()
               if o['sucursal_id'] == sucursal_id and o['estado'] not in TERMINALES]
        ops.sort(key=lambda o: (o['prioridad'], o['fecha_programada'] is None,
                                o['fecha_programada'] or datetime.min, o['creado_en'], o['id']))
        return [dict(o) for o in ops]

    def get_completadas_recientes(self, sucursal_id, limite):
        ops = [o for o in self.store.operaciones.values()
               if o['sucursal_id'] == sucursal_id and o['estado'] == 'completada']
        ops.sort(key=lambda o: (o['fecha_fin'] or datetime.min, o['id']), reverse=True)
        return [dict(o) for o in ops[:limite]]

    def get_totales_por_tipo_estado(self, sucursal_id):
        grupos = {}
        for o in self.store.operaciones.values():
            if o['sucursal_id'] != sucursal_id:
                continue
            fila = grupos.setdefault((o['tipo_operacion'], o['estado']), {
                'tipo_operacion': o['tipo_operacion'], 'estado': o['estado'],
                'cantidad': 0, 'total_items': 0, 'total_procesados': 0,
            })
            fila['cantidad'] += 1
            fila['total_items'] += o['total_items']
            fila['total_procesados'] += o['total_procesados']
        return [grupos[k] for k in sorted(grupos)]

    def get_completadas_por_dia(self, sucursal_id, desde):
        conteo = {}
        for o in self.store.operaciones.values():
            if o['sucursal_id'] == sucursal_id and o['estado'] == 'completada' and o['fecha_fin']:
                dia = o['fecha_fin'].date()
                if dia >= desde:
                    conteo[dia] = conteo.get(dia, 0) + 1
        return [{'dia': d, 'cantidad': c} for d, c in conteo.items()]


class MemoryStore:

    def __init__(self):
        self.operaciones = {}
        self.items = {}
        self.ids = itertools.count(1)
        self.folio_lock = threading.Lock()
        self._locks = {}
        self._locks_guard = threading.Lock()

    def row_lock(self, operacion_id):
        with self._locks_guard:
            return self._locks.setdefault(operacion_id, threading.Lock())

    @contextlib.contextmanager
    def transaccion(self):
        tx = {'undo': [], 'locks': []}
        try:
            yield MemoryRepository(self, tx)
        except Exception:
            for tabla, row_id, previo in reversed(tx['undo']):
                filas = getattr(self, tabla)
                if previo is None:
                    filas.pop(row_id, None)
                else:
                    filas[row_id] = previo
            raise
        finally:
            for operacion_id in tx['locks']:
                self.row_lock(operacion_id).release()

    @contextlib.contextmanager
    def lectura(self):
        yield MemoryRepository(self)

    reportes = lectura


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def operation_service(store):
    return OperationService(store)


@pytest.fixture
def item_service(store):
    return ItemService(store)


@pytest.fixture
def assignment_service(store):
    return AssignmentService(store)


@pytest.fixture
def aggregation_service(store):
    return AggregationService(store, limite_completadas=10, dias_throughput=7)


@pytest.fixture
def chain_service():
    return ChainService()


@pytest.fixture
def crear_recepcion(operation_service):
    """Crea una recepción en borrador con las cantidades dadas."""
    def _crear(*cantidades, sucursal_id=1, **kwargs):
        items = [{"producto_id": 100 + i, "cantidad_solicitada": c} for i, c in enumerate(cantidades)]
        return operation_service.crear("recepcion", sucursal_id, items, **kwargs)
    return _crear


@pytest.fixture
def en_proceso(operation_service, assignment_service):
    """Asigna e inicia una operación ya creada."""
    def _iniciar(operacion, usuario_id=7):
        assignment_service.asignar(operacion['id'], usuario_id)
        return operation_service.iniciar(operacion['id'])
    return _iniciar
