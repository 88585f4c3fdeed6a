# wms_operaciones/services/aggregation_service.py
"""
Servicio de tablero: Kanban, pendientes por sucursal y estadísticas.
Proyecciones de solo lectura recalculadas en cada consulta; no hay caché
mutable compartida y nunca se toma el lock de operación.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Dict, List, Any, Tuple

from wms_operaciones import config
from wms_operaciones.database.store import PostgresStore
from wms_operaciones.services.item_service import to_decimal
from wms_operaciones.services.state_machine import OperationStateMachine as SM


class AggregationService:
    """
    El repositorio entrega filas; este servicio las agrupa y enriquece.
    """

    COLUMNAS_KANBAN = (SM.BORRADOR, SM.ASIGNADA, SM.EN_PROCESO, SM.PARCIAL, SM.COMPLETADA)

    def __init__(self, store=None, limite_completadas: Optional[int] = None,
                 dias_throughput: Optional[int] = None):
        self.store = store or PostgresStore()
        self.limite_completadas = limite_completadas or config.KANBAN_LIMITE_COMPLETADAS
        self.dias_throughput = dias_throughput or config.THROUGHPUT_DIAS

    # =========================================================================
    # PROYECCIONES PURAS
    # =========================================================================

    @staticmethod
    def agrupar_kanban(activas: List[Dict], completadas: List[Dict], limite: int) -> Dict[str, Any]:
        """
        Agrupa tarjetas por estado. La columna 'completada' se recorta a las
        'limite' más recientes.
        """
        columnas = {estado: [] for estado in AggregationService.COLUMNAS_KANBAN}
        resumen = defaultdict(lambda: defaultdict(int))

        for op in activas:
            if op['estado'] in SM.ESTADOS_TERMINALES:
                continue
            columnas[op['estado']].append(dict(op))
            resumen[op['estado']][op['tipo_operacion']] += 1

        recientes = sorted(
            completadas,
            key=lambda o: (o.get('fecha_fin') is not None, o.get('fecha_fin') or 0, o['id']),
            reverse=True
        )
        columnas[SM.COMPLETADA] = [dict(o) for o in recientes[:limite]]

        return {
            "columnas": columnas,
            "conteos": {estado: len(ops) for estado, ops in columnas.items()},
            "resumen": {estado: dict(por_tipo) for estado, por_tipo in resumen.items()},
        }

    @staticmethod
    def contar_por_tipo(operaciones: List[Dict]) -> Dict[str, int]:
        conteo = {tipo: 0 for tipo in SM.VALID_TIPOS}
        for op in operaciones:
            if op['estado'] not in SM.ESTADOS_TERMINALES:
                conteo[op['tipo_operacion']] += 1
        return conteo

    @staticmethod
    def ratio(procesados: Decimal, solicitados: Decimal) -> float:
        if not solicitados:
            return 0.0
        return round(float(procesados / solicitados), 4)

    @staticmethod
    def resumir_estadisticas(filas: List[Dict]) -> Dict[str, Any]:
        """
        Args:
            filas: [{tipo_operacion, estado, cantidad, total_items, total_procesados}]
        """
        por_estado = {estado: 0 for estado in SM.VALID_ESTADOS}
        por_tipo = {}
        total_items = Decimal("0")
        total_procesados = Decimal("0")

        for fila in filas:
            cantidad = int(fila['cantidad'])
            items = to_decimal(fila['total_items'] or 0)
            procesados = to_decimal(fila['total_procesados'] or 0)

            por_estado[fila['estado']] = por_estado.get(fila['estado'], 0) + cantidad
            tipo = por_tipo.setdefault(fila['tipo_operacion'], {
                "operaciones": 0, "total_items": Decimal("0"), "total_procesados": Decimal("0"),
            })
            tipo["operaciones"] += cantidad
            tipo["total_items"] += items
            tipo["total_procesados"] += procesados
            total_items += items
            total_procesados += procesados

        for tipo in por_tipo.values():
            tipo["ratio_procesado"] = AggregationService.ratio(tipo["total_procesados"], tipo["total_items"])

        return {
            "por_estado": por_estado,
            "por_tipo": por_tipo,
            "total_operaciones": sum(por_estado.values()),
            "total_items": total_items,
            "total_procesados": total_procesados,
            "ratio_procesado": AggregationService.ratio(total_procesados, total_items),
        }

    @staticmethod
    def serie_throughput(filas: List[Dict], hoy: date, dias: int) -> List[Tuple[date, int]]:
        """Completadas por día en la ventana [hoy - dias + 1, hoy], con ceros incluidos."""
        inicio = hoy - timedelta(days=dias - 1)
        serie = {(inicio + timedelta(days=i)): 0 for i in range(dias)}
        for fila in filas:
            if fila['dia'] in serie:
                serie[fila['dia']] = int(fila['cantidad'])
        return sorted(serie.items())

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def obtener_resumen_kanban(self, sucursal_id: int) -> Dict[str, Any]:
        with self.store.reportes() as repo:
            activas = repo.get_operaciones_activas(sucursal_id)
            completadas = repo.get_completadas_recientes(sucursal_id, self.limite_completadas)
        kanban = self.agrupar_kanban(activas, completadas, self.limite_completadas)
        kanban["sucursal_id"] = sucursal_id
        return kanban

    def obtener_pendientes(self, sucursal_id: int) -> Dict[str, Any]:
        with self.store.reportes() as repo:
            activas = [dict(o) for o in repo.get_operaciones_activas(sucursal_id)]
        return {
            "sucursal_id": sucursal_id,
            "total": len(activas),
            "por_tipo": self.contar_por_tipo(activas),
            "operaciones": activas,
        }

    def obtener_estadisticas(self, sucursal_id: int, hoy: Optional[date] = None) -> Dict[str, Any]:
        hoy = hoy or date.today()
        desde = hoy - timedelta(days=self.dias_throughput - 1)
        with self.store.reportes() as repo:
            filas = [dict(f) for f in repo.get_totales_por_tipo_estado(sucursal_id)]
            diarias = repo.get_completadas_por_dia(sucursal_id, desde)

        estadisticas = self.resumir_estadisticas(filas)
        estadisticas.update({
            "sucursal_id": sucursal_id,
            "detalle": filas,
            "throughput": [
                {"dia": dia.isoformat(), "completadas": cantidad}
                for dia, cantidad in self.serie_throughput(diarias, hoy, self.dias_throughput)
            ],
        })
        return estadisticas
