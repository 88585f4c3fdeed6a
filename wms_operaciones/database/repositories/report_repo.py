#wms_operaciones/database/repositories/report_repo.py
"""
Lecturas para tablero Kanban, pendientes y estadísticas.
Nunca toma el lock de operación: corre sobre un snapshot de solo lectura.
"""


class ReportRepository:

    def __init__(self, cursor):
        self.cursor = cursor

    def get_operaciones_activas(self, sucursal_id):
        """Operaciones no terminales, en el orden de atención del almacén."""
        self.cursor.execute("""
            SELECT * FROM operaciones_almacen
            WHERE sucursal_id = %s
              AND estado IN ('borrador', 'asignada', 'en_proceso', 'parcial')
            ORDER BY prioridad ASC, fecha_programada ASC NULLS LAST, creado_en ASC, id ASC
        """, (sucursal_id,))
        return self.cursor.fetchall()

    def get_completadas_recientes(self, sucursal_id, limite):
        self.cursor.execute("""
            SELECT * FROM operaciones_almacen
            WHERE sucursal_id = %s AND estado = 'completada'
            ORDER BY fecha_fin DESC NULLS LAST, id DESC
            LIMIT %s
        """, (sucursal_id, limite))
        return self.cursor.fetchall()

    def get_totales_por_tipo_estado(self, sucursal_id):
        self.cursor.execute("""
            SELECT
                tipo_operacion::text AS tipo_operacion,
                estado::text AS estado,
                COUNT(*) AS cantidad,
                COALESCE(SUM(total_items), 0) AS total_items,
                COALESCE(SUM(total_procesados), 0) AS total_procesados
            FROM operaciones_almacen
            WHERE sucursal_id = %s
            GROUP BY tipo_operacion, estado
            ORDER BY tipo_operacion, estado
        """, (sucursal_id,))
        return self.cursor.fetchall()

    def get_completadas_por_dia(self, sucursal_id, desde):
        self.cursor.execute("""
            SELECT fecha_fin::date AS dia, COUNT(id) AS cantidad
            FROM operaciones_almacen
            WHERE sucursal_id = %s AND estado = 'completada' AND fecha_fin >= %s
            GROUP BY dia
        """, (sucursal_id, desde))
        return self.cursor.fetchall()
