#wms_operaciones/database/repositories/operation_repo.py
"""
Repositorio de operaciones de almacén y sus items.
Solo ejecuta SQL: las reglas de estado viven en la capa de servicios.
Todas las funciones trabajan sobre el cursor de una transacción abierta.
"""

import zlib

OPERACION_COLUMNS = {
    'folio', 'nombre', 'tipo_operacion', 'estado', 'sucursal_id',
    'origen_tipo', 'origen_id', 'origen_folio',
    'ubicacion_origen_id', 'ubicacion_destino_id', 'asignado_a',
    'prioridad', 'fecha_programada', 'notas', 'notas_internas',
    'total_items', 'total_procesados',
    'operacion_anterior_id', 'operacion_siguiente_id',
    'creado_por', 'fecha_inicio', 'fecha_fin',
}

ITEM_COLUMNS = {
    'producto_id', 'variante_id', 'numero_serie_id',
    'cantidad_solicitada', 'cantidad_procesada',
    'ubicacion_origen_id', 'ubicacion_destino_id',
    'lote', 'fecha_vencimiento', 'notas', 'estado',
    'procesado_por', 'procesado_en',
}

# Filtros exactos aceptados por list_operaciones
LIST_FILTERS = {
    'sucursal_id': "o.sucursal_id = %s",
    'tipo_operacion': "o.tipo_operacion = %s",
    'estado': "o.estado = %s",
    'asignado_a': "o.asignado_a = %s",
    'origen_tipo': "o.origen_tipo = %s",
    'origen_id': "o.origen_id = %s",
}


def _check_columns(fields, allowed):
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Columnas no permitidas: {', '.join(sorted(unknown))}")


class OperacionRepository:
    """SQL puro sobre operaciones_almacen / operaciones_almacen_items."""

    def __init__(self, cursor):
        self.cursor = cursor

    # --- LECTURAS ---

    def get_operacion(self, operacion_id):
        self.cursor.execute("SELECT * FROM operaciones_almacen WHERE id = %s", (operacion_id,))
        return self.cursor.fetchone()

    def lock_operacion(self, operacion_id):
        """
        Bloquea la fila de la operación hasta el fin de la transacción.
        Un segundo operario que llegue aquí espera a que el primero haga commit.
        """
        self.cursor.execute(
            "SELECT * FROM operaciones_almacen WHERE id = %s FOR UPDATE", (operacion_id,)
        )
        return self.cursor.fetchone()

    def get_items(self, operacion_id):
        self.cursor.execute(
            "SELECT * FROM operaciones_almacen_items WHERE operacion_id = %s ORDER BY id",
            (operacion_id,)
        )
        return self.cursor.fetchall()

    def get_item(self, item_id):
        self.cursor.execute("SELECT * FROM operaciones_almacen_items WHERE id = %s", (item_id,))
        return self.cursor.fetchone()

    def list_operaciones(self, filtros):
        where_clauses = []
        params = []
        for key, clause in LIST_FILTERS.items():
            value = filtros.get(key)
            if value is not None and value != "":
                where_clauses.append(clause)
                params.append(value)

        if filtros.get('estados'):
            where_clauses.append("o.estado::text = ANY(%s)")
            params.append(list(filtros['estados']))

        where_string = ("WHERE " + " AND ".join(where_clauses)) if where_clauses else ""
        query = f"""
            SELECT o.* FROM operaciones_almacen o
            {where_string}
            ORDER BY o.prioridad ASC, o.creado_en DESC, o.id DESC
        """
        if filtros.get('limit'):
            query += " LIMIT %s"
            params.append(filtros['limit'])
        if filtros.get('offset'):
            query += " OFFSET %s"
            params.append(filtros['offset'])

        self.cursor.execute(query, tuple(params))
        return self.cursor.fetchall()

    # --- ESCRITURAS ---

    def siguiente_secuencia_folio(self, prefijo):
        """
        [ADVISORY LOCK] Pone en fila india solo a quienes generan folio con este prefijo.
        El lock se libera al terminar la transacción.
        """
        lock_id = zlib.crc32(prefijo.encode("utf-8")) % 2147483647
        self.cursor.execute("SELECT pg_advisory_xact_lock(%s)", (lock_id,))
        self.cursor.execute(
            "SELECT folio FROM operaciones_almacen WHERE folio LIKE %s ORDER BY id DESC LIMIT 1",
            (f"{prefijo}%",)
        )
        last = self.cursor.fetchone()
        if not last:
            return 1
        return int(last['folio'].rsplit('/', 1)[-1]) + 1

    def insert_operacion(self, data):
        _check_columns(data, OPERACION_COLUMNS)
        columns = list(data.keys())
        placeholders = ", ".join(["%s"] * len(columns))
        self.cursor.execute(
            f"INSERT INTO operaciones_almacen ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
            tuple(data[c] for c in columns)
        )
        return self.cursor.fetchone()

    def insert_item(self, operacion_id, data):
        _check_columns(data, ITEM_COLUMNS)
        columns = ['operacion_id'] + list(data.keys())
        placeholders = ", ".join(["%s"] * len(columns))
        self.cursor.execute(
            f"INSERT INTO operaciones_almacen_items ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
            (operacion_id,) + tuple(data.values())
        )
        return self.cursor.fetchone()

    def update_operacion(self, operacion_id, campos):
        _check_columns(campos, OPERACION_COLUMNS)
        set_clauses = ", ".join([f"{k} = %s" for k in campos.keys()])
        self.cursor.execute(
            f"UPDATE operaciones_almacen SET {set_clauses}, actualizado_en = NOW() WHERE id = %s RETURNING *",
            tuple(campos.values()) + (operacion_id,)
        )
        return self.cursor.fetchone()

    def update_item(self, item_id, campos):
        _check_columns(campos, ITEM_COLUMNS)
        set_clauses = ", ".join([f"{k} = %s" for k in campos.keys()])
        self.cursor.execute(
            f"UPDATE operaciones_almacen_items SET {set_clauses}, actualizado_en = NOW() WHERE id = %s RETURNING *",
            tuple(campos.values()) + (item_id,)
        )
        return self.cursor.fetchone()

    def cancelar_items_pendientes(self, operacion_id):
        self.cursor.execute("""
            UPDATE operaciones_almacen_items
            SET estado = 'cancelado', actualizado_en = NOW()
            WHERE operacion_id = %s AND estado = 'pendiente'
        """, (operacion_id,))
        return self.cursor.rowcount
