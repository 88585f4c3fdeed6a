#wms_operaciones/database/schema.py

import logging

logger = logging.getLogger(__name__)

TIPOS_OPERACION = (
    'recepcion', 'control_calidad', 'almacenamiento', 'picking',
    'empaque', 'envio', 'transferencia_interna',
)
ESTADOS_OPERACION = ('borrador', 'asignada', 'en_proceso', 'parcial', 'completada', 'cancelada')
ESTADOS_ITEM = ('pendiente', 'procesado', 'cancelado')


def _create_enum(cursor, name, values):
    # CREATE TYPE no admite IF NOT EXISTS
    cursor.execute("SELECT 1 FROM pg_type WHERE typname = %s", (name,))
    if cursor.fetchone():
        for value in values:
            cursor.execute(f"ALTER TYPE {name} ADD VALUE IF NOT EXISTS %s", (value,))
        return
    labels = ", ".join(["%s"] * len(values))
    cursor.execute(f"CREATE TYPE {name} AS ENUM ({labels})", values)


def create_schema(conn):
    cursor = conn.cursor()
    logger.info("--- CREANDO ESQUEMA DE OPERACIONES DE ALMACÉN ---")

    _create_enum(cursor, 'tipo_operacion_almacen', TIPOS_OPERACION)
    _create_enum(cursor, 'estado_operacion_almacen', ESTADOS_OPERACION)
    _create_enum(cursor, 'estado_item_operacion', ESTADOS_ITEM)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS operaciones_almacen (
            id SERIAL PRIMARY KEY,
            folio TEXT NOT NULL UNIQUE,
            nombre TEXT,
            tipo_operacion tipo_operacion_almacen NOT NULL,
            estado estado_operacion_almacen NOT NULL DEFAULT 'borrador',
            sucursal_id INTEGER NOT NULL,
            origen_tipo TEXT NOT NULL DEFAULT 'manual',
            origen_id INTEGER,
            origen_folio TEXT,
            ubicacion_origen_id INTEGER,
            ubicacion_destino_id INTEGER,
            asignado_a INTEGER,
            prioridad SMALLINT NOT NULL DEFAULT 5 CHECK (prioridad BETWEEN 1 AND 10),
            fecha_programada TIMESTAMP,
            notas TEXT,
            notas_internas TEXT,
            total_items NUMERIC(14, 4) NOT NULL DEFAULT 0,
            total_procesados NUMERIC(14, 4) NOT NULL DEFAULT 0,
            operacion_anterior_id INTEGER REFERENCES operaciones_almacen(id),
            operacion_siguiente_id INTEGER UNIQUE REFERENCES operaciones_almacen(id),
            creado_por INTEGER,
            fecha_inicio TIMESTAMP,
            fecha_fin TIMESTAMP,
            creado_en TIMESTAMP NOT NULL DEFAULT NOW(),
            actualizado_en TIMESTAMP NOT NULL DEFAULT NOW()
        );
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS operaciones_almacen_items (
            id SERIAL PRIMARY KEY,
            operacion_id INTEGER NOT NULL REFERENCES operaciones_almacen(id) ON DELETE CASCADE,
            producto_id INTEGER NOT NULL,
            variante_id INTEGER,
            numero_serie_id INTEGER,
            cantidad_solicitada NUMERIC(14, 4) NOT NULL CHECK (cantidad_solicitada > 0),
            cantidad_procesada NUMERIC(14, 4) NOT NULL DEFAULT 0,
            ubicacion_origen_id INTEGER,
            ubicacion_destino_id INTEGER,
            lote TEXT,
            fecha_vencimiento DATE,
            notas TEXT,
            estado estado_item_operacion NOT NULL DEFAULT 'pendiente',
            procesado_por INTEGER,
            procesado_en TIMESTAMP,
            creado_en TIMESTAMP NOT NULL DEFAULT NOW(),
            actualizado_en TIMESTAMP NOT NULL DEFAULT NOW(),
            CHECK (cantidad_procesada >= 0 AND cantidad_procesada <= cantidad_solicitada)
        );
    """)

    # --- ÍNDICES PARA LISTADOS, KANBAN Y PENDIENTES ---
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_op_alm_sucursal_estado ON operaciones_almacen (sucursal_id, estado);")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_op_alm_origen ON operaciones_almacen (origen_tipo, origen_id);")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_op_alm_anterior ON operaciones_almacen (operacion_anterior_id);")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_op_alm_items_operacion ON operaciones_almacen_items (operacion_id);")

    conn.commit()
    cursor.close()
    logger.info("--- Esquema verificado. ---")
