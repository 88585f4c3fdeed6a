# init_db.py
"""
Crea/verifica el esquema de operaciones de almacén.
Uso: DATABASE_URL=postgresql://... python init_db.py
"""
import sys

from wms_operaciones.database.core import get_db_connection, return_db_connection
from wms_operaciones.database.schema import create_schema


def init_schema():
    print("--- CREACIÓN / VERIFICACIÓN DEL ESQUEMA ---")

    conn = None
    try:
        conn = get_db_connection()
        create_schema(conn)
        print("✅ Esquema de operaciones listo.")
        return True
    except Exception as e:
        if conn: conn.rollback()
        print(f"❌ Error de Base de Datos: {e}")
        return False
    finally:
        if conn:
            return_db_connection(conn)


if __name__ == "__main__":
    sys.exit(0 if init_schema() else 1)
