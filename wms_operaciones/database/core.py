#wms_operaciones/database/core.py

import contextlib
import logging
import threading

import psycopg2
import psycopg2.pool
import psycopg2.extras

from wms_operaciones import config

logger = logging.getLogger(__name__)

# --- CONFIGURACIÓN DEL POOL GLOBAL ---
db_pool = None
# Un hueco por conexión: getconn() no espera, lanza PoolError con el pool agotado
pool_slots = None


def init_db_pool():
    """
    Inicializa el pool de conexiones.
    Threaded: varias sesiones de operarios comparten el pool desde hilos distintos.
    """
    global db_pool, pool_slots
    if db_pool:
        return

    if config.DATABASE_URL is None:
        raise ValueError("No se pudo conectar: DATABASE_URL no está configurada.")

    try:
        db_pool = psycopg2.pool.ThreadedConnectionPool(
            config.DB_POOL_MIN, config.DB_POOL_MAX, dsn=config.DATABASE_URL
        )
        pool_slots = threading.BoundedSemaphore(config.DB_POOL_MAX)

        # Probar conexión
        conn = db_pool.getconn()
        if "localhost" in config.DATABASE_URL:
            logger.info("[DB] Pool de BD (Local) creado.")
        else:
            logger.info("[DB] Pool de BD (Producción) creado.")
        db_pool.putconn(conn)

    except psycopg2.OperationalError:
        logger.exception("[DB] ERROR CRÍTICO AL CREAR EL POOL DE BD")
        raise


def close_db_pool():
    global db_pool, pool_slots
    if db_pool:
        db_pool.closeall()
        db_pool = None
        pool_slots = None


def get_db_connection():
    """
    Helper para obtener una conexión raw del pool (para transacciones manuales).
    Con el pool agotado el hilo espera a que otra transacción devuelva su conexión.
    """
    if not db_pool:
        init_db_pool()
    pool_slots.acquire()
    try:
        return db_pool.getconn()
    except Exception:
        pool_slots.release()
        raise


def return_db_connection(conn):
    """Helper para devolver conexión al pool"""
    if db_pool and conn:
        try:
            db_pool.putconn(conn)
        finally:
            pool_slots.release()


@contextlib.contextmanager
def transaction(read_only=False):
    """
    Abre una transacción y entrega un DictCursor.
    Commit si el bloque termina bien; rollback ante cualquier excepción.
    Con read_only=True se usa un snapshot REPEATABLE READ de solo lectura.
    """
    conn = get_db_connection()
    try:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            if read_only:
                cursor.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")
            yield cursor
        if read_only:
            conn.rollback()
        else:
            conn.commit()
    except Exception as e:
        conn.rollback()
        logger.warning("[DB-TRANSACTION] Rollback ejecutado: %s", e)
        raise
    finally:
        return_db_connection(conn)


