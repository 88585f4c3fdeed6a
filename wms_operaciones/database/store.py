#wms_operaciones/database/store.py

import contextlib

from .core import transaction
from .repositories.operation_repo import OperacionRepository
from .repositories.report_repo import ReportRepository


class PostgresStore:
    """
    Punto de entrada de los servicios a la BD.
    transaccion(): lectura/escritura con locks de fila.
    lectura() / reportes(): snapshot consistente de solo lectura.
    """

    @contextlib.contextmanager
    def transaccion(self):
        with transaction() as cursor:
            yield OperacionRepository(cursor)

    @contextlib.contextmanager
    def lectura(self):
        with transaction(read_only=True) as cursor:
            yield OperacionRepository(cursor)

    @contextlib.contextmanager
    def reportes(self):
        with transaction(read_only=True) as cursor:
            yield ReportRepository(cursor)
