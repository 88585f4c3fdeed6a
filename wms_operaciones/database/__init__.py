# 1. Infraestructura (Core)
from .core import (
    init_db_pool,
    close_db_pool,
    get_db_connection,
    return_db_connection,
    transaction,
)

# 2. Schema (para inicialización)
from .schema import create_schema

# 3. Repositorios y store
from .repositories.operation_repo import OperacionRepository
from .repositories.report_repo import ReportRepository
from .store import PostgresStore
