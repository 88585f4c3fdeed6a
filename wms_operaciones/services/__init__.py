# wms_operaciones/services/__init__.py
"""
Capa de servicios para lógica de negocio.
Los servicios validan estados, orquestan transacciones y llaman a repositorios.
"""

from .state_machine import OperationStateMachine
from .item_service import ItemService
from .chain_service import ChainService, SIGUIENTE_ETAPA
from .operation_service import OperationService
from .assignment_service import AssignmentService
from .aggregation_service import AggregationService

__all__ = [
    "OperationStateMachine",
    "ItemService",
    "ChainService",
    "SIGUIENTE_ETAPA",
    "OperationService",
    "AssignmentService",
    "AggregationService",
]
